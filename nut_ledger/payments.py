"""Lightning receive and send flows on top of the proof ledger."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Union

import httpx

from .ledger import ProofLedger
from .registry import WalletRegistry
from .types import (
    InsufficientBalanceError,
    MeltNotPaid,
    MeltResult,
    MintError,
    MintQuoteState,
)
from .wallet import Wallet

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[], Union[None, Awaitable[Any]]]


class ReceiveOutcome(str, Enum):
    """How a receive poll ended."""

    MINTED = "minted"
    ISSUED = "issued"  # quote already issued before we minted
    CANCELLED = "cancelled"


@dataclass
class PendingReceive:
    """Handle for an in-flight receive: the invoice to pay and its poll task."""

    invoice: str
    quote_id: str
    amount: int
    task: asyncio.Task[ReceiveOutcome]

    def cancel(self) -> None:
        self.task.cancel()

    async def wait(self) -> ReceiveOutcome:
        try:
            return await self.task
        except asyncio.CancelledError:
            if not self.task.cancelled():
                raise
            return ReceiveOutcome.CANCELLED


class PaymentOrchestrator:
    """Receive (mint) and send (melt) Lightning payments."""

    def __init__(
        self,
        ledger: ProofLedger,
        registry: WalletRegistry,
        *,
        poll_interval: float = 5.0,
    ) -> None:
        self.ledger = ledger
        self.registry = registry
        self.poll_interval = poll_interval
        self._pending: set[asyncio.Task[ReceiveOutcome]] = set()

    # ─────────────────────────────── Receive ──────────────────────────────────

    async def receive(
        self,
        amount: int,
        on_success: SuccessCallback | None = None,
        *,
        wallet: Wallet | None = None,
    ) -> PendingReceive:
        """Create an invoice and mint ``amount`` once it is paid.

        Returns immediately; polling runs in a background task until the
        tokens are minted, the quote turns up ``ISSUED``, or the task is
        cancelled. A new call never cancels an earlier one.

        Example:
            pending = await payments.receive(100)
            print(f"Pay: {pending.invoice}")
            outcome = await pending.wait()
        """
        wallet = wallet or self.registry.require_active()
        mint_quote = await wallet.create_mint_quote(amount)
        logger.info("Mint quote %s for %d %s", mint_quote.quote_id, amount, wallet.unit)

        task = asyncio.create_task(
            self._poll_mint_quote(wallet, mint_quote.quote_id, amount, on_success)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        return PendingReceive(
            invoice=mint_quote.request,
            quote_id=mint_quote.quote_id,
            amount=amount,
            task=task,
        )

    async def _poll_mint_quote(
        self,
        wallet: Wallet,
        quote_id: str,
        amount: int,
        on_success: SuccessCallback | None,
    ) -> ReceiveOutcome:
        # TODO: persist the quote id so a paid invoice can still be claimed
        # after a restart.
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                quote = await wallet.check_mint_quote(quote_id)
            except Exception as e:
                logger.error("Error while polling for payment of %s: %s", quote_id, e)
                continue
            logger.debug("Quote %s status: %s", quote_id, quote.state)

            if quote.state == MintQuoteState.PAID:
                try:
                    proofs = await wallet.mint_tokens(amount, quote_id)
                except (MintError, httpx.HTTPError) as e:
                    logger.error("Minting paid quote %s failed, will retry: %s", quote_id, e)
                    continue
                await self.ledger.add(proofs)
                logger.info("Minted %d for quote %s", amount, quote_id)
                if on_success is not None:
                    result = on_success()
                    if inspect.isawaitable(result):
                        await result
                return ReceiveOutcome.MINTED
            elif quote.state == MintQuoteState.ISSUED:
                logger.warning("Mint quote %s already issued, stopping", quote_id)
                return ReceiveOutcome.ISSUED
            elif quote.state == MintQuoteState.UNPAID:
                logger.debug("Waiting for payment of quote %s", quote_id)
            else:
                logger.warning("Unknown mint quote state: %s", quote.state)

    # ─────────────────────────────── Send ─────────────────────────────────────

    async def send(self, invoice: str, *, wallet: Wallet | None = None) -> MeltResult:
        """Pay a Lightning invoice with held proofs.

        Proofs are only removed once the mint confirms payment; on failure
        they stay in the ledger.

        Raises:
            InsufficientBalanceError: If the wallet's proofs cannot cover
                amount plus fee reserve
            MeltNotPaid: If the mint reports the payment failed
        """
        wallet = wallet or self.registry.require_active()
        melt_quote = await wallet.create_melt_quote(invoice)

        # mint reserves a fee for the lightning payment
        required = melt_quote.total_required

        proofs_to_send = self.ledger.select_by_amount(required, wallet.keyset_id)
        if proofs_to_send is None:
            raise InsufficientBalanceError(self.ledger.balance, required)

        result = await wallet.melt_tokens(melt_quote, proofs_to_send)

        await self.ledger.add(result.change)

        if not result.is_paid:
            logger.warning("Payment for melt quote %s failed", melt_quote.quote_id)
            raise MeltNotPaid(melt_quote.quote_id)

        logger.info("Payment was successful (preimage %s)", result.preimage)
        await self.ledger.remove(proofs_to_send)
        return result

    # ─────────────────────────────── Cleanup ──────────────────────────────────

    async def aclose(self) -> None:
        """Cancel every outstanding receive poll."""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()
