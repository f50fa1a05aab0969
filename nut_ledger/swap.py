"""Cross-mint transfers via a self-paid Lightning invoice."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from .ledger import ProofLedger
from .registry import WalletRegistry
from .types import (
    MeltNotPaid,
    MeltQuote,
    MintError,
    MintQuote,
    Proof,
    ProofNotFoundError,
    SwapNegotiationFailure,
)
from .wallet import Wallet

logger = logging.getLogger(__name__)

MAX_NEGOTIATION_ATTEMPTS = 5


@dataclass
class SwapQuotes:
    """An accepted mint quote (at ``to``) / melt quote (at ``from``) pair."""

    mint_quote: MintQuote
    melt_quote: MeltQuote
    amount_to_mint: int
    attempts: int


class SwapEngine:
    """Move proofs from one wallet to another by minting at ``to`` and melting at ``from``."""

    def __init__(
        self,
        ledger: ProofLedger,
        registry: WalletRegistry,
        *,
        max_attempts: int = MAX_NEGOTIATION_ATTEMPTS,
    ) -> None:
        self.ledger = ledger
        self.registry = registry
        self.max_attempts = max_attempts

    async def negotiate(self, from_wallet: Wallet, to_wallet: Wallet, total: int) -> SwapQuotes:
        """Find the largest mint amount at ``to`` whose invoice ``from`` can pay with ``total``.

        Each attempt shrinks the requested amount by however much the melt
        would overshoot. Fees are assumed non-decreasing in amount, so the
        requested amount only ever moves toward feasibility.

        Raises:
            SwapNegotiationFailure: If a quote call fails, the amount drops to
                zero, or no pair fits within ``max_attempts``
        """
        amount_to_mint = total

        for attempt in range(1, self.max_attempts + 1):
            if amount_to_mint <= 0:
                raise SwapNegotiationFailure(
                    f"Fees exceed the swapped amount {total} after {attempt - 1} attempts"
                )

            try:
                mint_quote = await to_wallet.create_mint_quote(amount_to_mint)
                melt_quote = await from_wallet.create_melt_quote(mint_quote.request)
            except (MintError, httpx.HTTPError) as e:
                raise SwapNegotiationFailure(f"Failed to get quotes: {e}") from e

            required = melt_quote.total_required
            logger.debug(
                "Attempt #%d: mint %d at %s needs %d at %s",
                attempt,
                amount_to_mint,
                to_wallet.mint_url,
                required,
                from_wallet.mint_url,
            )

            if required <= total:
                return SwapQuotes(
                    mint_quote=mint_quote,
                    melt_quote=melt_quote,
                    amount_to_mint=required,
                    attempts=attempt,
                )

            amount_to_mint -= required - total

        raise SwapNegotiationFailure(
            f"Could not find a valid melt quote within {self.max_attempts} attempts"
        )

    async def swap(
        self,
        to_wallet: Wallet,
        proofs: list[Proof],
        *,
        from_wallet: Wallet | None = None,
    ) -> int:
        """Transfer the value of ``proofs`` into new proofs at ``to_wallet``.

        Returns:
            Total amount minted at ``to_wallet``; less than the input by the
            Lightning fee

        Raises:
            SwapNegotiationFailure: On mismatched keysets or units, or failed
                negotiation; no proofs are touched
            MeltNotPaid: If the melt at ``from_wallet`` fails; proofs are kept
            ProofNotFoundError: If the melted proofs were already removed from
                the ledger; raised after minting and storing the new proofs
        """
        from_wallet = from_wallet or self.registry.require_active()
        self._check_preconditions(from_wallet, to_wallet, proofs)

        total = sum(p["amount"] for p in proofs)
        logger.info(
            "Swapping %d %s from %s to %s", total, from_wallet.unit, from_wallet.mint_url, to_wallet.mint_url
        )

        quotes = await self.negotiate(from_wallet, to_wallet, total)
        melt_quote = quotes.melt_quote

        # the mint may over estimate the lightning fee; NUT-08 change covers it
        result = await from_wallet.melt_tokens(melt_quote, proofs)
        if not result.is_paid:
            await self.ledger.add(result.change)
            raise MeltNotPaid(melt_quote.quote_id)

        # not minted yet, but the proofs are spent
        remove_error: ProofNotFoundError | None = None
        try:
            await self.ledger.remove(proofs)
        except ProofNotFoundError as e:
            # removed concurrently; the melt is paid so the mint still goes ahead
            logger.error("Melted proofs were already gone from the ledger: %s", e)
            remove_error = e

        try:
            new_proofs = await to_wallet.mint_tokens(
                quotes.amount_to_mint - melt_quote.fee_reserve,
                quotes.mint_quote.quote_id,
            )
        except Exception:
            logger.error(
                "Melt paid but minting failed at %s; quote %s can be claimed later",
                to_wallet.mint_url,
                quotes.mint_quote.quote_id,
            )
            await self.ledger.add(result.change)
            raise

        await self.ledger.add(new_proofs + result.change)
        if remove_error is not None:
            raise remove_error

        total_minted = sum(p["amount"] for p in new_proofs)
        logger.info("Swap complete: minted %d of %d", total_minted, total)
        return total_minted

    @staticmethod
    def _check_preconditions(from_wallet: Wallet, to_wallet: Wallet, proofs: list[Proof]) -> None:
        if from_wallet.unit != to_wallet.unit:
            raise SwapNegotiationFailure(
                f"Cannot swap {from_wallet.unit} to {to_wallet.unit}: cross-unit swaps are not supported"
            )
        if not proofs:
            raise SwapNegotiationFailure("No proofs to swap")

        keyset_ids = {p["id"] for p in proofs}
        if len(keyset_ids) > 1:
            raise SwapNegotiationFailure("Proofs must all be from the same keyset")
        keyset_id = keyset_ids.pop()
        if keyset_id != from_wallet.keyset_id:
            raise SwapNegotiationFailure(
                f"Keyset ID {from_wallet.keyset_id} does not match proofs' id {keyset_id}"
            )
