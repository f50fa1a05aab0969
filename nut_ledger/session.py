"""Wallet session: owns the store, registry, ledger and payment engines."""

from __future__ import annotations

import logging
from typing import Callable, Literal

from .config import Settings
from .ledger import ProofLedger
from .mint import Mint
from .payments import PaymentOrchestrator
from .registry import WalletRegistry
from .storage import StateStore
from .swap import SwapEngine
from .token import decode_token, encode_token
from .types import InsufficientBalanceError, UnknownKeysetError
from .wallet import Wallet

logger = logging.getLogger(__name__)


class WalletSession:
    """Explicitly constructed service object for one wallet state.

    Example:
        async with WalletSession(Settings.from_env()) as session:
            pending = await session.payments.receive(100)
            print(pending.invoice)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: StateStore | None = None,
        mint_factory: Callable[[str], Mint] = Mint,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.store = store or StateStore(self.settings.state_path)
        self.registry = WalletRegistry(
            self.store,
            default_mint_url=self.settings.default_mint_url,
            default_unit=self.settings.default_unit,
            mint_factory=mint_factory,
        )
        self.ledger = ProofLedger(self.store, is_known_keyset=self.registry.has_keyset)
        self.payments = PaymentOrchestrator(
            self.ledger, self.registry, poll_interval=self.settings.poll_interval
        )
        self.swaps = SwapEngine(
            self.ledger, self.registry, max_attempts=self.settings.max_swap_attempts
        )
        self._started = False

    @classmethod
    async def create(
        cls,
        settings: Settings | None = None,
        *,
        store: StateStore | None = None,
        mint_factory: Callable[[str], Mint] = Mint,
    ) -> WalletSession:
        """Construct and bootstrap a session."""
        session = cls(settings, store=store, mint_factory=mint_factory)
        await session.start()
        return session

    async def start(self) -> None:
        if self._started:
            return
        await self.registry.bootstrap()
        self.ledger.reload()
        self._started = True

    @property
    def balance(self) -> int:
        return self.ledger.balance

    # ─────────────────────────────── Tokens ───────────────────────────────────

    async def send_token(
        self, amount: int, *, wallet: Wallet | None = None, version: Literal[3, 4] = 3
    ) -> str:
        """Take proofs worth at least ``amount`` out of the ledger as a token.

        Selection is first-fit, so the token may be worth more than ``amount``.
        """
        wallet = wallet or self.registry.require_active()
        proofs = self.ledger.select_by_amount(amount, wallet.keyset_id)
        if proofs is None:
            raise InsufficientBalanceError(self.ledger.balance, amount)

        token = encode_token(proofs, wallet.mint_url, unit=wallet.unit, version=version)
        await self.ledger.remove(proofs)
        logger.info("Created token worth %d", sum(p["amount"] for p in proofs))
        return token

    async def redeem_token(self, token: str) -> int:
        """Claim a received token by swapping its proofs for fresh ones.

        Raises:
            UnknownKeysetError: If a proof's keyset has no registered wallet
        """
        decoded = decode_token(token)
        by_keyset: dict[str, list] = {}
        for proof in decoded.proofs:
            if not self.registry.has_keyset(proof["id"]):
                raise UnknownKeysetError(proof["id"])
            by_keyset.setdefault(proof["id"], []).append(proof)

        received = 0
        for keyset_id, proofs in by_keyset.items():
            wallet = self.registry.wallets[keyset_id]
            new_proofs = await wallet.swap_proofs(proofs)
            await self.ledger.add(new_proofs)
            received += sum(p["amount"] for p in new_proofs)
        return received

    # ─────────────────────────────── Cleanup ──────────────────────────────────

    async def aclose(self) -> None:
        """Cancel pending receives and close HTTP clients."""
        await self.payments.aclose()
        await self.registry.aclose()

    async def __aenter__(self) -> WalletSession:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
