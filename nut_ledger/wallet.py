"""Wallet handle bound to one keyset at one mint."""

from __future__ import annotations

import logging
import math
from typing import Any

from coincurve import PublicKey

from .crypto import (
    BlindingData,
    create_blinded_messages,
    get_mint_pubkey_for_amount,
    unblind_signature,
)
from .denominations import blank_outputs_needed, keyset_denominations, split_amount
from .mint import KeysetInfo, Keyset, Mint
from .types import (
    BlindedSignature,
    KeysetRecord,
    MeltQuote,
    MeltResult,
    MintError,
    MintQuote,
    Proof,
    WalletError,
)

logger = logging.getLogger(__name__)


class Wallet:
    """Operations against one mint using one keyset's keys.

    Several wallets may share a mint (and its HTTP client) but each has its
    own keyset id.
    """

    def __init__(
        self,
        mint: Mint,
        *,
        keyset_id: str,
        unit: str,
        keys: dict[str, str],
        input_fee_ppk: int = 0,
    ) -> None:
        self.mint = mint
        self.keyset_id = keyset_id
        self.unit = unit
        self.keys = keys
        self.input_fee_ppk = input_fee_ppk

    @property
    def mint_url(self) -> str:
        return self.mint.url

    def to_record(self) -> KeysetRecord:
        return KeysetRecord(keyset_id=self.keyset_id, unit=self.unit, keys=self.keys)

    def __repr__(self) -> str:
        return f"Wallet(mint_url={self.mint_url!r}, keyset_id={self.keyset_id!r}, unit={self.unit!r})"

    # ───────────────────────────── Keys ───────────────────────────────────────

    async def get_keysets(self) -> list[KeysetInfo]:
        return await self.mint.get_keysets()

    async def get_keys(self, keyset_id: str | None = None) -> Keyset:
        return await self.mint.get_keys(keyset_id or self.keyset_id)

    # ─────────────────────────────── Receive ──────────────────────────────────

    async def create_mint_quote(self, amount: int) -> MintQuote:
        response = await self.mint.create_mint_quote(amount=amount, unit=self.unit)
        return MintQuote.from_response(dict(response))

    async def check_mint_quote(self, quote_id: str) -> MintQuote:
        response = await self.mint.get_mint_quote(quote_id)
        return MintQuote.from_response(dict(response))

    async def mint_tokens(self, amount: int, quote_id: str) -> list[Proof]:
        """Mint proofs worth ``amount`` against a paid quote."""
        blinding = create_blinded_messages(self._split(amount), self.keyset_id)
        response = await self.mint.mint(
            quote=quote_id, outputs=[b.message for b in blinding]
        )
        return self._construct_proofs(response["signatures"], blinding)

    # ─────────────────────────────── Send ─────────────────────────────────────

    async def create_melt_quote(self, invoice: str) -> MeltQuote:
        response = await self.mint.create_melt_quote(invoice, unit=self.unit)
        return MeltQuote.from_response(dict(response))

    async def melt_tokens(self, melt_quote: MeltQuote, proofs: list[Proof]) -> MeltResult:
        """Pay the quote's invoice with ``proofs``.

        NUT-08 blank outputs are attached so unused fee reserve comes back as
        change.
        """
        blank_count = blank_outputs_needed(melt_quote.fee_reserve)
        blinding = create_blinded_messages([1] * blank_count, self.keyset_id)

        response = await self.mint.melt(
            quote=melt_quote.quote_id,
            inputs=proofs,
            outputs=[b.message for b in blinding] if blinding else None,
        )

        is_paid = bool(response.get("paid")) or response.get("state") == "PAID"
        change: list[Proof] = []
        signatures = response.get("change") or []
        if signatures:
            # Signatures come back in the order of the outputs they sign.
            change = self._construct_proofs(signatures, blinding[: len(signatures)])

        return MeltResult(
            is_paid=is_paid,
            change=change,
            preimage=response.get("payment_preimage"),
        )

    # ─────────────────────────────── Swap ─────────────────────────────────────

    def calculate_input_fees(self, proofs: list[Proof]) -> int:
        """Input fee for spending ``proofs`` (NUT-02), rounded up."""
        if not proofs or self.input_fee_ppk <= 0:
            return 0
        return math.ceil(len(proofs) * self.input_fee_ppk / 1000)

    async def swap_proofs(self, proofs: list[Proof]) -> list[Proof]:
        """Exchange ``proofs`` at the mint for fresh ones (NUT-03), minus input fees."""
        if not proofs:
            return []
        output_amount = sum(p["amount"] for p in proofs) - self.calculate_input_fees(proofs)
        if output_amount <= 0:
            raise WalletError(f"Proofs worth {output_amount} after fees cannot be swapped")

        blinding = create_blinded_messages(self._split(output_amount), self.keyset_id)
        response = await self.mint.swap(
            inputs=proofs, outputs=[b.message for b in blinding]
        )
        return self._construct_proofs(response["signatures"], blinding)

    # ───────────────────────── Helper Methods ─────────────────────────────────

    def _split(self, amount: int) -> list[int]:
        return split_amount(amount, keyset_denominations(self.keys))

    def _construct_proofs(
        self, signatures: list[BlindedSignature], blinding: list[BlindingData]
    ) -> list[Proof]:
        if len(signatures) > len(blinding):
            raise MintError(
                f"Mint returned {len(signatures)} signatures for {len(blinding)} outputs"
            )

        proofs: list[Proof] = []
        for sig, data in zip(signatures, blinding):
            amount = sig["amount"]
            mint_pubkey = get_mint_pubkey_for_amount(self.keys, amount)
            if mint_pubkey is None:
                raise MintError(f"Could not find mint public key for amount {amount}")

            C_ = PublicKey(bytes.fromhex(sig["C_"]))
            C = unblind_signature(C_, bytes.fromhex(data.r), mint_pubkey)

            proof: Proof = {
                "id": sig.get("id", self.keyset_id),
                "amount": amount,
                "secret": data.secret,
                "C": C.format(compressed=True).hex(),
            }
            dleq: Any = sig.get("dleq")
            if dleq:
                proof["dleq"] = dict(dleq, r=data.r)
            proofs.append(proof)
        return proofs
