"""Durable store of unspent proofs."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .storage import StateStore
from .types import DuplicateProofError, Proof, ProofNotFoundError, UnknownKeysetError

logger = logging.getLogger(__name__)

# key used to identify the proofs in the state store
STORAGE_KEY = "proofs"


class ProofLedger:
    """Ordered set of held proofs with uniqueness and balance invariants.

    Storage order is insertion order and drives :meth:`select_by_amount`.
    Mutations re-read the persisted list, validate against it and write the
    whole list back, all under one lock so concurrent callers in the same
    event loop cannot interleave between the read and the write.
    """

    def __init__(
        self,
        store: StateStore,
        *,
        is_known_keyset: Callable[[str], bool] | None = None,
    ) -> None:
        self._store = store
        self._is_known_keyset = is_known_keyset
        self._lock = asyncio.Lock()
        self._proofs: list[Proof] = []
        self._balance = 0
        self._balance_by_wallet: dict[str, int] = {}
        self.reload()

    def _stored_proofs(self) -> list[Proof]:
        return list(self._store.get(STORAGE_KEY, []))

    def _set_proofs(self, proofs: list[Proof]) -> None:
        """Recompute the balance projections for a new held set."""
        balance = 0
        by_wallet: dict[str, int] = {}
        for proof in proofs:
            balance += proof["amount"]
            by_wallet[proof["id"]] = by_wallet.get(proof["id"], 0) + proof["amount"]
        self._proofs = proofs
        self._balance = balance
        self._balance_by_wallet = by_wallet

    def reload(self) -> None:
        self._set_proofs(self._stored_proofs())

    # ───────────────────────────── Mutations ──────────────────────────────────

    async def add(self, new_proofs: list[Proof]) -> None:
        """Append proofs to the ledger.

        Raises:
            DuplicateProofError: If a secret is already held (or repeated in
                ``new_proofs``); nothing is written in that case
            UnknownKeysetError: If a proof's keyset has no registered wallet
        """
        if not new_proofs:
            return

        async with self._lock:
            current = self._stored_proofs()
            existing_secrets = {p["secret"] for p in current}

            for proof in new_proofs:
                if proof["secret"] in existing_secrets:
                    raise DuplicateProofError(proof["secret"])
                if self._is_known_keyset is not None and not self._is_known_keyset(proof["id"]):
                    raise UnknownKeysetError(proof["id"])
                existing_secrets.add(proof["secret"])

            updated = current + [dict(p) for p in new_proofs]
            self._store.set(STORAGE_KEY, updated)
            self._set_proofs(updated)  # type: ignore[arg-type]

        logger.info(
            "Added %d proofs worth %d", len(new_proofs), sum(p["amount"] for p in new_proofs)
        )

    async def remove(self, proofs_to_remove: list[Proof]) -> None:
        """Remove spent proofs.

        Raises:
            ProofNotFoundError: If any secret is not held; nothing is written
        """
        if not proofs_to_remove:
            return

        async with self._lock:
            current = self._stored_proofs()
            existing_secrets = {p["secret"] for p in current}
            for proof in proofs_to_remove:
                if proof["secret"] not in existing_secrets:
                    raise ProofNotFoundError(proof["secret"])

            secrets_to_remove = {p["secret"] for p in proofs_to_remove}
            kept = [p for p in current if p["secret"] not in secrets_to_remove]
            self._store.set(STORAGE_KEY, kept)
            self._set_proofs(kept)

        logger.info(
            "Removed %d proofs worth %d",
            len(proofs_to_remove),
            sum(p["amount"] for p in proofs_to_remove),
        )

    # ───────────────────────────── Queries ────────────────────────────────────

    def select_by_amount(self, amount: int, keyset_id: str | None = None) -> list[Proof] | None:
        """First-fit selection in storage order.

        Accumulates proofs (optionally only those of ``keyset_id``) until their
        sum reaches ``amount``. Returns ``None`` when the threshold cannot be
        reached. The ledger is not modified; callers remove the proofs once
        the spend is confirmed.
        """
        result: list[Proof] = []
        total = 0
        for proof in self._stored_proofs():
            if total >= amount:
                break
            if keyset_id and proof["id"] != keyset_id:
                continue
            result.append(proof)
            total += proof["amount"]

        return result if result and total >= amount else None

    @property
    def proofs(self) -> list[Proof]:
        return list(self._proofs)

    @property
    def balance(self) -> int:
        return self._balance

    @property
    def balance_by_wallet(self) -> dict[str, int]:
        return dict(self._balance_by_wallet)

    def by_keyset(self, keyset_id: str) -> list[Proof]:
        return [p for p in self._proofs if p["id"] == keyset_id]
