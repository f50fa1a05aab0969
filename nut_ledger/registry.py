"""Registry of wallet handles keyed by keyset id.

Persisted layout (see :class:`~nut_ledger.storage.StateStore`):

1. ``"mintUrls"``: list of every mint URL added, deduplicated.
2. ``"<mint url>"``: ``{"keysets": [{"keysetId", "unit", "keys"}, ...]}``.
3. ``"activeWalletKeysetId"``: keyset id of the active wallet.
"""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from .crypto import is_hex_keyset_id
from .mint import KeysetInfo, Mint
from .storage import StateStore
from .types import (
    KeysetRecord,
    MintError,
    NoActiveWalletError,
    NoMatchingKeysetError,
)
from .wallet import Wallet

logger = logging.getLogger(__name__)

MINT_URLS_KEY = "mintUrls"
ACTIVE_WALLET_KEY = "activeWalletKeysetId"


class WalletRegistry:
    """Maps keyset ids to wallet handles and tracks the active one."""

    def __init__(
        self,
        store: StateStore,
        *,
        default_mint_url: str,
        default_unit: str = "sat",
        mint_factory: Callable[[str], Mint] = Mint,
    ) -> None:
        self._store = store
        self.default_mint_url = default_mint_url.rstrip("/")
        self.default_unit = default_unit
        self._mint_factory = mint_factory
        self._mints: dict[str, Mint] = {}
        self.wallets: dict[str, Wallet] = {}
        self.active: Wallet | None = None

    # ───────────────────────────── Lookup ─────────────────────────────────────

    def get(self, keyset_id: str) -> Wallet | None:
        return self.wallets.get(keyset_id)

    def has_keyset(self, keyset_id: str) -> bool:
        return keyset_id in self.wallets

    def require_active(self) -> Wallet:
        if self.active is None:
            raise NoActiveWalletError()
        return self.active

    @property
    def mint_urls(self) -> list[str]:
        return list(self._store.get(MINT_URLS_KEY, []))

    def _get_mint(self, mint_url: str) -> Mint:
        """Get or create the shared client for a mint."""
        mint_url = mint_url.rstrip("/")
        if mint_url not in self._mints:
            self._mints[mint_url] = self._mint_factory(mint_url)
        return self._mints[mint_url]

    # ───────────────────────────── Bootstrap ──────────────────────────────────

    async def bootstrap(self) -> None:
        """Build wallets from persisted mint/keyset data.

        Stale local data is tolerated: keysets the mint no longer lists, or
        lists as inactive, are loaded anyway with a warning.
        """
        if not self.mint_urls:
            logger.info("No mints stored, adding default mint %s", self.default_mint_url)
            try:
                await self.add_wallet(self.default_mint_url, self.default_unit)
            except (MintError, httpx.HTTPError, NoMatchingKeysetError) as e:
                logger.warning("Could not add default mint %s: %s", self.default_mint_url, e)

        mint_keysets: dict[str, list[KeysetInfo] | None] = {}

        for mint_url in self.mint_urls:
            records = [
                KeysetRecord.from_dict(k)
                for k in self._store.get(mint_url, {}).get("keysets", [])
            ]
            if not records:
                logger.warning("No keysets found for %s", mint_url)
                continue

            mint = self._get_mint(mint_url)
            if mint_url not in mint_keysets:
                try:
                    mint_keysets[mint_url] = await mint.get_keysets()
                except (MintError, httpx.HTTPError) as e:
                    logger.warning(
                        "Failed to fetch keysets for %s (%s). Using local data.", mint_url, e
                    )
                    mint_keysets[mint_url] = None
            live = mint_keysets[mint_url]

            for record in records:
                input_fee_ppk = 0
                if live is not None:
                    info = next((k for k in live if k["id"] == record.keyset_id), None)
                    if info is None:
                        logger.warning("Keyset %s not found at %s", record.keyset_id, mint_url)
                    else:
                        if info.get("active") is not True:
                            logger.warning(
                                "Keyset %s is no longer active, you should rotate to the new keyset",
                                record.keyset_id,
                            )
                        input_fee_ppk = int(info.get("input_fee_ppk", 0) or 0)

                self.wallets[record.keyset_id] = Wallet(
                    mint,
                    keyset_id=record.keyset_id,
                    unit=record.unit,
                    keys=record.keys,
                    input_fee_ppk=input_fee_ppk,
                )

        logger.info("Wallets loaded: %s", list(self.wallets))

        active_keyset_id = self._store.get(ACTIVE_WALLET_KEY)
        if active_keyset_id and active_keyset_id in self.wallets:
            self.set_active(self.wallets[active_keyset_id], active_keyset_id)
        elif self.wallets:
            keyset_id, wallet = next(iter(self.wallets.items()))
            self.set_active(wallet, keyset_id)

    # ───────────────────────────── Mutations ──────────────────────────────────

    async def add_wallet(self, mint_url: str, unit: str = "sat") -> Wallet:
        """Register a wallet for the mint's keyset matching ``unit``.

        Raises:
            NoMatchingKeysetError: If the mint has no hex-id keyset for ``unit``
        """
        mint_url = mint_url.rstrip("/")
        logger.info("Adding wallet: %s %s", mint_url, unit)

        mint = self._get_mint(mint_url)
        keysets = await mint.get_keysets()
        candidates = [
            k for k in keysets if k.get("unit") == unit and is_hex_keyset_id(k.get("id", ""))
        ]
        # Prefer active keysets, otherwise keep the mint's order.
        candidates.sort(key=lambda k: k.get("active") is not True)
        if not candidates:
            raise NoMatchingKeysetError(mint_url, unit)
        keyset_info = candidates[0]
        logger.debug("Found keyset: %s", keyset_info)

        keyset = await mint.get_keys(keyset_info["id"])
        wallet = Wallet(
            mint,
            keyset_id=keyset_info["id"],
            unit=unit,
            keys=dict(keyset["keys"]),
            input_fee_ppk=int(keyset_info.get("input_fee_ppk", 0) or 0),
        )
        self.wallets[wallet.keyset_id] = wallet
        self._persist_wallet(mint_url, wallet.to_record())

        if self.active is None:
            self.set_active(wallet, wallet.keyset_id)
        return wallet

    def _persist_wallet(self, mint_url: str, record: KeysetRecord) -> None:
        mint_urls = self.mint_urls
        if mint_url not in mint_urls:
            mint_urls.append(mint_url)
            self._store.set(MINT_URLS_KEY, mint_urls)

        mint_data = self._store.get(mint_url, {}) or {}
        keysets = [
            k for k in mint_data.get("keysets", []) if k.get("keysetId") != record.keyset_id
        ]
        keysets.append(record.to_dict())
        mint_data["keysets"] = keysets
        self._store.set(mint_url, mint_data)

    def set_active(self, wallet: Wallet | None, keyset_id: str | None) -> None:
        if not wallet or not keyset_id:
            logger.warning(
                "Attempted to set invalid active wallet (wallet=%r, keyset_id=%r)",
                wallet,
                keyset_id,
            )
            return
        logger.info("Setting active wallet to keyset %s", keyset_id)
        self.active = wallet
        self._store.set(ACTIVE_WALLET_KEY, keyset_id)

    # ─────────────────────────────── Cleanup ──────────────────────────────────

    async def aclose(self) -> None:
        """Close mint HTTP clients."""
        for mint in self._mints.values():
            await mint.aclose()
        self._mints.clear()
