"""
Cashu Mint API client wrapper."""

from __future__ import annotations

import logging
import os
from typing import Any, TypedDict, cast

import httpx

from .types import (
    BlindedMessage,
    BlindedSignature,
    CurrencyUnit,
    MintError,
    Proof,
)

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Mint API client
# ──────────────────────────────────────────────────────────────────────────────


class InvalidKeysetError(MintError):
    """Raised when keyset structure is invalid per NUT-01."""


class Mint:
    def __init__(self, url: str, *, client: httpx.AsyncClient | None = None) -> None:
        # Normalize URL by removing trailing slashes
        self.url = url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=30.0)

    async def aclose(self) -> None:
        """Close the HTTP client if we created it."""
        if self._owns_client:
            await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make HTTP request to mint."""
        if os.environ.get("MINT_DEBUG", "false").lower() == "true":
            logger.info("MINT_DEBUG %s request to %s%s", method, self.url, path)
        response = await self.client.request(
            method,
            f"{self.url}{path}",
            json=json,
            params=params,
        )

        if response.status_code >= 400:
            detail = response.text
            try:
                body = response.json()
                if isinstance(body, dict) and "detail" in body:
                    detail = str(body["detail"])
            except ValueError:
                pass
            raise MintError(f"Mint returned {response.status_code}: {detail}")

        return response.json()

    def _validate_keyset(self, keyset: dict[str, Any]) -> bool:
        """Validate keyset structure per NUT-01 specification."""
        if not all(field in keyset for field in ("id", "unit", "keys")):
            return False

        keys = keyset.get("keys", {})
        if not isinstance(keys, dict):
            return False

        for amount_str, pubkey in keys.items():
            try:
                if int(amount_str) <= 0:
                    return False
            except (ValueError, TypeError):
                return False
            if not self._is_valid_compressed_pubkey(pubkey):
                return False

        return True

    def _is_valid_compressed_pubkey(self, pubkey: str) -> bool:
        """Validate that pubkey is a hex compressed secp256k1 public key."""
        if not isinstance(pubkey, str) or len(pubkey) != 66:
            return False
        if not pubkey.startswith(("02", "03")):
            return False
        try:
            bytes.fromhex(pubkey)
            return True
        except ValueError:
            return False

    def _validate_keys_response(self, response: dict[str, Any]) -> KeysResponse:
        """Validate and cast response to NUT-01 compliant KeysResponse.

        Raises:
            InvalidKeysetError: If response doesn't match NUT-01 specification
        """
        if "keysets" not in response:
            raise InvalidKeysetError("Response missing 'keysets' field")

        keysets = response["keysets"]
        if not isinstance(keysets, list):
            raise InvalidKeysetError("'keysets' must be a list")

        for i, keyset in enumerate(keysets):
            if not self._validate_keyset(keyset):
                raise InvalidKeysetError(f"Invalid keyset at index {i}")

        return cast(KeysResponse, response)

    # ───────────────────────── Info & Keys ─────────────────────────────────

    async def get_info(self) -> MintInfo:
        """Get mint information."""
        return cast(MintInfo, await self._request("GET", "/v1/info"))

    async def get_keysets(self) -> list[KeysetInfo]:
        """Get all keysets (active and inactive) known to the mint (NUT-02)."""
        response = await self._request("GET", "/v1/keysets")
        keysets = response.get("keysets")
        if not isinstance(keysets, list):
            raise InvalidKeysetError("'keysets' must be a list")
        return cast(list[KeysetInfo], keysets)

    async def get_keys(self, keyset_id: str) -> Keyset:
        """Get the public keys of one keyset (NUT-01)."""
        response = await self._request("GET", f"/v1/keys/{keyset_id}")
        keysets = self._validate_keys_response(response)["keysets"]
        for keyset in keysets:
            if keyset["id"] == keyset_id:
                return keyset
        raise InvalidKeysetError(f"Mint did not return keys for keyset {keyset_id}")

    # ───────────────────────── Minting (receive) ─────────────────────────────────

    async def create_mint_quote(
        self,
        *,
        amount: int,
        unit: CurrencyUnit | str = "sat",
        description: str | None = None,
    ) -> PostMintQuoteResponse:
        """Request a Lightning invoice to mint tokens."""
        body: dict[str, Any] = {
            "unit": unit,
            "amount": amount,
        }
        if description is not None:
            body["description"] = description

        return cast(
            PostMintQuoteResponse,
            await self._request("POST", "/v1/mint/quote/bolt11", json=body),
        )

    async def get_mint_quote(self, quote_id: str) -> PostMintQuoteResponse:
        """Check status of a mint quote."""
        return cast(
            PostMintQuoteResponse,
            await self._request("GET", f"/v1/mint/quote/bolt11/{quote_id}"),
        )

    async def mint(
        self,
        *,
        quote: str,
        outputs: list[BlindedMessage],
    ) -> PostMintResponse:
        """Mint tokens after paying the Lightning invoice."""
        body: dict[str, Any] = {
            "quote": quote,
            "outputs": outputs,
        }
        return cast(
            PostMintResponse, await self._request("POST", "/v1/mint/bolt11", json=body)
        )

    # ───────────────────────── Melting (send) ─────────────────────────────────

    async def create_melt_quote(
        self,
        request: str,
        *,
        unit: CurrencyUnit | str = "sat",
    ) -> PostMeltQuoteResponse:
        """Get a quote for paying a Lightning invoice."""
        body: dict[str, Any] = {
            "unit": unit,
            "request": request,
        }
        return cast(
            PostMeltQuoteResponse,
            await self._request("POST", "/v1/melt/quote/bolt11", json=body),
        )

    async def melt(
        self,
        *,
        quote: str,
        inputs: list[Proof],
        outputs: list[BlindedMessage] | None = None,
    ) -> PostMeltQuoteResponse:
        """Melt tokens to pay a Lightning invoice.

        ``outputs`` are NUT-08 blank outputs the mint may sign as fee change.
        """
        body: dict[str, Any] = {
            "quote": quote,
            "inputs": inputs,
        }
        if outputs is not None:
            body["outputs"] = outputs

        return cast(
            PostMeltQuoteResponse,
            await self._request("POST", "/v1/melt/bolt11", json=body),
        )

    # ───────────────────────── Token Management ─────────────────────────────────

    async def swap(
        self,
        *,
        inputs: list[Proof],
        outputs: list[BlindedMessage],
    ) -> PostSwapResponse:
        """Swap proofs for new blinded signatures."""
        body: dict[str, Any] = {
            "inputs": inputs,
            "outputs": outputs,
        }
        return cast(
            PostSwapResponse, await self._request("POST", "/v1/swap", json=body)
        )


# ──────────────────────────────────────────────────────────────────────────────
# Type definitions based on NUT-01 and OpenAPI spec
# ──────────────────────────────────────────────────────────────────────────────


class MintInfo(TypedDict, total=False):
    """Mint information response."""

    name: str
    pubkey: str
    version: str
    description: str
    contact: list[dict[str, str]]
    motd: str
    nuts: dict[str, dict[str, Any]]


class Keyset(TypedDict):
    """Individual keyset per NUT-01 specification."""

    id: str
    unit: CurrencyUnit
    keys: dict[str, str]  # amount -> compressed secp256k1 pubkey mapping


class KeysResponse(TypedDict):
    """NUT-01 compliant mint keys response from GET /v1/keys."""

    keysets: list[Keyset]


class KeysetInfoRequired(TypedDict):
    id: str
    unit: CurrencyUnit
    active: bool


class KeysetInfo(KeysetInfoRequired, total=False):
    """Keyset entry of GET /v1/keysets (NUT-02)."""

    input_fee_ppk: int  # input fee in parts per thousand


class PostMintQuoteResponse(TypedDict, total=False):
    quote: str  # quote id
    request: str  # bolt11 invoice
    amount: int
    unit: CurrencyUnit
    state: str  # "UNPAID", "PAID", "ISSUED"
    expiry: int
    paid: bool  # deprecated


class PostMintResponse(TypedDict):
    signatures: list[BlindedSignature]


class PostMeltQuoteResponse(TypedDict, total=False):
    quote: str
    amount: int
    fee_reserve: int
    unit: CurrencyUnit
    request: str
    paid: bool  # deprecated
    state: str  # "UNPAID", "PENDING", "PAID"
    expiry: int
    payment_preimage: str | None
    change: list[BlindedSignature]


class PostSwapResponse(TypedDict):
    signatures: list[BlindedSignature]
