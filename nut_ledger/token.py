"""Cashu token serialization (NUT-00 V3 ``cashuA`` and V4 ``cashuB``)."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Literal

import cbor2

from .types import Proof, TokenError


@dataclass
class TokenEntry:
    mint: str
    proofs: list[Proof]


@dataclass
class Token:
    """Decoded token: proofs grouped by mint."""

    entries: list[TokenEntry] = field(default_factory=list)
    unit: str | None = None
    memo: str | None = None

    @property
    def proofs(self) -> list[Proof]:
        return [p for entry in self.entries for p in entry.proofs]

    @property
    def amount(self) -> int:
        return sum(p["amount"] for p in self.proofs)

    @property
    def mints(self) -> list[str]:
        return list(dict.fromkeys(entry.mint for entry in self.entries))


def _b64_decode(encoded: str) -> bytes:
    # Add correct padding – (-len) % 4 equals 0,1,2,3
    encoded += "=" * ((-len(encoded)) % 4)
    return base64.urlsafe_b64decode(encoded)


def _b64_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def encode_token(
    proofs: list[Proof],
    mint_url: str,
    *,
    unit: str | None = None,
    memo: str | None = None,
    version: Literal[3, 4] = 3,
) -> str:
    """Serialize proofs from one mint into a Cashu token."""
    if version == 3:
        return _encode_v3(Token([TokenEntry(mint_url, proofs)], unit=unit, memo=memo))
    elif version == 4:
        return _encode_v4(proofs, mint_url, unit=unit, memo=memo)
    raise ValueError(f"Unsupported token version: {version}")


def _encode_v3(token: Token) -> str:
    """CashuA (V3): ``cashuA`` + base64url(JSON). Every proof field is kept."""
    token_data: dict[str, Any] = {
        "token": [{"mint": e.mint, "proofs": [dict(p) for p in e.proofs]} for e in token.entries]
    }
    if token.unit:
        token_data["unit"] = token.unit
    if token.memo:
        token_data["memo"] = token.memo
    json_str = json.dumps(token_data, separators=(",", ":"))
    return f"cashuA{_b64_encode(json_str.encode())}"


def _encode_v4(
    proofs: list[Proof], mint_url: str, *, unit: str | None, memo: str | None
) -> str:
    """CashuB (V4): ``cashuB`` + base64url(CBOR), proofs grouped by keyset."""
    proofs_by_keyset: dict[str, list[Proof]] = {}
    for proof in proofs:
        proofs_by_keyset.setdefault(proof["id"], []).append(proof)

    tokens = []
    for keyset_id, keyset_proofs in proofs_by_keyset.items():
        v4_proofs = []
        for proof in keyset_proofs:
            v4_proof: dict[str, Any] = {
                "a": proof["amount"],
                "s": proof["secret"],
                "c": bytes.fromhex(proof["C"]),
            }
            if "witness" in proof:
                v4_proof["w"] = proof["witness"]
            v4_proofs.append(v4_proof)
        tokens.append({"i": bytes.fromhex(keyset_id), "p": v4_proofs})

    token_data: dict[str, Any] = {"m": mint_url, "u": unit or "sat", "t": tokens}
    if memo:
        token_data["d"] = memo
    return f"cashuB{_b64_encode(cbor2.dumps(token_data))}"


def decode_token(token: str) -> Token:
    """Parse a ``cashuA`` or ``cashuB`` token.

    Raises:
        TokenError: If the token is malformed or of an unknown version
    """
    token = token.strip()
    if token.startswith("cashu:"):
        token = token[len("cashu:"):]

    try:
        if token.startswith("cashuA"):
            return _decode_v3(_b64_decode(token[6:]))
        elif token.startswith("cashuB"):
            return _decode_v4(_b64_decode(token[6:]))
    except (
        binascii.Error,
        ValueError,
        KeyError,
        TypeError,
        AttributeError,
        cbor2.CBORDecodeError,
    ) as e:
        raise TokenError(f"Invalid token: {e}") from e

    raise TokenError(f"Unknown token version: {token[:7]}")


def _decode_v3(raw: bytes) -> Token:
    token_data = json.loads(raw.decode())
    entries = []
    for entry in token_data["token"]:
        proofs: list[Proof] = []
        for proof in entry["proofs"]:
            if not all(k in proof for k in ("id", "amount", "secret", "C")):
                raise KeyError(f"proof missing required fields: {sorted(proof)}")
            proofs.append(proof)
        entries.append(TokenEntry(mint=entry["mint"], proofs=proofs))
    return Token(entries=entries, unit=token_data.get("unit"), memo=token_data.get("memo"))


def _decode_v4(raw: bytes) -> Token:
    # 'm' = mint URL, 'u' = unit, 't' = tokens array, 'd' = memo
    token_data = cbor2.loads(raw)
    proofs: list[Proof] = []
    for token_entry in token_data["t"]:
        keyset_id = token_entry["i"].hex()
        for proof in token_entry["p"]:
            parsed: Proof = {
                "id": keyset_id,
                "amount": proof["a"],
                "secret": proof["s"],
                "C": proof["c"].hex(),
            }
            if "w" in proof:
                parsed["witness"] = proof["w"]
            proofs.append(parsed)
    return Token(
        entries=[TokenEntry(mint=token_data["m"], proofs=proofs)],
        unit=token_data.get("u"),
        memo=token_data.get("d"),
    )
