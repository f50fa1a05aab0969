"""Cashu cryptographic primitives for the wallet half of BDHKE (Blind Diffie-Hellmann Key Exchange)."""

from __future__ import annotations

import hashlib
import re
import secrets
from dataclasses import dataclass

from coincurve import PrivateKey, PublicKey

from .types import BlindedMessage

DOMAIN_SEPARATOR = b"Secp256k1_HashToCurve_Cashu_"

# secp256k1 field prime
_P = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F

_HEX_RE = re.compile(r"^[0-9A-Fa-f]+$")


@dataclass
class BlindingData:
    """Everything needed to turn one blinded signature back into a proof."""

    secret: str  # hex secret, used as the proof secret
    r: str  # blinding factor (hex)
    message: BlindedMessage


def hash_to_curve(message: bytes) -> PublicKey:
    """Hash a message to a point on the secp256k1 curve (NUT-00).

    Y = PublicKey('02' || SHA256(msg_hash || counter)) for the first counter
    that yields a valid point.
    """
    msg_to_hash = hashlib.sha256(DOMAIN_SEPARATOR + message).digest()
    counter = 0
    while counter < 2**16:
        candidate = hashlib.sha256(msg_to_hash + counter.to_bytes(4, "little")).digest()
        try:
            return PublicKey(b"\x02" + candidate)
        except ValueError:
            counter += 1
    raise ValueError("No valid curve point found")


def blind_message(secret: str, r: bytes | None = None) -> tuple[PublicKey, bytes]:
    """Blind a secret for the mint.

    Args:
        secret: The proof secret; hashed to the curve as its UTF-8 bytes
        r: Optional blinding factor (will be generated if not provided)

    Returns:
        Tuple of (blinded_point, blinding_factor)
    """
    Y = hash_to_curve(secret.encode("utf-8"))

    if r is None:
        r = secrets.token_bytes(32)

    r_key = PrivateKey(r)

    # B' = Y + r*G
    B_ = PublicKey.combine_keys([Y, r_key.public_key])

    return B_, r


def _negate(point: PublicKey) -> PublicKey:
    raw = point.format(compressed=False)
    x = raw[1:33]
    y_int = int.from_bytes(raw[33:65], "big")
    neg_y = ((_P - y_int) % _P).to_bytes(32, "big")
    return PublicKey(b"\x04" + x + neg_y)


def unblind_signature(C_: PublicKey, r: bytes, K: PublicKey) -> PublicKey:
    """Unblind a signature from the mint.

    Args:
        C_: Blinded signature from mint
        r: Blinding factor used
        K: Mint's public key for the signed amount

    Returns:
        Unblinded signature C = C' - r*K
    """
    r_key = PrivateKey(r)
    rK = K.multiply(r_key.secret)
    return PublicKey.combine_keys([C_, _negate(rK)])


def create_blinded_message_with_secret(amount: int, keyset_id: str) -> BlindingData:
    """Create a fresh random secret and its blinded message for ``amount``."""
    secret = secrets.token_hex(32)
    B_, r = blind_message(secret)
    return BlindingData(
        secret=secret,
        r=r.hex(),
        message=BlindedMessage(
            amount=amount,
            B_=B_.format(compressed=True).hex(),
            id=keyset_id,
        ),
    )


def create_blinded_messages(amounts: list[int], keyset_id: str) -> list[BlindingData]:
    return [create_blinded_message_with_secret(amount, keyset_id) for amount in amounts]


def get_mint_pubkey_for_amount(keys: dict[str, str], amount: int) -> PublicKey | None:
    """Look up the mint's public key for a denomination."""
    pubkey_hex = keys.get(str(amount))
    if pubkey_hex is None:
        return None
    return PublicKey(bytes.fromhex(pubkey_hex))


def is_hex_keyset_id(keyset_id: str) -> bool:
    """Guard against non-standard (e.g. legacy base64) keyset ids."""
    return isinstance(keyset_id, str) and bool(_HEX_RE.match(keyset_id))
