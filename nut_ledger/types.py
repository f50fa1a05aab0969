"""Type definitions for the nut-ledger package following NUT-00 specifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, TypedDict


class ProofRequired(TypedDict):
    """Required proof fields (NUT-00)."""

    id: str  # keyset ID
    amount: int
    secret: str
    C: str  # hex encoded unblinded signature


class Proof(ProofRequired, total=False):
    """Bearer proof as held in the ledger.

    Optional wire fields are carried through untouched so tokens round-trip
    without losing data.
    """

    dleq: dict[str, Any]  # NUT-12
    witness: str  # NUT-11 / NUT-14


# Standard currency units as per NUT-00 specification
CurrencyUnit = Literal[
    "btc",
    "sat",
    "msat",
    "usd",
    "eur",
    "gbp",
    "jpy",
    "auth",
    "usdt",
    "usdc",
]


class BlindedMessage(TypedDict):
    """Blinded message for mint operations."""

    amount: int
    B_: str  # hex encoded blinded message
    id: str  # keyset ID


class BlindedSignature(TypedDict):
    """Blinded signature response from mint."""

    amount: int
    C_: str  # hex encoded blinded signature
    id: str  # keyset ID


# ──────────────────────────────────────────────────────────────────────────────
# Quotes
# ──────────────────────────────────────────────────────────────────────────────


class MintQuoteState(str, Enum):
    """NUT-04 mint quote states."""

    UNPAID = "UNPAID"
    PAID = "PAID"
    ISSUED = "ISSUED"


@dataclass
class MintQuote:
    """Request to create new proofs once ``request`` (a bolt11 invoice) is paid."""

    quote_id: str
    request: str
    state: MintQuoteState | str
    amount: int | None = None
    unit: str | None = None
    expiry: int | None = None

    @property
    def invoice(self) -> str:
        return self.request

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> MintQuote:
        """Build a quote from a ``/v1/mint/quote/bolt11`` response.

        Older mints only report ``paid``; the state is derived from it then.
        """
        raw_state = response.get("state")
        if raw_state is None:
            raw_state = "PAID" if response.get("paid") else "UNPAID"
        state: MintQuoteState | str
        try:
            state = MintQuoteState(raw_state)
        except ValueError:
            state = raw_state
        return cls(
            quote_id=response["quote"],
            request=response["request"],
            state=state,
            amount=response.get("amount"),
            unit=response.get("unit"),
            expiry=response.get("expiry"),
        )


@dataclass
class MeltQuote:
    """Request to destroy proofs to pay an external invoice."""

    quote_id: str
    amount: int
    fee_reserve: int
    unit: str | None = None
    request: str | None = None
    expiry: int | None = None

    @property
    def total_required(self) -> int:
        return self.amount + self.fee_reserve

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> MeltQuote:
        return cls(
            quote_id=response["quote"],
            amount=int(response["amount"]),
            fee_reserve=int(response.get("fee_reserve", 0)),
            unit=response.get("unit"),
            request=response.get("request"),
            expiry=response.get("expiry"),
        )


@dataclass
class MeltResult:
    """Outcome of a melt: payment status, fee change and the payment preimage."""

    is_paid: bool
    change: list[Proof] = field(default_factory=list)
    preimage: str | None = None


@dataclass
class KeysetRecord:
    """Persisted keyset data for one wallet."""

    keyset_id: str
    unit: str
    keys: dict[str, str]  # amount -> pubkey

    def to_dict(self) -> dict[str, Any]:
        return {"keysetId": self.keyset_id, "unit": self.unit, "keys": self.keys}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeysetRecord:
        return cls(
            keyset_id=data["keysetId"],
            unit=data.get("unit", "sat"),
            keys=dict(data.get("keys") or {}),
        )


# ──────────────────────────────────────────────────────────────────────────────
# Errors
# ──────────────────────────────────────────────────────────────────────────────


class ErrorKind(str, Enum):
    """Closed set of failure kinds raised by the wallet engine."""

    DUPLICATE_PROOF = "duplicate_proof"
    PROOF_NOT_FOUND = "proof_not_found"
    UNKNOWN_KEYSET = "unknown_keyset"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    SWAP_NEGOTIATION = "swap_negotiation"
    MELT_NOT_PAID = "melt_not_paid"
    NO_MATCHING_KEYSET = "no_matching_keyset"
    NO_ACTIVE_WALLET = "no_active_wallet"
    INVALID_TOKEN = "invalid_token"


class WalletError(Exception):
    """Base class for wallet errors."""

    kind: ErrorKind


class MintError(Exception):
    """Base exception for mint errors."""

    pass


class DuplicateProofError(WalletError):
    kind = ErrorKind.DUPLICATE_PROOF

    def __init__(self, secret: str) -> None:
        super().__init__(f"Proof with secret {secret} already exists")
        self.secret = secret


class ProofNotFoundError(WalletError):
    kind = ErrorKind.PROOF_NOT_FOUND

    def __init__(self, secret: str) -> None:
        super().__init__(f"Proof with secret {secret} not found")
        self.secret = secret


class UnknownKeysetError(WalletError):
    kind = ErrorKind.UNKNOWN_KEYSET

    def __init__(self, keyset_id: str) -> None:
        super().__init__(f"No wallet registered for keyset {keyset_id}")
        self.keyset_id = keyset_id


class InsufficientBalanceError(WalletError):
    kind = ErrorKind.INSUFFICIENT_BALANCE

    def __init__(self, balance: int, required: int) -> None:
        super().__init__(f"Insufficient balance: {balance}, required: {required}")
        self.balance = balance
        self.required = required


class SwapNegotiationFailure(WalletError):
    """No feasible mint/melt quote pair, or the swap preconditions failed."""

    kind = ErrorKind.SWAP_NEGOTIATION


class MeltNotPaid(WalletError):
    kind = ErrorKind.MELT_NOT_PAID

    def __init__(self, quote_id: str) -> None:
        super().__init__(f"Lightning payment for melt quote {quote_id} failed")
        self.quote_id = quote_id


class NoMatchingKeysetError(WalletError):
    kind = ErrorKind.NO_MATCHING_KEYSET

    def __init__(self, mint_url: str, unit: str) -> None:
        super().__init__(f"No keyset found for unit {unit} at {mint_url}")
        self.mint_url = mint_url
        self.unit = unit


class NoActiveWalletError(WalletError):
    kind = ErrorKind.NO_ACTIVE_WALLET

    def __init__(self) -> None:
        super().__init__("No active wallet selected")


class TokenError(WalletError):
    kind = ErrorKind.INVALID_TOKEN
