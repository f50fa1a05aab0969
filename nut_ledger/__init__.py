"""nut-ledger - Multi-mint Cashu wallet engine.

Holds bearer proofs for several mints and keysets, receives and sends over
Lightning and moves value between mints with self-paid invoices.
"""

from .config import Settings
from .ledger import ProofLedger
from .mint import Mint
from .payments import PaymentOrchestrator, PendingReceive, ReceiveOutcome
from .registry import WalletRegistry
from .session import WalletSession
from .storage import StateStore
from .swap import SwapEngine
from .token import Token, decode_token, encode_token
from .types import (
    DuplicateProofError,
    ErrorKind,
    InsufficientBalanceError,
    MeltNotPaid,
    MintError,
    NoActiveWalletError,
    NoMatchingKeysetError,
    ProofNotFoundError,
    SwapNegotiationFailure,
    TokenError,
    UnknownKeysetError,
    WalletError,
)
from .wallet import Wallet

__all__ = [
    # Entry point
    "WalletSession",
    "Settings",
    # Engine components
    "StateStore",
    "ProofLedger",
    "WalletRegistry",
    "PaymentOrchestrator",
    "PendingReceive",
    "ReceiveOutcome",
    "SwapEngine",
    "Wallet",
    "Mint",
    # Tokens
    "Token",
    "encode_token",
    "decode_token",
    # Errors
    "ErrorKind",
    "WalletError",
    "MintError",
    "DuplicateProofError",
    "ProofNotFoundError",
    "UnknownKeysetError",
    "InsufficientBalanceError",
    "SwapNegotiationFailure",
    "MeltNotPaid",
    "NoMatchingKeysetError",
    "NoActiveWalletError",
    "TokenError",
]
