"""Shared fixtures: an in-process mint that really signs blinded messages."""

import hashlib
import itertools
import re
from typing import Any, Callable

import pytest
from coincurve import PrivateKey, PublicKey

from nut_ledger.crypto import hash_to_curve
from nut_ledger.mint import MintError
from nut_ledger.registry import WalletRegistry
from nut_ledger.storage import StateStore
from nut_ledger.types import Proof
from nut_ledger.wallet import Wallet

MINT_A = "https://mint-a.test"
MINT_B = "https://mint-b.test"
KEYSET_A = "00aa11bb22cc33dd"
KEYSET_B = "00bb22cc33dd44ee"

_INVOICE_RE = re.compile(r"^lnfake(\d+)n")
_counter = itertools.count()


def fake_invoice(amount: int) -> str:
    """A bolt11 stand-in whose amount the fake mint can read back."""
    return f"lnfake{amount}n{next(_counter)}"


def make_proof(amount: int, keyset_id: str = KEYSET_A, secret: str | None = None) -> Proof:
    return {
        "id": keyset_id,
        "amount": amount,
        "secret": secret or f"secret-{next(_counter)}",
        "C": "02" + "ab" * 32,
    }


class FakeLightning:
    """Lightning network shared by fake mints.

    Invoices issued by a mint quote are registered here; a paid melt of that
    invoice at any mint settles the quote at the issuing mint.
    """

    def __init__(self) -> None:
        self.invoices: dict[str, tuple["FakeMint", str]] = {}
        self.paid: list[str] = []

    def register(self, request: str, mint: "FakeMint", quote_id: str) -> None:
        self.invoices[request] = (mint, quote_id)

    def pay(self, request: str) -> None:
        self.paid.append(request)
        if request in self.invoices:
            mint, quote_id = self.invoices[request]
            mint.pay_mint_quote(quote_id)


class FakeMint:
    """Stateful mint double speaking the same interface as :class:`Mint`.

    Signs blinded messages with deterministic per-amount keys so that the
    wallet's unblinding can be checked end to end.
    """

    def __init__(
        self,
        url: str,
        keysets: list[dict[str, Any]] | None = None,
        *,
        fee_for: Callable[[int], int] = lambda amount: 0,
        lightning: FakeLightning | None = None,
    ) -> None:
        self.url = url
        self.lightning = lightning or FakeLightning()
        self.keysets = keysets or [
            {"id": KEYSET_A, "unit": "sat", "active": True, "input_fee_ppk": 0}
        ]
        self.fee_for = fee_for
        self.privkeys: dict[str, dict[int, PrivateKey]] = {
            k["id"]: {
                1 << i: PrivateKey(hashlib.sha256(f"{k['id']}:{1 << i}".encode()).digest())
                for i in range(12)
            }
            for k in self.keysets
        }
        self.mint_quotes: dict[str, dict[str, Any]] = {}
        self.melt_quotes: dict[str, dict[str, Any]] = {}
        self.quote_states: list[str] = []  # scripted answers for get_mint_quote
        self.melt_paid = True
        self.actual_fee = 0
        self.spent: set[str] = set()
        self.calls: list[str] = []
        self.closed = False

    # keys

    async def get_keysets(self) -> list[dict[str, Any]]:
        self.calls.append("get_keysets")
        return [dict(k) for k in self.keysets]

    async def get_keys(self, keyset_id: str) -> dict[str, Any]:
        self.calls.append("get_keys")
        info = next(k for k in self.keysets if k["id"] == keyset_id)
        return {
            "id": keyset_id,
            "unit": info["unit"],
            "keys": self.public_keys(keyset_id),
        }

    def public_keys(self, keyset_id: str) -> dict[str, str]:
        return {
            str(amount): key.public_key.format(compressed=True).hex()
            for amount, key in self.privkeys[keyset_id].items()
        }

    # mint

    async def create_mint_quote(self, *, amount: int, unit: str = "sat", description=None):
        self.calls.append("create_mint_quote")
        quote_id = f"mq{next(_counter)}"
        request = fake_invoice(amount)
        self.mint_quotes[quote_id] = {"amount": amount, "request": request, "state": "UNPAID"}
        self.lightning.register(request, self, quote_id)
        return {"quote": quote_id, "request": request, "amount": amount, "unit": unit, "state": "UNPAID"}

    async def get_mint_quote(self, quote_id: str):
        self.calls.append("get_mint_quote")
        quote = self.mint_quotes[quote_id]
        if self.quote_states:
            quote["state"] = self.quote_states.pop(0)
        return {"quote": quote_id, "request": quote["request"], "state": quote["state"]}

    def pay_mint_quote(self, quote_id: str) -> None:
        self.mint_quotes[quote_id]["state"] = "PAID"

    async def mint(self, *, quote: str, outputs: list[dict[str, Any]]):
        self.calls.append("mint")
        data = self.mint_quotes[quote]
        if data["state"] != "PAID":
            raise MintError(f"Quote {quote} is {data['state']}")
        if sum(o["amount"] for o in outputs) != data["amount"]:
            raise MintError("Outputs do not match quote amount")
        data["state"] = "ISSUED"
        return {"signatures": [self._sign(o) for o in outputs]}

    # melt

    async def create_melt_quote(self, request: str, *, unit: str = "sat"):
        self.calls.append("create_melt_quote")
        match = _INVOICE_RE.match(request)
        if match is None:
            raise MintError(f"Cannot decode invoice {request}")
        amount = int(match.group(1))
        quote_id = f"mlq{next(_counter)}"
        fee_reserve = self.fee_for(amount)
        self.melt_quotes[quote_id] = {"amount": amount, "fee_reserve": fee_reserve, "request": request}
        return {"quote": quote_id, "amount": amount, "fee_reserve": fee_reserve, "unit": unit, "state": "UNPAID"}

    async def melt(self, *, quote: str, inputs: list[Proof], outputs=None):
        self.calls.append("melt")
        data = self.melt_quotes[quote]
        if not self.melt_paid:
            return {"quote": quote, "paid": False, "state": "UNPAID"}

        self._spend(inputs)
        self.lightning.pay(data["request"])
        overpaid = sum(p["amount"] for p in inputs) - data["amount"] - self.actual_fee
        change = []
        if outputs and overpaid > 0:
            amounts = [1 << b for b in range(overpaid.bit_length()) if overpaid >> b & 1]
            for output, amount in zip(outputs, amounts):
                change.append(self._sign(dict(output, amount=amount)))
        return {
            "quote": quote,
            "paid": True,
            "state": "PAID",
            "payment_preimage": "00" * 32,
            "change": change,
        }

    # swap

    async def swap(self, *, inputs: list[Proof], outputs: list[dict[str, Any]]):
        self.calls.append("swap")
        self._spend(inputs)
        return {"signatures": [self._sign(o) for o in outputs]}

    async def aclose(self) -> None:
        self.closed = True

    # helpers

    def _spend(self, inputs: list[Proof]) -> None:
        for proof in inputs:
            if proof["secret"] in self.spent:
                raise MintError("Token already spent")
        self.spent.update(p["secret"] for p in inputs)

    def _sign(self, output: dict[str, Any]) -> dict[str, Any]:
        key = self.privkeys[output["id"]][output["amount"]]
        C_ = PublicKey(bytes.fromhex(output["B_"])).multiply(key.secret)
        return {"id": output["id"], "amount": output["amount"], "C_": C_.format().hex()}

    def verify(self, proof: Proof) -> bool:
        """Check ``C == k * hash_to_curve(secret)``."""
        key = self.privkeys[proof["id"]][proof["amount"]]
        expected = hash_to_curve(proof["secret"].encode()).multiply(key.secret)
        return expected.format().hex() == proof["C"]


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def lightning():
    return FakeLightning()


@pytest.fixture
def mint_a(lightning):
    return FakeMint(MINT_A, lightning=lightning)


@pytest.fixture
def mint_b(lightning):
    return FakeMint(
        MINT_B,
        [{"id": KEYSET_B, "unit": "sat", "active": True, "input_fee_ppk": 0}],
        lightning=lightning,
    )


@pytest.fixture
def wallet_a(mint_a):
    return Wallet(mint_a, keyset_id=KEYSET_A, unit="sat", keys=mint_a.public_keys(KEYSET_A))


@pytest.fixture
def wallet_b(mint_b):
    return Wallet(mint_b, keyset_id=KEYSET_B, unit="sat", keys=mint_b.public_keys(KEYSET_B))


@pytest.fixture
def registry(store, mint_a, mint_b, wallet_a, wallet_b):
    """Registry with both wallets registered and ``wallet_a`` active."""
    mints = {MINT_A: mint_a, MINT_B: mint_b}
    reg = WalletRegistry(store, default_mint_url=MINT_A, mint_factory=mints.__getitem__)
    reg.wallets = {KEYSET_A: wallet_a, KEYSET_B: wallet_b}
    reg.set_active(wallet_a, KEYSET_A)
    return reg
