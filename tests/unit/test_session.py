"""Unit tests for the wallet session: wiring, lifecycle and tokens."""

import pytest

from nut_ledger.config import Settings
from nut_ledger.session import WalletSession
from nut_ledger.token import decode_token, encode_token
from nut_ledger.types import InsufficientBalanceError, UnknownKeysetError

from tests.conftest import KEYSET_A, MINT_A, MINT_B, FakeMint, make_proof


@pytest.fixture
def settings():
    return Settings(state_path=None, default_mint_url=MINT_A, poll_interval=0)


@pytest.fixture
def mints(mint_a, mint_b):
    return {MINT_A: mint_a, MINT_B: mint_b}


@pytest.fixture
async def session(settings, store, mints):
    session = await WalletSession.create(settings, store=store, mint_factory=mints.__getitem__)
    yield session
    await session.aclose()


async def _fund(session: WalletSession, mint: FakeMint, amount: int) -> None:
    mint.quote_states = ["PAID"]
    pending = await session.payments.receive(amount)
    await pending.wait()


class TestSessionLifecycle:
    async def test_create_bootstraps_default_mint(self, session):
        assert session.registry.active.keyset_id == KEYSET_A
        assert session.balance == 0

    async def test_ledger_rejects_unregistered_keysets(self, session):
        with pytest.raises(UnknownKeysetError):
            await session.ledger.add([make_proof(1, "00ffffffffffffff")])

    async def test_context_manager_closes_mints(self, settings, store, mints, mint_a):
        async with WalletSession(settings, store=store, mint_factory=mints.__getitem__) as session:
            assert session.registry.active is not None
        assert mint_a.closed

    async def test_state_shared_through_store(self, session, settings, store, mints, mint_a):
        await _fund(session, mint_a, 12)

        other = await WalletSession.create(settings, store=store, mint_factory=mints.__getitem__)
        assert other.balance == 12
        assert other.registry.active.keyset_id == KEYSET_A


class TestTokens:
    async def test_send_token(self, session, mint_a):
        await _fund(session, mint_a, 13)  # 8 + 4 + 1

        token = await session.send_token(9)

        decoded = decode_token(token)
        assert decoded.mints == [MINT_A]
        assert decoded.amount >= 9
        assert session.balance == 13 - decoded.amount
        assert all(mint_a.verify(p) for p in decoded.proofs)

    async def test_send_token_v4(self, session, mint_a):
        await _fund(session, mint_a, 4)
        token = await session.send_token(4, version=4)
        assert token.startswith("cashuB")
        assert session.balance == 0

    async def test_send_token_insufficient(self, session, mint_a):
        await _fund(session, mint_a, 4)
        with pytest.raises(InsufficientBalanceError):
            await session.send_token(5)
        assert session.balance == 4

    async def test_redeem_token_swaps_at_mint(self, session, mint_a):
        await _fund(session, mint_a, 8)
        token = await session.send_token(8)
        sent = decode_token(token).proofs

        received = await session.redeem_token(token)

        assert received == 8
        assert session.balance == 8
        # fresh secrets, old ones spent at the mint
        assert not {p["secret"] for p in sent} & {p["secret"] for p in session.ledger.proofs}
        assert {p["secret"] for p in sent} <= mint_a.spent

    async def test_redeem_unknown_keyset(self, session):
        token = encode_token([make_proof(1, "00ffffffffffffff")], "https://other.test")
        with pytest.raises(UnknownKeysetError):
            await session.redeem_token(token)
