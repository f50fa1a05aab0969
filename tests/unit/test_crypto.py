"""Unit tests for BDHKE helpers, denominations and wallet proof construction."""

import hashlib
import math

import pytest
from coincurve import PrivateKey

from nut_ledger.crypto import (
    blind_message,
    create_blinded_messages,
    hash_to_curve,
    is_hex_keyset_id,
    unblind_signature,
)
from nut_ledger.denominations import blank_outputs_needed, keyset_denominations, split_amount
from nut_ledger.types import MintError, WalletError
from nut_ledger.wallet import Wallet

from tests.conftest import KEYSET_A, make_proof


class TestHashToCurve:
    def test_test_vectors(self):
        # NUT-00 test vectors
        vectors = {
            "0000000000000000000000000000000000000000000000000000000000000000":
                "024cce997d3b518f739663b757deaec95bcd9473c30a14ac2fd04023a739d1a725",
            "0000000000000000000000000000000000000000000000000000000000000001":
                "022e7158e11c9506f1aa4248bf531298daa7febd6194f003edcd9b93ade6253acf",
        }
        for message, expected in vectors.items():
            assert hash_to_curve(bytes.fromhex(message)).format().hex() == expected

    def test_deterministic(self):
        assert hash_to_curve(b"secret").format() == hash_to_curve(b"secret").format()


class TestBlinding:
    def test_unblind_recovers_k_times_y(self):
        k = PrivateKey(hashlib.sha256(b"mint key").digest())
        secret = "test_message"

        B_, r = blind_message(secret)
        C_ = B_.multiply(k.secret)
        C = unblind_signature(C_, r, k.public_key)

        expected = hash_to_curve(secret.encode()).multiply(k.secret)
        assert C.format() == expected.format()

    def test_blinded_messages_are_unique(self):
        data = create_blinded_messages([1, 1, 2], KEYSET_A)
        assert len({d.secret for d in data}) == 3
        assert [d.message["amount"] for d in data] == [1, 1, 2]
        assert all(d.message["id"] == KEYSET_A for d in data)

    @pytest.mark.parametrize(
        "keyset_id,expected",
        [("00aa11bb22cc33dd", True), ("I2yN+iRYfkzT", False), ("", False)],
    )
    def test_is_hex_keyset_id(self, keyset_id, expected):
        assert is_hex_keyset_id(keyset_id) is expected


class TestDenominations:
    def test_powers_of_two(self):
        assert split_amount(13) == [8, 4, 1]
        assert split_amount(0) == []

    def test_keyset_denominations(self):
        keys = {"1": "x", "2": "x", "4": "x", "bad": "x"}
        assert keyset_denominations(keys) == [1, 2, 4]
        assert split_amount(9, [1, 2, 4]) == [4, 4, 1]

    def test_unrepresentable(self):
        with pytest.raises(ValueError):
            split_amount(3, [2])
        with pytest.raises(ValueError):
            split_amount(-1)

    @pytest.mark.parametrize(
        "fee_reserve,expected",
        [(0, 0), (-1, 0), (1, 1), (2, 1), (4, 2), (100, 7), (1000, 10)],
    )
    def test_blank_outputs_needed(self, fee_reserve, expected):
        assert blank_outputs_needed(fee_reserve) == expected

    def test_blank_outputs_formula(self):
        for fee_reserve in range(1, 2050):
            assert blank_outputs_needed(fee_reserve) == max(math.ceil(math.log2(fee_reserve)), 1)


class TestWalletProofs:
    async def test_mint_tokens_produces_valid_proofs(self, wallet_a, mint_a):
        quote = await wallet_a.create_mint_quote(21)
        mint_a.pay_mint_quote(quote.quote_id)

        proofs = await wallet_a.mint_tokens(21, quote.quote_id)

        assert sorted(p["amount"] for p in proofs) == [1, 4, 16]
        assert all(p["id"] == KEYSET_A for p in proofs)
        assert all(mint_a.verify(p) for p in proofs)

    async def test_too_many_signatures(self, wallet_a):
        sig = {"id": KEYSET_A, "amount": 1, "C_": "02" + "00" * 32}
        with pytest.raises(MintError):
            wallet_a._construct_proofs([sig], [])

    def test_input_fees(self, wallet_a):
        proofs = [make_proof(1), make_proof(2), make_proof(4)]
        assert wallet_a.calculate_input_fees(proofs) == 0
        wallet_a.input_fee_ppk = 100
        assert wallet_a.calculate_input_fees(proofs) == 1  # ceil(0.3)
        wallet_a.input_fee_ppk = 1000
        assert wallet_a.calculate_input_fees(proofs) == 3
        assert wallet_a.calculate_input_fees([]) == 0

    async def test_swap_proofs_deducts_fees(self, wallet_a, mint_a):
        wallet_a.input_fee_ppk = 1000
        quote = await wallet_a.create_mint_quote(8)
        mint_a.pay_mint_quote(quote.quote_id)
        proofs = await wallet_a.mint_tokens(8, quote.quote_id)

        swapped = await wallet_a.swap_proofs(proofs)

        assert sum(p["amount"] for p in swapped) == 7
        assert all(mint_a.verify(p) for p in swapped)

    async def test_swap_proofs_fees_exceed_amount(self, wallet_a):
        wallet_a.input_fee_ppk = 1000
        with pytest.raises(WalletError):
            await wallet_a.swap_proofs([make_proof(1)])

    def test_to_record(self, wallet_a):
        record = wallet_a.to_record()
        assert record.to_dict()["keysetId"] == KEYSET_A
        assert isinstance(wallet_a, Wallet)
