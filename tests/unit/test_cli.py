"""Unit tests for the CLI commands that work without a mint."""

from typer.testing import CliRunner

from nut_ledger.cli import app
from nut_ledger.token import encode_token

from tests.conftest import make_proof

runner = CliRunner()


class TestDecodeCommand:
    def test_decode_shows_amount_and_mint(self):
        token = encode_token([make_proof(8), make_proof(2)], "https://mint.test", unit="sat", memo="hi")

        result = runner.invoke(app, ["decode", token])

        assert result.exit_code == 0
        assert "10 sat" in result.output
        assert "https://mint.test" in result.output
        assert "hi" in result.output

    def test_decode_invalid_token(self):
        result = runner.invoke(app, ["decode", "cashuAnotatoken"])

        assert result.exit_code == 1
        assert "Invalid token" in result.output


class TestAddMintCommand:
    def test_rejects_invalid_url(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NUT_LEDGER_STATE", str(tmp_path / "state.json"))

        result = runner.invoke(app, ["add-mint", "mint.test"])

        assert result.exit_code == 1
        assert "Invalid mint URL" in result.output
