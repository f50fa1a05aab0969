"""Runtime configuration read from the environment or a ``.env`` file."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values

DEFAULT_MINT_URL = "https://nofees.testnut.cashu.space"
DEFAULT_UNIT = "sat"
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_SWAP_ATTEMPTS = 5
DEFAULT_STATE_PATH = Path.home() / ".nut-ledger" / "state.json"

STATE_ENV_VAR = "NUT_LEDGER_STATE"
MINT_ENV_VAR = "NUT_LEDGER_DEFAULT_MINT"
UNIT_ENV_VAR = "NUT_LEDGER_DEFAULT_UNIT"
POLL_ENV_VAR = "NUT_LEDGER_POLL_INTERVAL"
SWAP_ATTEMPTS_ENV_VAR = "NUT_LEDGER_SWAP_ATTEMPTS"
LOG_LEVEL_ENV_VAR = "NUT_LEDGER_LOG_LEVEL"
MINTS_ENV_VAR = "CASHU_MINTS"


def _load_env(env_file: Path | None) -> dict[str, str]:
    """Merge ``.env`` values under the process environment.

    Process environment wins over the file.
    """
    if env_file is None:
        env_file = Path.cwd() / ".env"
    values: dict[str, str] = {}
    if env_file.exists():
        values.update({k: v for k, v in dotenv_values(env_file).items() if v})
    values.update(os.environ)
    return values


def get_mints_from_env(env: dict[str, str]) -> list[str]:
    """Parse ``CASHU_MINTS`` (comma separated) into a deduplicated list."""
    raw = env.get(MINTS_ENV_VAR, "")
    mints = [mint.strip().rstrip("/") for mint in raw.split(",")]
    return list(dict.fromkeys(mint for mint in mints if mint))


def validate_mint_url(url: str) -> bool:
    """Check that a mint URL looks like ``http(s)://host[/path]`` without a trailing slash."""
    if not url:
        return False
    if not (url.startswith("http://") or url.startswith("https://")):
        return False
    if url.endswith("/"):
        return False
    return True


@dataclass
class Settings:
    """Wallet engine settings.

    ``state_path`` of ``None`` keeps all state in memory.
    """

    state_path: Path | None = DEFAULT_STATE_PATH
    default_mint_url: str = DEFAULT_MINT_URL
    default_unit: str = DEFAULT_UNIT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_swap_attempts: int = DEFAULT_SWAP_ATTEMPTS
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> Settings:
        env = _load_env(env_file)

        default_mint = env.get(MINT_ENV_VAR)
        if not default_mint:
            mints = get_mints_from_env(env)
            default_mint = mints[0] if mints else DEFAULT_MINT_URL

        state = env.get(STATE_ENV_VAR)
        return cls(
            state_path=Path(state).expanduser() if state else DEFAULT_STATE_PATH,
            default_mint_url=default_mint.rstrip("/"),
            default_unit=env.get(UNIT_ENV_VAR, DEFAULT_UNIT),
            poll_interval=float(env.get(POLL_ENV_VAR, DEFAULT_POLL_INTERVAL)),
            max_swap_attempts=int(env.get(SWAP_ATTEMPTS_ENV_VAR, DEFAULT_SWAP_ATTEMPTS)),
            log_level=env.get(LOG_LEVEL_ENV_VAR, "WARNING").upper(),
        )
