"""Key/value state persisted as a single JSON document."""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class StateStore:
    """Small key/value store for wallet state.

    Every read goes back to disk so that values written by another process are
    picked up; every write replaces the whole document atomically (temp file +
    ``os.replace``). With ``path=None`` the store lives in memory only.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path).expanduser() if path is not None else None
        self._memory: dict[str, Any] = {}

    def _read(self) -> dict[str, Any]:
        if self.path is None:
            return self._memory
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Corrupt wallet state file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Corrupt wallet state file {self.path}: not an object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        # runs on the event loop thread, fsync included
        if self.path is None:
            self._memory = data
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def get(self, key: str, default: Any = None) -> Any:
        """Return a copy of the stored value so callers cannot mutate state in place."""
        data = self._read()
        if key not in data:
            return default
        return copy.deepcopy(data[key])

    def set(self, key: str, value: Any) -> None:
        data = dict(self._read())
        data[key] = copy.deepcopy(value)
        self._write(data)
        logger.debug("Persisted state key %r", key)

    def delete(self, key: str) -> bool:
        data = dict(self._read())
        if key not in data:
            return False
        del data[key]
        self._write(data)
        return True

    def keys(self) -> list[str]:
        return list(self._read().keys())
