from __future__ import annotations

import json
from pathlib import Path

from .errors import StorageError

BEST_TIME_KEY = "bestTime"
COORDS_KEY = "coords"
TOKEN_KEY = "token"


class KeyValueStore:
    """
    String key -> string value store persisted as one JSON object on disk.

    Keys are independent; every write rewrites the snapshot through a
    temporary file so a crash never leaves a half-written store behind.
    Any I/O or decoding problem surfaces as StorageError.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            text = self.path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise StorageError(f"cannot read {self.path}: {e}") from e
        if not text:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageError(f"corrupted store {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"corrupted store {self.path}: top level is not an object")
        return data

    def _write(self, data: dict[str, str]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            raise StorageError(f"cannot write {self.path}: {e}") from e

    def _read_for_update(self) -> dict[str, str]:
        try:
            return self._read()
        except StorageError:
            if not self.path.exists():
                raise
            # corrupted snapshot: keep a backup and start fresh
            backup = self.path.with_suffix(self.path.suffix + ".broken")
            try:
                self.path.replace(backup)
            except OSError as e:
                raise StorageError(f"cannot move aside {self.path}: {e}") from e
            return {}

    def get(self, key: str) -> str | None:
        value = self._read().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        data = self._read_for_update()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read_for_update()
        if key in data:
            del data[key]
            self._write(data)

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"cannot clear {self.path}: {e}") from e
