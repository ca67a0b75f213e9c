"""Synchronous key/value store with browser-storage semantics.

Values are strings (JSON documents by convention). With a path the whole
store is mirrored to a single JSON file after every write; without one it
lives in memory for the process lifetime.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, TypeVar

T = TypeVar("T")


class StoreFormatError(ValueError):
    """A stored value parsed as JSON but does not have the expected shape."""


class KeyValueStore:
    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._items: dict[str, str] | None = None

    def _data(self) -> dict[str, str]:
        if self._items is None:
            self._items = self._load()
        return self._items

    def _load(self) -> dict[str, str]:
        if self.path is None or not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)
        if not isinstance(raw, dict):
            raise StoreFormatError(f"Store file {self.path} does not hold an object")
        return {str(key): str(value) for key, value in raw.items()}

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data(), fh, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # browser-storage surface
    def get_item(self, key: str) -> str | None:
        return self._data().get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data()[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._data().pop(key, None) is not None:
            self._flush()

    def keys(self) -> list[str]:
        return list(self._data())

    def clear(self) -> None:
        self._items = {}
        self._flush()

    # JSON helpers
    def read_json(self, key: str, default: T) -> T | Any:
        stored = self.get_item(key)
        if stored is None:
            return default
        return json.loads(stored)

    def write_json(self, key: str, data: Any) -> None:
        self.set_item(key, json.dumps(data, ensure_ascii=False))
