"""Key/value storage backends standing in for browser localStorage."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class StorageError(OSError):
    """Raised when the underlying storage cannot be written."""


class StorageQuotaExceeded(StorageError):
    """Raised when a write would exceed the configured storage quota."""


class KeyValueStorage(Protocol):
    """Minimal string-to-string storage contract (mirrors localStorage)."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...


def _encoded_size(data: Dict[str, str]) -> int:
    return sum(len(key.encode("utf-8")) + len(value.encode("utf-8")) for key, value in data.items())


def _check_quota(data: Dict[str, str], quota_bytes: Optional[int]) -> None:
    if quota_bytes is None:
        return
    size = _encoded_size(data)
    if size > quota_bytes:
        raise StorageQuotaExceeded(
            f"Storage quota exceeded: {size} bytes requested, {quota_bytes} allowed"
        )


class MemoryStorage:
    """Dictionary-backed storage, mainly for tests."""

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        candidate = dict(self._data)
        candidate[key] = str(value)
        _check_quota(candidate, self.quota_bytes)
        self._data = candidate

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """Persist a flat mapping of string values in a single JSON file.

    The file is re-read on every access so that edits made by other
    processes (or by hand) are always observed.
    """

    def __init__(self, path: Path, quota_bytes: Optional[int] = None) -> None:
        self.path = Path(path)
        self.quota_bytes = quota_bytes
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = str(value)
            _check_quota(data, self.quota_bytes)
            self._dump(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key not in data:
                return
            del data[key]
            self._dump(data)

    # Internal helpers ---------------------------------------------------------
    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Storage file %s is unreadable, treating as empty: %s", self.path, exc)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Storage file %s does not hold an object, treating as empty", self.path)
            return {}
        return {str(key): value for key, value in raw.items() if isinstance(value, str)}

    def _dump(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fp:
                json.dump(data, fp, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            raise StorageError(f"Failed to write storage file {self.path}: {exc}") from exc
