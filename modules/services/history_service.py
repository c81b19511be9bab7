"""Validated history persistence on top of a key/value storage."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Mapping, Union

from modules.services.storage_service import KeyValueStorage, StorageError
from modules.services.validators import RecordT, RecordValidator, ValidationFailure

logger = logging.getLogger(__name__)


def _reject_constant(name: str) -> None:
    raise ValueError(f"Non-standard JSON constant: {name}")


def _encode(payload: List[dict[str, Any]]) -> str:
    return json.dumps(payload, ensure_ascii=False, allow_nan=False)


class HistoryStore:
    """Read, prepend and remove records stored as a JSON list per key.

    Storage is treated as external mutable state: nothing is cached between
    calls and every operation re-validates what it reads. Corrupt entries are
    dropped entirely instead of being partially repaired.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage

    def read(self, key: str, validator: RecordValidator[RecordT]) -> List[RecordT]:
        """Return the stored records, resetting the key when it is corrupt."""
        try:
            stored = self.storage.get_item(key)
            if not stored:
                return []
            parsed = json.loads(stored, parse_constant=_reject_constant)
            return validator.validate(parsed)
        except ValidationFailure as exc:
            logger.warning("Invalid data in storage for %s, resetting: %s", key, exc)
            self._discard(key)
            return []
        except (ValueError, OSError) as exc:
            logger.error("Error getting %s from storage: %s", key, exc)
            self._discard(key)
            return []

    def append(
        self,
        key: str,
        record: Union[RecordT, Mapping[str, Any]],
        validator: RecordValidator[RecordT],
    ) -> List[RecordT]:
        """Prepend a record and persist; falls back to ``[record]`` if the write fails.

        Raises ValidationFailure when ``record`` itself does not match the
        schema, so an invalid entry never reaches storage.
        """
        item = validator.coerce(record)
        existing = self.read(key, validator)
        items = [item, *existing]
        try:
            self.storage.set_item(key, _encode(validator.dump(items)))
        except (StorageError, OSError) as exc:
            logger.error("Error saving to storage for %s: %s", key, exc)
            return [item]
        return items

    def remove(self, key: str, index: int, validator: RecordValidator[RecordT]) -> List[RecordT]:
        """Remove the record at ``index`` and return what remains."""
        items = self.read(key, validator)
        if index < 0 or index >= len(items):
            logger.warning("Ignoring removal of index %s from %s (%d items)", index, key, len(items))
            return items
        remaining = items[:index] + items[index + 1 :]
        try:
            self.storage.set_item(key, _encode(validator.dump(remaining)))
        except (StorageError, OSError) as exc:
            logger.error("Error removing from storage for %s: %s", key, exc)
            return self.read(key, validator)
        return remaining

    def _discard(self, key: str) -> None:
        try:
            self.storage.remove_item(key)
        except OSError as exc:
            logger.error("Failed to remove %s from storage: %s", key, exc)
