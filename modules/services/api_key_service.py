"""Persistence of the user-supplied MagicAPI key."""

from __future__ import annotations

import logging
from typing import Optional

from modules.services.storage_service import KeyValueStorage, StorageError

API_KEY_STORAGE = "magicapi_key"

logger = logging.getLogger(__name__)


class ApiKeyStore:
    """Load and save the API key next to the history entries."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage

    def load(self) -> Optional[str]:
        try:
            stored = self.storage.get_item(API_KEY_STORAGE)
        except OSError as exc:
            logger.error("Failed to read API key: %s", exc)
            return None
        return stored or None

    def save(self, api_key: str) -> bool:
        """Persist a non-blank key; return False when nothing was written."""
        if not api_key or not api_key.strip():
            return False
        try:
            self.storage.set_item(API_KEY_STORAGE, api_key.strip())
        except (StorageError, OSError) as exc:
            logger.error("Failed to save API key: %s", exc)
            return False
        return True
