"""Display-side view over one history key: ordering, expansion and deletion."""

from __future__ import annotations

from pathlib import Path
from typing import Generic, List, Optional

from modules.services.history_service import HistoryStore
from modules.services.validators import RecordT, RecordValidator
from modules.utils.image_utils import save_data_url


class HistoryPanel(Generic[RecordT]):
    """Hold the last store-returned sequence and map display indices onto it.

    The local copy is only ever replaced by what the store returns; it is
    never edited in place.
    """

    def __init__(self, store: HistoryStore, key: str, validator: RecordValidator[RecordT]) -> None:
        self.store = store
        self.key = key
        self.validator = validator
        self._items: List[RecordT] = []
        self.expanded_index: Optional[int] = None

    def load(self) -> List[RecordT]:
        self._items = self.store.read(self.key, self.validator)
        self._clamp_expanded()
        return self.entries()

    def replace(self, items: List[RecordT]) -> None:
        """Adopt a sequence returned by a store mutation."""
        self._items = list(items)
        self._clamp_expanded()

    def _display_order(self) -> List[int]:
        # sorted() is stable, so equal timestamps keep their storage order.
        return sorted(
            range(len(self._items)),
            key=lambda position: self._items[position].created_at_datetime,
            reverse=True,
        )

    def entries(self) -> List[RecordT]:
        """Records ordered most-recent-first for display."""
        return [self._items[position] for position in self._display_order()]

    def record_at(self, index: int) -> RecordT:
        order = self._display_order()
        if index < 0 or index >= len(order):
            raise IndexError(f"History index {index} out of range")
        return self._items[order[index]]

    def expanded(self) -> Optional[RecordT]:
        if self.expanded_index is None:
            return None
        return self.record_at(self.expanded_index)

    def expand(self, index: int) -> Optional[int]:
        """Toggle expansion of the entry at display ``index``."""
        self.record_at(index)
        self.expanded_index = None if self.expanded_index == index else index
        return self.expanded_index

    def delete(self, index: int) -> List[RecordT]:
        """Remove the entry at display ``index`` and keep the expansion on the same record."""
        order = self._display_order()
        if index < 0 or index >= len(order):
            raise IndexError(f"History index {index} out of range")
        previous = len(self._items)
        remaining = self.store.remove(self.key, order[index], self.validator)
        # A failed write hands back the untouched sequence; keep the expansion as is.
        if self.expanded_index is not None and len(remaining) < previous:
            if self.expanded_index == index:
                self.expanded_index = None
            elif self.expanded_index > index:
                self.expanded_index -= 1
        self.replace(remaining)
        return self.entries()

    def add(self, record: RecordT) -> List[RecordT]:
        """Persist a freshly created record at the head of the history."""
        previous = len(self._items)
        items = self.store.append(self.key, record, self.validator)
        if self.expanded_index is not None:
            if len(items) > previous:
                self.expanded_index += 1
            else:
                self.expanded_index = None
        self.replace(items)
        return self.entries()

    def download(self, index: int, directory: Path, stem: Optional[str] = None) -> Path:
        record = self.record_at(index)
        name = stem or f"{self.key}-{index}"
        return save_data_url(record.image_data, Path(directory), name)

    def _clamp_expanded(self) -> None:
        if self.expanded_index is not None and self.expanded_index >= len(self._items):
            self.expanded_index = None
