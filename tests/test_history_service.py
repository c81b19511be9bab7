"""HistoryStore tests covering read, append, remove and self-healing."""

from __future__ import annotations

import json

import pytest

from modules.services.history_service import HistoryStore
from modules.services.storage_service import JsonFileStorage, MemoryStorage, StorageError
from modules.services.validators import (
    AGE_DETECTION_STORAGE_KEY,
    STORAGE_KEY,
    ValidationFailure,
    age_detection_result_validator,
    screenshot_validator,
)


class FlakyStorage(MemoryStorage):
    """Memory storage whose writes can be switched off."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False

    def set_item(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageError("disk full")
        super().set_item(key, value)


def shot(index: int) -> dict:
    return {
        "input": f"https://example.com/{index}",
        "imageData": f"data:image/png;base64,{index:04d}",
        "createdAt": f"2024-05-01T10:00:{index:02d}.000Z",
    }


def test_read_missing_key_returns_empty(history_store):
    assert history_store.read(STORAGE_KEY, screenshot_validator) == []


def test_append_then_read_is_most_recent_first(history_store):
    history_store.append(STORAGE_KEY, shot(1), screenshot_validator)
    history_store.append(STORAGE_KEY, shot(2), screenshot_validator)
    returned = history_store.append(STORAGE_KEY, shot(3), screenshot_validator)

    stored = history_store.read(STORAGE_KEY, screenshot_validator)

    assert [item.input for item in stored] == [
        "https://example.com/3",
        "https://example.com/2",
        "https://example.com/1",
    ]
    assert stored == returned


def test_append_persists_exact_json_shape(history_store, memory_storage):
    history_store.append(STORAGE_KEY, shot(1), screenshot_validator)

    assert json.loads(memory_storage.get_item(STORAGE_KEY)) == [shot(1)]


def test_invalid_record_is_never_observable(history_store):
    history_store.append(STORAGE_KEY, shot(1), screenshot_validator)
    bad = dict(shot(2), createdAt="not-a-date")

    with pytest.raises(ValidationFailure):
        history_store.append(STORAGE_KEY, bad, screenshot_validator)

    assert [item.input for item in history_store.read(STORAGE_KEY, screenshot_validator)] == [
        "https://example.com/1"
    ]


def test_corrupt_records_written_externally_are_discarded(history_store, memory_storage):
    memory_storage.set_item(STORAGE_KEY, json.dumps([shot(1), dict(shot(2), input="nope")]))

    assert history_store.read(STORAGE_KEY, screenshot_validator) == []
    assert memory_storage.get_item(STORAGE_KEY) is None


def test_invalid_json_is_removed_and_stays_gone_after_restart(tmp_path):
    path = tmp_path / "storage.json"
    storage = JsonFileStorage(path)
    storage.set_item(AGE_DETECTION_STORAGE_KEY, "{not json")

    assert HistoryStore(storage).read(AGE_DETECTION_STORAGE_KEY, age_detection_result_validator) == []
    assert storage.get_item(AGE_DETECTION_STORAGE_KEY) is None

    restarted = HistoryStore(JsonFileStorage(path))
    assert restarted.read(AGE_DETECTION_STORAGE_KEY, age_detection_result_validator) == []


def test_keys_do_not_interfere(history_store):
    history_store.append(STORAGE_KEY, shot(1), screenshot_validator)

    assert history_store.read(AGE_DETECTION_STORAGE_KEY, age_detection_result_validator) == []


def test_remove_excises_index(history_store):
    for index in range(4):
        history_store.append(STORAGE_KEY, shot(index), screenshot_validator)
    original = history_store.read(STORAGE_KEY, screenshot_validator)

    remaining = history_store.remove(STORAGE_KEY, 1, screenshot_validator)

    assert remaining == original[:1] + original[2:]
    assert history_store.read(STORAGE_KEY, screenshot_validator) == remaining


def test_removing_head_repeatedly_drains_history(history_store):
    for index in range(3):
        history_store.append(STORAGE_KEY, shot(index), screenshot_validator)

    for expected in (2, 1, 0):
        assert len(history_store.remove(STORAGE_KEY, 0, screenshot_validator)) == expected

    assert history_store.remove(STORAGE_KEY, 0, screenshot_validator) == []
    assert history_store.read(STORAGE_KEY, screenshot_validator) == []


@pytest.mark.parametrize("index", [-1, 5])
def test_remove_out_of_range_keeps_entries(history_store, index):
    history_store.append(STORAGE_KEY, shot(1), screenshot_validator)
    history_store.append(STORAGE_KEY, shot(2), screenshot_validator)

    remaining = history_store.remove(STORAGE_KEY, index, screenshot_validator)

    assert len(remaining) == 2
    assert history_store.read(STORAGE_KEY, screenshot_validator) == remaining


def test_append_write_failure_falls_back_to_single_record():
    storage = FlakyStorage()
    store = HistoryStore(storage)
    store.append(STORAGE_KEY, shot(1), screenshot_validator)
    storage.fail_writes = True

    returned = store.append(STORAGE_KEY, shot(2), screenshot_validator)

    assert [item.input for item in returned] == ["https://example.com/2"]
    assert [item.input for item in store.read(STORAGE_KEY, screenshot_validator)] == [
        "https://example.com/1"
    ]


def test_append_quota_exceeded_falls_back_to_single_record():
    storage = MemoryStorage(quota_bytes=len(STORAGE_KEY) + len(json.dumps([shot(1)])) + 10)
    store = HistoryStore(storage)
    store.append(STORAGE_KEY, shot(1), screenshot_validator)

    returned = store.append(STORAGE_KEY, shot(2), screenshot_validator)

    assert len(returned) == 1
    assert len(store.read(STORAGE_KEY, screenshot_validator)) == 1


def test_remove_write_failure_returns_stored_sequence():
    storage = FlakyStorage()
    store = HistoryStore(storage)
    store.append(STORAGE_KEY, shot(1), screenshot_validator)
    store.append(STORAGE_KEY, shot(2), screenshot_validator)
    storage.fail_writes = True

    returned = store.remove(STORAGE_KEY, 0, screenshot_validator)

    assert len(returned) == 2


@pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
def test_non_standard_json_constants_are_discarded(history_store, memory_storage, constant):
    memory_storage.set_item(
        AGE_DETECTION_STORAGE_KEY,
        '[{"age": "3", "predictTime": %s, "imageData": "data:image/png;base64,AAAA",'
        ' "createdAt": "2024-05-01T10:00:00.000Z"}]' % constant,
    )

    assert history_store.read(AGE_DETECTION_STORAGE_KEY, age_detection_result_validator) == []
    assert memory_storage.get_item(AGE_DETECTION_STORAGE_KEY) is None


def test_append_rejects_nan_predict_time(history_store, memory_storage):
    record = {
        "age": "3",
        "predictTime": float("nan"),
        "imageData": "data:image/png;base64,AAAA",
        "createdAt": "2024-05-01T10:00:00.000Z",
    }

    with pytest.raises(ValidationFailure):
        history_store.append(AGE_DETECTION_STORAGE_KEY, record, age_detection_result_validator)

    assert memory_storage.get_item(AGE_DETECTION_STORAGE_KEY) is None
