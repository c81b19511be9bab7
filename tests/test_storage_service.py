"""Key/value storage backend tests."""

from __future__ import annotations

import json

import pytest

from modules.services.api_key_service import API_KEY_STORAGE, ApiKeyStore
from modules.services.storage_service import JsonFileStorage, MemoryStorage, StorageQuotaExceeded


def test_json_file_storage_round_trip_across_instances(tmp_path):
    path = tmp_path / "nested" / "storage.json"
    storage = JsonFileStorage(path)
    storage.set_item("alpha", "1")
    storage.set_item("beta", "two")

    reopened = JsonFileStorage(path)

    assert reopened.get_item("alpha") == "1"
    assert reopened.get_item("beta") == "two"

    reopened.remove_item("alpha")
    assert storage.get_item("alpha") is None
    assert json.loads(path.read_text(encoding="utf-8")) == {"beta": "two"}


def test_json_file_storage_sees_external_edits(tmp_path):
    path = tmp_path / "storage.json"
    storage = JsonFileStorage(path)
    storage.set_item("alpha", "1")

    path.write_text(json.dumps({"alpha": "edited"}), encoding="utf-8")

    assert storage.get_item("alpha") == "edited"


def test_json_file_storage_treats_garbage_file_as_empty(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")
    storage = JsonFileStorage(path)

    assert storage.get_item("anything") is None

    storage.set_item("fresh", "value")
    assert json.loads(path.read_text(encoding="utf-8")) == {"fresh": "value"}


def test_json_file_storage_quota_keeps_previous_value(tmp_path):
    storage = JsonFileStorage(tmp_path / "storage.json", quota_bytes=20)
    storage.set_item("k", "small")

    with pytest.raises(StorageQuotaExceeded):
        storage.set_item("k", "x" * 100)

    assert storage.get_item("k") == "small"


def test_memory_storage_quota():
    storage = MemoryStorage(quota_bytes=10)
    storage.set_item("a", "123")

    with pytest.raises(StorageQuotaExceeded):
        storage.set_item("b", "0123456789")

    assert storage.get_item("a") == "123"
    assert storage.get_item("b") is None


def test_remove_missing_key_is_noop(tmp_path):
    storage = JsonFileStorage(tmp_path / "storage.json")
    storage.remove_item("missing")

    assert not (tmp_path / "storage.json").exists()


def test_api_key_store_ignores_blank_keys():
    storage = MemoryStorage()
    key_store = ApiKeyStore(storage)

    assert key_store.save("   ") is False
    assert key_store.load() is None

    assert key_store.save(" secret ") is True
    assert storage.get_item(API_KEY_STORAGE) == "secret"
    assert key_store.load() == "secret"
