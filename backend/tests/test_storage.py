import pytest

from validation_trainer.core.errors import ProgressStorageError
from validation_trainer.services.storage import JsonFileStore, MemoryStore


def test_json_file_store_round_trip(tmp_path):
    store = JsonFileStore(tmp_path / "progress")

    assert store.get("validation-progress") is None
    store.set("validation-progress", '{"totalSessions": 1}')
    store.set("validation-progress", '{"totalSessions": 2}')

    assert store.get("validation-progress") == '{"totalSessions": 2}'
    assert [p.name for p in (tmp_path / "progress").iterdir()] == ["validation-progress.json"]


@pytest.mark.parametrize("key", ["../escape", "a/b", "", "spaced key"])
def test_json_file_store_rejects_unsafe_keys(tmp_path, key):
    store = JsonFileStore(tmp_path)
    with pytest.raises(ValueError):
        store.get(key)


def test_json_file_store_write_failure_raises_storage_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file", encoding="utf-8")
    store = JsonFileStore(blocker)

    with pytest.raises(ProgressStorageError):
        store.set("validation-progress", "{}")


def test_memory_store_starts_from_initial_items():
    store = MemoryStore({"a": "1"})
    store.set("b", "2")
    assert store.get("a") == "1"
    assert store.get("b") == "2"
    assert store.get("c") is None
