"""Tests for key-value storage backends."""

import json

import pytest

from cmdguard.exceptions import StoreError
from cmdguard.integrations.store import JsonFileStore, MemoryStore, get_default_store_path


class TestMemoryStore:
    def test_get_set_remove(self):
        store = MemoryStore()
        assert store.get("missing") is None
        assert store.get("missing", []) == []
        store.set("key", {"a": [1, 2]})
        assert store.get("key") == {"a": [1, 2]}
        store.remove("key")
        store.remove("key")
        assert store.keys() == []

    def test_values_copied(self):
        """Mutating a returned value does not change the stored one."""
        store = MemoryStore({"key": [1]})
        store.get("key").append(2)
        assert store.get("key") == [1]


class TestJsonFileStore:
    def test_round_trip_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "store.json"
        JsonFileStore(path).set("commandSecurityLog", [{"command": "click"}])
        assert JsonFileStore(path).get("commandSecurityLog") == [{"command": "click"}]
        assert json.loads(path.read_text()) == {"commandSecurityLog": [{"command": "click"}]}

    def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")
        assert store.get("anything", "default") == "default"
        store.remove("anything")
        assert not (tmp_path / "store.json").exists()

    def test_empty_file_is_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("  \n")
        assert JsonFileStore(path).get("key") is None

    def test_remove(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")
        store.set("a", 1)
        store.set("b", 2)
        store.remove("a")
        assert store.get("a") is None
        assert store.get("b") == 2

    def test_no_temp_file_left(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")
        store.set("a", 1)
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]

    @pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
    def test_corrupt_file_raises(self, tmp_path, content):
        path = tmp_path / "store.json"
        path.write_text(content)
        with pytest.raises(StoreError):
            JsonFileStore(path).get("key")

    def test_unserializable_value_raises(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")
        with pytest.raises(StoreError):
            store.set("key", object())
        assert not (tmp_path / "store.json.tmp").exists()


class TestDefaultStorePath:
    def test_env_json_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CMDGUARD_STORE", str(tmp_path / "custom.json"))
        assert get_default_store_path() == tmp_path / "custom.json"

    def test_env_directory(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CMDGUARD_STORE", str(tmp_path))
        assert get_default_store_path() == tmp_path / "store.json"

    def test_platform_default(self, monkeypatch):
        monkeypatch.delenv("CMDGUARD_STORE", raising=False)
        path = get_default_store_path()
        assert path.name == "store.json"
        assert "cmdguard" in path.parts


class TestKeyLock:
    def test_same_lock_per_store_and_key(self):
        store = MemoryStore()
        assert store.key_lock("k") is store.key_lock("k")
        assert store.key_lock("k") is not store.key_lock("other")

    def test_stores_have_separate_locks(self, tmp_path):
        assert MemoryStore().key_lock("k") is not MemoryStore().key_lock("k")
        assert JsonFileStore(tmp_path / "a.json").key_lock("k") is not MemoryStore().key_lock("k")

    def test_lock_is_reentrant(self):
        store = MemoryStore()
        with store.key_lock("k"):
            with store.key_lock("k"):
                store.set("k", 1)
        assert store.get("k") == 1
