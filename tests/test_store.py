"""Tests for key-value storage backends."""

import pytest

from shepherd.state import JsonFileStore, KeyValueStore, MemoryStore


@pytest.fixture
def file_store(tmp_path):
    return JsonFileStore(tmp_path / "data")


class TestJsonFileStore:
    """File-backed storage."""

    def test_creates_directory(self, tmp_path):
        JsonFileStore(tmp_path / "nested" / "dir")

        assert (tmp_path / "nested" / "dir").is_dir()

    def test_missing_key(self, file_store):
        assert file_store.get("nope") is None

    def test_set_and_get(self, file_store):
        file_store.set("state", b'{"a": 1}')

        assert file_store.get("state") == b'{"a": 1}'
        assert (file_store.directory / "state.json").exists()

    def test_overwrite_keeps_backup(self, file_store):
        file_store.set("state", b"first")
        file_store.set("state", b"second")

        assert file_store.get("state") == b"second"
        assert (file_store.directory / "state.json.bak").read_bytes() == b"first"

    def test_no_temp_file_left(self, file_store):
        file_store.set("state", b"data")

        assert not (file_store.directory / "state.json.tmp").exists()

    def test_delete(self, file_store):
        file_store.set("state", b"data")

        assert file_store.delete("state") is True
        assert file_store.delete("state") is False
        assert file_store.get("state") is None

    def test_keys_skip_dotfiles_and_backups(self, file_store):
        file_store.set("b", b"1")
        file_store.set("a", b"1")
        file_store.set("a", b"2")
        (file_store.directory / ".shepherd_config.json").write_text("{}")

        assert file_store.keys() == ["a", "b"]


class TestMemoryStore:
    """In-memory storage."""

    def test_round_trip(self):
        store = MemoryStore()
        store.set("k", b"v")

        assert store.get("k") == b"v"
        assert store.keys() == ["k"]

    def test_delete_and_clear(self):
        store = MemoryStore()
        store.set("a", b"1")
        store.set("b", b"2")

        assert store.delete("a") is True
        assert store.delete("a") is False
        store.clear()
        assert store.keys() == []


class TestProtocol:
    """Both backends satisfy KeyValueStore."""

    def test_file_store(self, file_store):
        assert isinstance(file_store, KeyValueStore)

    def test_memory_store(self):
        assert isinstance(MemoryStore(), KeyValueStore)
