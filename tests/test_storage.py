"""Tests for authkeeper.storage."""

from authkeeper.storage import MemoryStorageAdapter, StorageAdapter


class TestMemoryStorageAdapter:
    """Tests for the dict-backed adapter."""

    def test_satisfies_protocol(self):
        assert isinstance(MemoryStorageAdapter(), StorageAdapter)

    def test_get_set_remove(self):
        storage = MemoryStorageAdapter()
        assert storage.get("tokens") is None

        storage.set("tokens", "value")
        assert storage.get("tokens") == "value"

        storage.remove("tokens")
        assert storage.get("tokens") is None

    def test_remove_missing_key_is_noop(self):
        MemoryStorageAdapter().remove("missing")

    def test_keys_are_prefixed(self):
        backing = {}
        storage = MemoryStorageAdapter(prefix="app:", store=backing)
        storage.set("tokens", "value")
        assert backing == {"app:tokens": "value"}

    def test_clear_only_removes_own_prefix(self):
        backing = {"other:key": "keep"}
        storage = MemoryStorageAdapter(prefix="app:", store=backing)
        storage.set("a", "1")
        storage.set("b", "2")

        storage.clear()

        assert backing == {"other:key": "keep"}
        assert len(storage) == 0

    def test_adapters_sharing_a_dict_are_isolated(self):
        backing = {}
        first = MemoryStorageAdapter(prefix="one:", store=backing)
        second = MemoryStorageAdapter(prefix="two:", store=backing)

        first.set("tokens", "a")
        second.set("tokens", "b")

        assert first.get("tokens") == "a"
        assert second.get("tokens") == "b"
        assert len(first) == 1

    def test_default_prefix(self):
        storage = MemoryStorageAdapter()
        assert storage.prefix == "authkeeper:"
        assert "authkeeper:" in repr(storage)
