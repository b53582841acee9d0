"""
Storage adapters for token persistence.

A storage adapter is a plain string key-value store. The token store
plugin uses one (when configured) to persist the current token slot.
"""

from typing import Protocol, runtime_checkable

DEFAULT_PREFIX = "authkeeper:"


@runtime_checkable
class StorageAdapter(Protocol):
    """Key-value contract used for token persistence."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...


class MemoryStorageAdapter:
    """Dict-backed storage adapter.

    Keys are namespaced with a prefix so several adapters can share one
    backing dict; clear() only removes keys carrying this adapter's
    prefix.
    """

    def __init__(self, prefix: str = DEFAULT_PREFIX, store: dict[str, str] | None = None):
        self._prefix = prefix
        self._store: dict[str, str] = store if store is not None else {}

    @property
    def prefix(self) -> str:
        return self._prefix

    def get(self, key: str) -> str | None:
        return self._store.get(self._prefix + key)

    def set(self, key: str, value: str) -> None:
        self._store[self._prefix + key] = value

    def remove(self, key: str) -> None:
        self._store.pop(self._prefix + key, None)

    def clear(self) -> None:
        for key in [k for k in self._store if k.startswith(self._prefix)]:
            del self._store[key]

    def __len__(self) -> int:
        return sum(1 for k in self._store if k.startswith(self._prefix))

    def __repr__(self) -> str:
        return f"<MemoryStorageAdapter prefix={self._prefix!r} keys={len(self)}>"
