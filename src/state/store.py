from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, runtime_checkable


class StoreError(RuntimeError):
    """Base error for key-value store operations."""


class StoreReadError(StoreError):
    """Reading a key failed. An absent key is not an error; `get` returns None."""


class StoreWriteError(StoreError):
    """Writing a key failed."""


@runtime_checkable
class KeyValueStore(Protocol):
    """String-keyed text store that outlives the process or component using it."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    """
    In-process store, the saved-state bucket shared by components of one process.

    Thread-safe. Non-string values are rejected so every backend stores the same
    thing.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StoreWriteError(f"Value for {key!r} must be str, got {type(value).__name__}")
        with self._lock:
            self._data[key] = value

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def remove(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)

    def snapshot(self) -> Dict[str, str]:
        """Copy of the current contents."""
        with self._lock:
            return dict(self._data)
