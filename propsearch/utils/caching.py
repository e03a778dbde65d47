"""Injectable cache capability shared by the gateway, orchestrator and key-value server."""

from __future__ import annotations

import threading
from typing import Any, Dict, Protocol


class _Miss:
    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


class Cache(Protocol):
    """Anything exposing ``get(key) -> value | MISS`` and ``set(key, value)``."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryCache:
    """Thread-safe in-process cache. Entries never expire; ``flush`` drops everything."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Any] = {}

    def get(self, key: str) -> Any:
        with self._lock:
            return self._entries.get(key, MISS)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["Cache", "MemoryCache", "MISS"]
