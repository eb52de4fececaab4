"""Thread-safe key-value cache shared by the resolvers."""

import logging
import threading
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ConcurrentCache(Generic[K, V]):
    """A lock-guarded dictionary with an optional eviction callback.

    Runs are sequential today, but the resolver caches are shared between
    plugins and must not materialize or resolve the same artifact twice if
    plugins are ever validated in parallel. ``get_or_create`` holds the lock
    while the factory runs, so a value is computed at most once per key.

    A factory returning ``None`` is treated as "no value": nothing is stored
    and the next call retries.
    """

    def __init__(self, name: str, cleanup: Callable[[V], None] | None = None):
        self.name = name
        self._cleanup = cleanup
        self._entries: dict[K, V] = {}
        self._lock = threading.RLock()

    def get_or_create(self, key: K, factory: Callable[[K], V | None]) -> V | None:
        with self._lock:
            if key in self._entries:
                return self._entries[key]
            value = factory(key)
            if value is not None:
                self._entries[key] = value
            return value

    def get(self, key: K) -> V | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: K, value: V) -> None:
        """Store a value, running the cleanup callback on any value it replaces."""
        with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = value
        if previous is not None and previous is not value:
            self._run_cleanup(previous)

    def remove(self, key: K) -> V | None:
        with self._lock:
            value = self._entries.pop(key, None)
        if value is not None:
            self._run_cleanup(value)
        return value

    def values(self) -> list[V]:
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> int:
        """Drop every entry and run the cleanup callback on each value.

        Returns:
            Number of entries that were removed
        """
        with self._lock:
            values = list(self._entries.values())
            self._entries.clear()
        for value in values:
            self._run_cleanup(value)
        logger.debug(f"Cache '{self.name}' cleared ({len(values)} entries)")
        return len(values)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def is_empty(self) -> bool:
        return self.size() == 0

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        return self.size()

    def _run_cleanup(self, value: V) -> None:
        if self._cleanup is None:
            return
        try:
            self._cleanup(value)
        except Exception as e:
            logger.warning(f"Cleanup of cached value in '{self.name}' failed: {e}")
