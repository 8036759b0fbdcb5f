"""At-most-once memoization shared by every plugin-testkit cache.

OnceCache guarantees a single concurrent computation per key: the first
caller computes, concurrent callers for the same key block on the same
future and observe the same result or exception. Failed computations are
evicted, so a later call for the key starts again.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from concurrent.futures import Future
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class OnceCache(Generic[K, V]):
    """Thread-safe compute-once map.

    Example:
        >>> cache: OnceCache[str, int] = OnceCache("lengths")
        >>> cache.get_or_compute("abc", len)
        3
        >>> cache.get_or_compute("abc", lambda key: 0)
        3
    """

    def __init__(self, name: str) -> None:
        """Initialize OnceCache.

        Args:
            name: Cache name, used in logs.
        """
        self.name = name
        self._lock = threading.Lock()
        self._futures: dict[K, Future[V]] = {}

    def get_or_compute(self, key: K, compute: Callable[[K], V]) -> V:
        """Return the value for key, computing it at most once.

        Args:
            key: Cache key.
            compute: Called with key by the first caller only.

        Returns:
            The computed (or previously computed) value.

        Raises:
            Exception: Whatever compute raised, for the owner and every
                caller that was waiting on it.
        """
        with self._lock:
            future = self._futures.get(key)
            owner = future is None
            if future is None:
                future = Future()
                self._futures[key] = future

        if not owner:
            return future.result()

        try:
            value = compute(key)
        except BaseException as exc:
            with self._lock:
                del self._futures[key]
            future.set_exception(exc)
            raise
        future.set_result(value)
        return value

    def get(self, key: K) -> V | None:
        """Return a completed value without computing or blocking."""
        with self._lock:
            future = self._futures.get(key)
        if future is None or not future.done() or future.exception() is not None:
            return None
        return future.result()

    def values(self) -> list[V]:
        """Return all successfully completed values."""
        with self._lock:
            futures = list(self._futures.values())
        return [f.result() for f in futures if f.done() and f.exception() is None]

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self.values())
