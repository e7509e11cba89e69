"""
Response Cache.

Short-lived, in-memory store of successful ``GET`` results.  Entries
expire after their TTL and are dropped lazily on lookup; once the store
grows past ``max_entries`` expired entries are swept first and the oldest
live ones go next.
"""

from __future__ import annotations

import time
from typing import Callable, Hashable, Optional

from session_client.models.response_models import ApiResult


class _Entry:
    __slots__ = ("result", "expires_at")

    def __init__(self, result: ApiResult, expires_at: float) -> None:
        self.result = result
        self.expires_at = expires_at


class ResponseCache:
    """TTL cache keyed by request identity.

    Parameters
    ----------
    default_ttl:
        Lifetime in seconds for entries stored without an explicit TTL.
    max_entries:
        Size bound enforced on every insert.
    clock:
        Monotonic clock in seconds (injectable for tests).
    """

    def __init__(
        self,
        default_ttl: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl: float = default_ttl
        self._max_entries: int = max_entries
        self._clock: Callable[[], float] = clock
        self._entries: dict[Hashable, _Entry] = {}
        self.hits: int = 0
        self.misses: int = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[ApiResult]:
        """Copy of the live entry for *key*, or ``None``."""
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            entry = None
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry.result.model_copy(deep=True)

    def set(self, key: Hashable, result: ApiResult, ttl: Optional[float] = None) -> None:
        lifetime = ttl if ttl is not None else self._default_ttl
        self._entries.pop(key, None)
        self._entries[key] = _Entry(result.model_copy(deep=True), self._clock() + lifetime)
        if len(self._entries) > self._max_entries:
            self._evict()

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        for key in [k for k, entry in self._entries.items() if entry.expires_at <= now]:
            del self._entries[key]
        # Insertion order is age order.
        while len(self._entries) > self._max_entries:
            del self._entries[next(iter(self._entries))]
