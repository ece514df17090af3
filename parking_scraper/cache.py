"""In-memory cache with per-entry expiry."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True, slots=True)
class CacheStats:
    total_entries: int
    valid_entries: int
    expired_entries: int
    hits: int
    misses: int
    sets: int
    deletes: int
    hit_rate: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class TTLCache:
    """Key/value store whose entries disappear once their TTL has elapsed.

    Expired entries stay in memory until they are read or swept by
    :meth:`cleanup`; either way they are never returned. Growth is unbounded.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = CacheEntry(
            key=key, value=value, expires_at=self._clock() + ttl_seconds
        )
        self._sets += 1

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return default

        self._hits += 1
        return entry.value

    def delete(self, key: str) -> bool:
        removed = self._entries.pop(key, None) is not None
        if removed:
            self._deletes += 1
        return removed

    def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        self._deletes += removed
        return removed

    def cleanup(self) -> int:
        """Evict every expired entry and return how many were removed."""

        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Evicted %d expired cache entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        expired = sum(1 for entry in self._entries.values() if entry.is_expired(now))
        lookups = self._hits + self._misses
        if lookups:
            hit_rate = f"{self._hits / lookups * 100:.2f}%"
        else:
            hit_rate = "0%"
        return CacheStats(
            total_entries=len(self._entries),
            valid_entries=len(self._entries) - expired,
            expired_entries=expired,
            hits=self._hits,
            misses=self._misses,
            sets=self._sets,
            deletes=self._deletes,
            hit_rate=hit_rate,
        )

    def __len__(self) -> int:
        return len(self._entries)
