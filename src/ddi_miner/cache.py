"""
Bounded TTL cache owned by a single component instance.

Extractors, the resolver and the normalizer each hold their own TTLCache;
nothing is shared process-wide, so no locking is required under asyncio.
"""

import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class CacheEntry:
    """Cached value with its expiry (clock seconds)."""

    value: Any
    expires_at: float
    created_at: float


@dataclass
class CacheStats:
    """Snapshot of cache counters."""

    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int
    expirations: int

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage, 0.0 when nothing was requested."""
        if not self.total_requests:
            return 0.0
        return round(self.hits / self.total_requests * 100, 2)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total_requests"] = self.total_requests
        data["hit_rate"] = self.hit_rate
        return data


class TTLCache:
    """
    Key -> value map whose entries expire after a time-to-live.

    When the cache is full, the oldest entry is evicted to make room.

    Usage:
        cache = TTLCache(default_ttl=24 * 3600)
        cache.set("openfda|warfarin|20", labels)
        labels = cache.get("openfda|warfarin|20")  # None when missing/expired
    """

    def __init__(
        self,
        default_ttl: float = 3600,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self._expirations += 1
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest()
        now = self._clock()
        self._entries[key] = CacheEntry(
            value=value,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
            created_at=now,
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop all entries. Counters are kept."""
        self._entries.clear()

    def cleanup_expired(self) -> int:
        """Remove expired entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        self._expirations += len(expired)
        return len(expired)

    def _evict_oldest(self) -> None:
        oldest = min(self._entries, key=lambda k: self._entries[k].created_at)
        del self._entries[oldest]
        self._evictions += 1

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            expirations=self._expirations,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry.expires_at
