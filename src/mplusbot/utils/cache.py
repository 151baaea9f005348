from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")

log = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000

DEFAULT_TTLS_MS: dict[str, int] = {
    "character": 30 * MINUTE_MS,
    "raid": 30 * MINUTE_MS,
    "mplus": 30 * MINUTE_MS,
    "gear": 30 * MINUTE_MS,
    "links": 60 * MINUTE_MS,
}


@dataclass
class _Entry(Generic[V]):
    value: V
    inserted_at: float
    ttl_ms: int

    @property
    def expires_at(self) -> float:
        return self.inserted_at + self.ttl_ms / 1000


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    sets: int
    invalidations: int
    stale_reads: int
    size: int

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        total = self.total_requests
        return self.hits / total if total else 0.0


class TTLCache(Generic[K, V]):
    """Tiny in-memory TTL cache.

    Expired entries stay in the store until ``cleanup`` or an overwrite so that
    ``peek_stale`` can still serve them when an upstream is down. Good enough
    for a single-process bot.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._store: dict[K, _Entry[V]] = {}
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._invalidations = 0
        self._stale_reads = 0

    def _is_valid(self, entry: _Entry[V]) -> bool:
        return self._clock() - entry.inserted_at <= entry.ttl_ms / 1000

    def get(self, key: K) -> V | None:
        entry = self._store.get(key)
        if entry is None:
            self._misses += 1
            log.debug("cache MISS %s (not found)", key)
            return None
        if not self._is_valid(entry):
            self._misses += 1
            log.debug("cache MISS %s (expired)", key)
            return None
        self._hits += 1
        return entry.value

    def set(self, key: K, value: V, ttl_ms: int) -> None:
        if ttl_ms <= 0:
            raise ValueError(f"ttl must be positive, got {ttl_ms}")
        self._store[key] = _Entry(value=value, inserted_at=self._clock(), ttl_ms=int(ttl_ms))
        self._sets += 1
        log.debug("cache SET %s ttl=%ss", key, ttl_ms // 1000)

    def peek_stale(self, key: K) -> V | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        self._stale_reads += 1
        return entry.value

    def invalidate(self, key: K) -> bool:
        if self._store.pop(key, None) is None:
            return False
        self._invalidations += 1
        return True

    def invalidate_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._store if str(k).startswith(prefix)]
        for k in doomed:
            del self._store[k]
        self._invalidations += len(doomed)
        return len(doomed)

    def cleanup(self) -> int:
        expired = [k for k, e in self._store.items() if not self._is_valid(e)]
        for k in expired:
            del self._store[k]
        return len(expired)

    def clear(self) -> None:
        self._invalidations += len(self._store)
        self._store.clear()

    def time_until_expiry(self, key: K) -> int:
        """Milliseconds before ``key`` expires; 0 when absent or expired."""
        entry = self._store.get(key)
        if entry is None or not self._is_valid(entry):
            return 0
        return max(0, int((entry.expires_at - self._clock()) * 1000))

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            sets=self._sets,
            invalidations=self._invalidations,
            stale_reads=self._stale_reads,
            size=len(self._store),
        )

    def entries_info(self) -> list[dict[str, Any]]:
        now = self._clock()
        info = []
        for key, entry in self._store.items():
            left = entry.expires_at - now
            info.append(
                {
                    "key": key,
                    "cached": datetime.fromtimestamp(entry.inserted_at, tz=timezone.utc),
                    "expires_at": datetime.fromtimestamp(entry.expires_at, tz=timezone.utc),
                    "time_left_ms": max(0, int(left * 1000)),
                    "expired": left < 0,
                }
            )
        return sorted(info, key=lambda i: i["time_left_ms"], reverse=True)


class CharacterCache(TTLCache[str, Any]):
    """Cache with named slots shared by every roster command."""

    def __init__(self, ttls_ms: dict[str, int] | None = None, clock: Callable[[], float] = time.time):
        super().__init__(clock)
        self.ttls_ms = {**DEFAULT_TTLS_MS, **(ttls_ms or {})}

    @staticmethod
    def key(slot: str, identifier: str = "") -> str:
        return f"{slot}:{identifier}" if identifier else slot

    def ttl_for(self, slot: str) -> int:
        return self.ttls_ms.get(slot, DEFAULT_TTLS_MS["character"])

    def get_slot(self, slot: str, identifier: str = "") -> Any | None:
        return self.get(self.key(slot, identifier))

    def set_slot(self, slot: str, value: Any, identifier: str = "") -> None:
        self.set(self.key(slot, identifier), value, self.ttl_for(slot))

    def time_until_refresh(self, slot: str = "character") -> int:
        return self.time_until_expiry(self.key(slot))

    def cache_timestamps(self, slot: str = "character") -> tuple[int, int] | None:
        """(cached_at, next_refresh) as unix seconds, for Discord ``<t:...>`` stamps."""
        entry = self._store.get(self.key(slot))
        if entry is None or not self._is_valid(entry):
            return None
        return int(entry.inserted_at), int(entry.expires_at)
