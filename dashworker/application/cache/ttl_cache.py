"""Process-local TTL cache for full response envelopes."""

import time
from typing import Any, Callable, Dict, Optional

from .models import CacheEntry
from .statistics import CacheStatistics
from ...constants import DEFAULT_CACHE_TTL_SECONDS
from ...logging import debug, LogRecord, LogEvent

Clock = Callable[[], float]


class TTLCache:
    """
    Best-effort in-memory memoization keyed by string.

    Entries expire lazily: ``get`` evicts an entry once the clock reaches its
    expiry. There is no size bound and no LRU ordering; entries are small JSON
    envelopes with short TTLs.

    None of the methods await, so on a single event loop each call is atomic
    with respect to other cache calls. Threaded callers need their own lock.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Optional[Clock] = None,
    ):
        self._default_ttl = default_ttl_seconds
        self._clock: Clock = clock or time.monotonic
        self._store: Dict[str, CacheEntry] = {}
        self._statistics = CacheStatistics()

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when absent or expired."""
        entry = self._store.get(key)
        if entry is None:
            self._statistics.record_miss()
            return None
        if entry.is_expired(self._clock()):
            del self._store[key]
            self._statistics.record_eviction()
            self._statistics.record_miss()
            return None
        self._statistics.record_hit()
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store ``value`` under ``key``, replacing any existing entry."""
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        self._store[key] = CacheEntry(
            key=key, value=value, expires_at=self._clock() + ttl
        )
        self._statistics.record_write()

    def delete(self, key: str) -> bool:
        """Evict ``key``. Returns True if an entry was removed."""
        removed = self._store.pop(key, None) is not None
        if removed:
            self._statistics.record_eviction()
        return removed

    def clear(self) -> int:
        count = len(self._store)
        self._store.clear()
        if count:
            self._statistics.record_eviction(count)
        return count

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [k for k, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            del self._store[key]
        if expired:
            self._statistics.record_eviction(len(expired))
            debug(
                LogRecord(
                    LogEvent.CACHE_EVENT.value,
                    f"Purged {len(expired)} expired cache entries",
                    None,
                    {"purged": len(expired), "remaining": len(self._store)},
                )
            )
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        entry = self._store.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def get_stats(self) -> Dict[str, Any]:
        stats = self._statistics.get_stats()
        stats["entries"] = len(self._store)
        stats["default_ttl_seconds"] = self._default_ttl
        return stats
