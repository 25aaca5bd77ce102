"""Data models for the cache module."""

from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    """A cached response envelope and its absolute expiry on the cache clock."""

    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check if this entry has expired at ``now``."""
        return now >= self.expires_at
