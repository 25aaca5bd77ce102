"""Cache module for short-lived response envelopes."""

from .ttl_cache import TTLCache
from .models import CacheEntry
from .statistics import CacheStatistics
from .keys import fingerprint_token, make_cache_key

__all__ = [
    "TTLCache",
    "CacheEntry",
    "CacheStatistics",
    "fingerprint_token",
    "make_cache_key",
]
