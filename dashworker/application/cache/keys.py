"""Cache key construction."""

import hashlib
import json
from typing import Any, Mapping, Optional

from ...constants import ANONYMOUS_FINGERPRINT, FINGERPRINT_LENGTH


def fingerprint_token(token: Optional[str]) -> str:
    """Non-reversible short fingerprint of a bearer token."""
    if not token:
        return ANONYMOUS_FINGERPRINT
    return hashlib.sha1(token.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def make_cache_key(
    operation: str, caller_fingerprint: str, params: Mapping[str, Any]
) -> str:
    """Build a key that ignores the ordering of ``params`` keys at every depth."""
    serialized = json.dumps(
        params, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )
    return f"{operation}:{caller_fingerprint}:{serialized}"
