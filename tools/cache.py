"""
Result Cache
------------
TTL cache for successful tool results.

Expiry is checked lazily on read. set() also sweeps every expired entry
once per SWEEP_INTERVAL, so keys that are never read again do not pile
up. There are no per-entry timers.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union
import hashlib
import json
import logging
import time

from security.permissions import CallerContext


DEFAULT_TTL = 300.0
SWEEP_INTERVAL = 60.0
_DIGEST_LENGTH = 64


@dataclass
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def make_cache_key(
    tool_name: str,
    input: Any,
    context: Union[CallerContext, Dict[str, Any]]
) -> str:
    """
    Derive the cache key for a call.

    Identity-sensitive: the same input under a different user, permission
    set or access level gets a different key.
    """
    if isinstance(context, CallerContext):
        identity = {
            "user_id": context.user_id,
            "permissions": list(context.permissions),
            "access_level": context.access_level.value,
        }
    else:
        identity = {
            "user_id": context.get("user_id"),
            "permissions": list(context.get("permissions") or []),
            "access_level": str(context.get("access_level", "")),
        }

    payload = json.dumps(input, sort_keys=True, default=str) + json.dumps(identity, sort_keys=True)
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{tool_name}_{digest}"


class ResultCache:
    """In-memory TTL cache with optional size bound (oldest evicted first)."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = SWEEP_INTERVAL,
    ):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._next_sweep = clock() + sweep_interval
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._logger = logging.getLogger("bridge.tools.cache")

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return None

        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()

        if now >= self._next_sweep:
            removed = self.purge_expired()
            self._next_sweep = now + self.sweep_interval
            if removed:
                self._logger.debug(f"Swept {removed} expired cache entries")

        self._entries.pop(key, None)
        if self.max_entries is not None and len(self._entries) >= self.max_entries:
            self.purge_expired()
            while self._entries and len(self._entries) >= self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                self._logger.debug(f"Evicted cache entry {oldest}")

        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl,
            ttl=ttl,
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def invalidate_tool(self, tool_name: str) -> int:
        """Drop every entry cached for one tool."""
        prefix = f"{tool_name}_"
        keys = [
            k for k in self._entries
            if k.startswith(prefix) and len(k) == len(prefix) + _DIGEST_LENGTH
        ]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> Dict[str, int]:
        return {
            "hits": self._hits,
            "misses": self._misses,
            "size": len(self._entries),
        }

    def __len__(self) -> int:
        return len(self._entries)
