"""
TTL cache for resource payloads.

Entries are keyed by operation kind plus the canonical JSON of its
parameters. Expired entries are evicted lazily when they are next looked up;
there is no background sweep. The store is unbounded unless ``max_entries``
is given, in which case the oldest stored entry makes room for a new one.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5 * 60.0
WATCH_STATUS_TTL = 30.0


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


def make_key(kind: str, params: Dict[str, Any]) -> str:
    return f"{kind}:{json.dumps(params, sort_keys=True, separators=(',', ':'), default=str)}"


class TTLCache:
    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or stale."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self.clock()):
            del self._entries[key]
            logger.debug(f"Cache entry expired: {key}")
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._entries.pop(key, None)
        if self.max_entries is not None:
            while self._entries and len(self._entries) >= self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                logger.debug(f"Cache entry evicted: {oldest}")
        self._entries[key] = CacheEntry(
            value=value,
            stored_at=self.clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_where(self, predicate: Callable[[str], bool]) -> int:
        """Drop every key the predicate accepts, fresh or stale; returns the count."""
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()
