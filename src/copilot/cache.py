"""
Query caching layer.

A process-local TTL cache keyed by caller-built keys. Funnel results,
predefined-query results and the parsed catalog each get their own
instance with their own TTL; entries may override the TTL (historical
date ranges live for a day).
"""
from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Optional

from src.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_SIZE = 256


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    hits: int = field(default=0)

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


# ── Cache ───────────────────────────────────────────────


class QueryCache:
    """Thread-safe in-memory TTL cache.

    Parameters
    ----------
    ttl : float
        Default time-to-live in seconds.
    max_size : int
        Entry limit; the earliest inserted entry is dropped when full.
    name : str
        Label used in log lines.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, max_size: int = DEFAULT_MAX_SIZE, name: str = "cache"):
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._ttl = ttl
        self._max_size = max_size
        self._name = name
        self._hits = 0
        self._misses = 0

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: str) -> Any | None:
        """Cached value for *key*, or ``None`` when absent or expired."""
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expired(now):
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
                return None
            entry.hits += 1
            self._hits += 1
        logger.debug("%s hit key=%s", self._name, key[:16])
        return entry.value

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store *value*; *ttl* overrides the cache default for this entry."""
        lifetime = self._ttl if ttl is None else ttl
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self._max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("%s evict key=%s", self._name, evicted[:16])
            self._entries[key] = CacheEntry(value=value, expires_at=time.monotonic() + lifetime)

    def invalidate(self, key: str | None = None) -> int:
        """Drop one entry, or everything when *key* is None. Returns the count removed."""
        with self._lock:
            if key is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                removed = 1 if self._entries.pop(key, None) is not None else 0
        if removed:
            logger.info("%s invalidated %d entries", self._name, removed)
        return removed

    def cleanup_expired(self) -> int:
        now = time.monotonic()
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.expired(now)]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "name": self._name,
                "size": len(self._entries),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / lookups, 3) if lookups else 0.0,
            }


def make_key(*parts: Any) -> str:
    """Deterministic cache key. Case and list order do not matter; None is kept distinct by position."""
    pieces = []
    for part in parts:
        if part is None:
            pieces.append("")
        elif isinstance(part, (list, tuple)):
            pieces.append(",".join(sorted(str(p).strip().lower() for p in part)))
        else:
            pieces.append(str(part).strip().lower())
    return hashlib.sha256("|".join(pieces).encode()).hexdigest()
