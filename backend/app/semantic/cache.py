"""
Report and Metadata Caches
==========================

**Version**: 1.0.0
**Status**: Active

Explicitly constructed, bounded TTL caches shared by concurrent chat runs.

WHY THIS FILE EXISTS
--------------------
Two things are worth caching across requests:

    - Property metadata (valid dimension/metric names), 5 minute TTL
    - Normalized report results, 60 second TTL

Both are process-wide and read by many concurrent runs, so the in-memory
cache is lock-guarded and bounded (LRU eviction when full). Entries are
immutable once written and only leave by TTL or eviction.

The caches are objects, not module globals: app/state.py builds them at
startup and injects them into the resolver and compiler, and tests build
fresh ones per test.

BACKENDS
--------
- TTLCache: in-process, any value type (used for metadata and reports)
- RedisReportCache: shared across workers, string values only (reports)

CACHE KEYS
----------
build_report_cache_key() hashes a canonical JSON rendering of the request
body. Object keys are sorted (order-insensitive) but list order is kept,
because dimension/metric order decides output column order.

RELATED FILES
-------------
- app/semantic/metadata.py: Uses TTLCache for snapshots
- app/semantic/compiler.py: Uses a report cache and the key builder
- app/state.py: Chooses the report cache backend
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Optional, Protocol, Tuple, TypeVar

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

V = TypeVar("V")


class ReportCache(Protocol):
    """String cache contract the compiler depends on."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        ...


class TTLCache(Generic[V]):
    """
    Bounded in-memory cache with per-entry TTL.

    WHAT:
        OrderedDict of key -> (value, expires_at), guarded by a lock.
        Reads move the key to the end (LRU); writes evict the oldest entry
        once max_entries is reached.

    THREAD SAFETY:
        All operations hold a threading.Lock. Values are never mutated in
        place, so returning them outside the lock is safe.

    PARAMETERS:
        max_entries: Capacity before LRU eviction
        ttl_seconds: Default time-to-live for set()
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: "OrderedDict[str, Tuple[V, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[V]:
        """Return the value for key, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self.clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: V, ttl_seconds: Optional[float] = None) -> None:
        """Store value under key for ttl_seconds (default: the cache TTL)."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (value, self.clock() + ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"[CACHE] Evicted {evicted[:48]}")

    def expires_at(self, key: str) -> Optional[float]:
        with self._lock:
            entry = self._entries.get(key)
            return entry[1] if entry else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisReportCache:
    """
    Redis-backed report cache for multi-worker deployments.

    WHAT:
        Same get/set contract as TTLCache, values stored with SET ... EX.

    WHY:
        With several API workers an in-process cache only dedupes within a
        worker. Redis shares results across all of them.

    FAILURE MODE:
        Redis being down must not break chat. Errors are logged; get()
        reports a miss and set() skips the write.
    """

    def __init__(self, redis_client: Redis, ttl_seconds: float, prefix: str = "ga4copilot:report:"):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.redis.get(self.prefix + key)
        except RedisError as e:
            logger.warning(f"[CACHE] Redis get failed, treating as miss: {e}")
            return None
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else value

    def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        try:
            self.redis.set(self.prefix + key, value, ex=max(int(ttl), 1))
        except RedisError as e:
            logger.warning(f"[CACHE] Redis set failed, result not cached: {e}")


def canonical_json(value: Any) -> str:
    """JSON with sorted object keys and compact separators. List order is kept."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def build_report_cache_key(body: Dict[str, Any], property_id: str, user_id: str) -> str:
    """
    Stable cache key for a compiled request.

    The user id is part of the key because results are scoped per caller
    (each user reads through their own OAuth grant).
    """
    material = canonical_json({"body": body, "property": property_id, "user": user_id})
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return f"ga:runReport:{digest}"
