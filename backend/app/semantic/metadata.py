"""
Property Metadata Resolver
==========================

**Version**: 1.0.0
**Status**: Active

Schema discovery: which dimension and metric names exist on a GA4 property.

WHY THIS FILE EXISTS
--------------------
Every GA4 property has a different field set (custom dimensions, custom
metrics, ecommerce on or off). The compiler validates every requested field
against the real set before querying, so it needs the set cheaply and
often. Metadata changes rarely, so a 5 minute TTL is plenty.

STAMPEDE PROTECTION
-------------------
When a snapshot expires, several concurrent chat runs may ask for it at the
same moment. A per-property asyncio.Lock plus a second cache read inside the
lock collapses those into one upstream getMetadata call.

RELATED FILES
-------------
- app/semantic/cache.py: TTLCache holding the snapshots
- app/services/ga4_client.py: getMetadata call
- app/semantic/compiler.py: Consumer
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Any, Dict, FrozenSet, List

from app.semantic.cache import TTLCache
from app.semantic.model import normalize_property_id
from app.semantic.query import MetadataSnapshot
from app.services.ga4_client import AnalyticsDataClient

logger = logging.getLogger(__name__)


def _api_names(entries: List[Dict[str, Any]] | None) -> FrozenSet[str]:
    names = set()
    for entry in entries or []:
        name = (entry or {}).get("apiName")
        if isinstance(name, str) and name:
            names.add(name)
    return frozenset(names)


class MetadataResolver:
    """
    Lazily fetches and caches per-property field sets.

    USAGE:
        resolver = MetadataResolver(TTLCache(max_entries=256, ttl_seconds=300))
        snapshot = await resolver.get_schema("123456", client)
        "itemName" in snapshot.dimensions

    PARAMETERS:
        cache: Shared TTLCache of property_id -> MetadataSnapshot
    """

    def __init__(self, cache: TTLCache[MetadataSnapshot]):
        self.cache = cache
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, property_id: str) -> asyncio.Lock:
        lock = self._locks.get(property_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[property_id] = lock
        return lock

    async def get_schema(self, property_id: str, client: AnalyticsDataClient) -> MetadataSnapshot:
        """
        Return the metadata snapshot for a property, fetching if expired/absent.

        RAISES:
            AnalyticsApiError: getMetadata failed (nothing is cached)
        """
        pid = normalize_property_id(property_id)
        cached = self.cache.get(pid)
        if cached is not None:
            return cached

        lock = self._lock_for(pid)
        async with lock:
            # Another run may have refreshed while we waited
            cached = self.cache.get(pid)
            if cached is not None:
                return cached

            logger.info(f"[METADATA] Fetching schema for property {pid}")
            data = await client.get_metadata(pid)
            snapshot = MetadataSnapshot(
                property_id=pid,
                dimensions=_api_names(data.get("dimensions")),
                metrics=_api_names(data.get("metrics")),
                expires_at=self.cache.clock() + self.cache.ttl_seconds,
            )
            self.cache.set(pid, snapshot)
            logger.info(
                f"[METADATA] Cached property {pid}: "
                f"{len(snapshot.dimensions)} dimensions, {len(snapshot.metrics)} metrics"
            )
            return snapshot
