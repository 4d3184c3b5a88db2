"""Pytest configuration for the GA4 copilot tests

WHAT: Shared fakes and fixtures: an in-memory GA4 client, a scripted
      streaming model, and a compiler wired to fresh caches
WHY: Every test gets isolated caches and deterministic upstream behavior,
     with no network and no API keys
REFERENCES:
    - app/services/ga4_client.py: AnalyticsDataClient contract
    - app/agent/llm.py: ChatModel contract
    - app/semantic/compiler.py: ReportCompiler
"""

import os
from typing import Any, Dict, List, Optional, Sequence

import pytest

# Set test environment before app modules read settings
os.environ.setdefault("OPENAI_API_KEY", "test-api-key")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379")
os.environ.setdefault("REPORT_CACHE_BACKEND", "memory")

from app.agent.state import ConversationTurn, StreamChunk, ToolCallDelta
from app.semantic.cache import TTLCache
from app.semantic.compiler import ReportCompiler
from app.semantic.metadata import MetadataResolver


DEFAULT_DIMENSIONS = [
    "date",
    "country",
    "city",
    "browser",
    "deviceCategory",
    "sessionDefaultChannelGroup",
    "sessionSource",
    "eventName",
    "itemName",
    "itemId",
    "itemBrand",
    "itemCategory",
]

DEFAULT_METRICS = [
    "activeUsers",
    "totalUsers",
    "sessions",
    "engagedSessions",
    "bounceRate",
    "totalRevenue",
    "purchases",
    "eventCount",
    "conversions",
    "itemRevenue",
    "itemsViewed",
]


def metadata_payload(dimensions: Sequence[str], metrics: Sequence[str]) -> Dict[str, Any]:
    """Build a GA4 getMetadata response."""
    return {
        "name": "properties/123456/metadata",
        "dimensions": [
            {"apiName": d, "uiName": d.title(), "description": f"The {d} dimension."}
            for d in dimensions
        ],
        "metrics": [
            {"apiName": m, "uiName": m.title(), "description": f"The {m} metric."}
            for m in metrics
        ],
    }


def report_payload(body: Dict[str, Any], rows: int = 2) -> Dict[str, Any]:
    """Build a GA4 runReport response echoing the requested columns."""
    dims = [d["name"] for d in body.get("dimensions", [])]
    mets = [m["name"] for m in body.get("metrics", [])]
    return {
        "dimensionHeaders": [{"name": d} for d in dims],
        "metricHeaders": [{"name": m, "type": "TYPE_INTEGER"} for m in mets],
        "rows": [
            {
                "dimensionValues": [{"value": f"{d}-{i}"} for d in dims],
                "metricValues": [{"value": str((i + 1) * 10)} for _ in mets],
            }
            for i in range(rows)
        ],
        "rowCount": rows,
    }


class FakeAnalyticsClient:
    """In-memory AnalyticsDataClient.

    run_report pops the next scripted outcome from `failures` (an exception
    instance is raised, None means succeed) and records every body it saw.
    """

    def __init__(
        self,
        dimensions: Sequence[str] = DEFAULT_DIMENSIONS,
        metrics: Sequence[str] = DEFAULT_METRICS,
        failures: Optional[List[Optional[Exception]]] = None,
        rows: int = 2,
    ):
        self.metadata = metadata_payload(dimensions, metrics)
        self.failures = list(failures or [])
        self.rows = rows
        self.report_calls: List[Dict[str, Any]] = []
        self.metadata_calls: List[str] = []

    async def run_report(self, property_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self.report_calls.append(body)
        if self.failures:
            outcome = self.failures.pop(0)
            if outcome is not None:
                raise outcome
        return report_payload(body, rows=self.rows)

    async def get_metadata(self, property_id: str) -> Dict[str, Any]:
        self.metadata_calls.append(property_id)
        return self.metadata


class ScriptedChatModel:
    """ChatModel that replays one list of StreamChunks per call.

    Records a snapshot of the conversation it was given on each call. When
    the script runs out it keeps replaying the last round.
    """

    def __init__(self, rounds: List[List[StreamChunk]], error: Optional[Exception] = None):
        self.rounds = rounds
        self.error = error
        self.calls: List[List[ConversationTurn]] = []
        self.catalogs: List[List[Dict[str, Any]]] = []
        self.closed = 0

    async def stream(self, conversation, tool_catalog):
        self.calls.append(list(conversation))
        self.catalogs.append(tool_catalog)
        if self.error is not None:
            raise self.error
        index = min(len(self.calls) - 1, len(self.rounds) - 1)
        try:
            for chunk in self.rounds[index]:
                yield chunk
        finally:
            self.closed += 1


def text_chunk(text: str) -> StreamChunk:
    return StreamChunk(text=text)


def tool_call_chunks(call_id: str, name: str, arguments: str, index: int = 0) -> List[StreamChunk]:
    """One complete tool call split the way providers stream it."""
    return [
        StreamChunk(tool_call_deltas=[ToolCallDelta(index=index, id=call_id, name=name)]),
        StreamChunk(tool_call_deltas=[ToolCallDelta(index=index, arguments=arguments)]),
    ]


class ManualClock:
    """Injectable monotonic clock for TTL tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fake_client() -> FakeAnalyticsClient:
    return FakeAnalyticsClient()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def metadata_resolver() -> MetadataResolver:
    return MetadataResolver(TTLCache(max_entries=16, ttl_seconds=300))


@pytest.fixture
def report_cache(clock) -> TTLCache:
    return TTLCache(max_entries=64, ttl_seconds=60, clock=clock)


@pytest.fixture
def compiler(fake_client, metadata_resolver, report_cache) -> ReportCompiler:
    return ReportCompiler(fake_client, metadata_resolver, report_cache)
