"""
Application State
=================

Process-wide objects shared by every chat request.

WHY this exists:
- The metadata and report caches must outlive a single request
- The tool registry is built once and read concurrently
- HTTP connection pools (OpenAI, GA4) should be shared, not per request

WHAT it stores:
- metadata_resolver: Per-property schema snapshots (TTL cache)
- report_cache: Report results (in-memory TTL cache or Redis)
- registry: The immutable tool catalog
- openai_client / http_client: Shared connection pools

WHERE it's used:
- app/main.py: Built in the lifespan, closed on shutdown
- app/deps.py: get_app_state() hands it to routers
- app/routers/chat.py: Builds per-request compiler/orchestrator from it

Design:
- Explicitly constructed and injected (no module-level singletons), so
  tests can build isolated instances
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import httpx
from openai import AsyncOpenAI
from redis import ConnectionPool, Redis

from app.agent.llm import OpenAIChatModel, get_async_openai_client
from app.agent.tools import ToolRegistry, build_default_registry
from app.semantic.cache import RedisReportCache, ReportCache, TTLCache
from app.semantic.compiler import ReportCompiler
from app.semantic.metadata import MetadataResolver
from app.services.ga4_client import GA4DataClient

if TYPE_CHECKING:
    from app.deps import Settings

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """Shared state for the lifetime of the FastAPI application."""
    settings: "Settings"
    metadata_resolver: MetadataResolver
    report_cache: ReportCache
    registry: ToolRegistry
    openai_client: AsyncOpenAI
    http_client: httpx.AsyncClient
    redis_client: Optional[Redis] = None

    def build_data_client(self, access_token: str) -> GA4DataClient:
        """GA4 client authenticated as the current caller, on the shared pool."""
        return GA4DataClient(
            self.http_client,
            access_token,
            base_url=self.settings.GA4_API_BASE_URL,
        )

    def build_compiler(self, data_client: GA4DataClient) -> ReportCompiler:
        return ReportCompiler(data_client, self.metadata_resolver, self.report_cache)

    def build_model(self) -> OpenAIChatModel:
        return OpenAIChatModel(
            self.openai_client,
            model=self.settings.LLM_MODEL,
            temperature=self.settings.LLM_TEMPERATURE,
            max_tokens=self.settings.LLM_MAX_TOKENS,
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await self.openai_client.close()
        if self.redis_client is not None:
            self.redis_client.close()


def build_report_cache(settings: "Settings") -> tuple[ReportCache, Optional[Redis]]:
    """In-memory TTL cache by default; Redis when several API instances share results."""
    if settings.REPORT_CACHE_BACKEND == "redis":
        pool = ConnectionPool.from_url(settings.REDIS_URL, max_connections=20, decode_responses=False)
        redis_client = Redis(connection_pool=pool)
        logger.info("[STATE] Report cache backed by Redis")
        return RedisReportCache(redis_client, ttl_seconds=settings.REPORT_CACHE_TTL_SECONDS), redis_client

    logger.info("[STATE] Report cache in memory")
    cache: TTLCache[str] = TTLCache(
        max_entries=settings.REPORT_CACHE_MAX_ENTRIES,
        ttl_seconds=settings.REPORT_CACHE_TTL_SECONDS,
    )
    return cache, None


def build_app_state(settings: "Settings") -> AppState:
    """Construct the shared state from settings. Called once at startup."""
    metadata_cache = TTLCache(
        max_entries=settings.METADATA_CACHE_MAX_ENTRIES,
        ttl_seconds=settings.METADATA_TTL_SECONDS,
    )
    report_cache, redis_client = build_report_cache(settings)

    return AppState(
        settings=settings,
        metadata_resolver=MetadataResolver(metadata_cache),
        report_cache=report_cache,
        registry=build_default_registry(),
        openai_client=get_async_openai_client(settings.OPENAI_API_KEY),
        http_client=httpx.AsyncClient(timeout=settings.GA4_TIMEOUT_SECONDS),
        redis_client=redis_client,
    )
