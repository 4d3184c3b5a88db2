"""
Report Query Compiler
=====================

**Version**: 1.0.0
**Status**: Active

Turns a loosely specified report request into a valid, scope-consistent,
cacheable GA4 runReport call, and runs it with safe fallbacks.

WHY THIS FILE EXISTS
--------------------
The LLM asks for whatever it thinks exists: "revenue by productName",
"activeUsers by itemName", eight dimensions, a limit of 5000. Sending that
straight to GA4 fails, and a failed tool call costs a whole model round.
The compiler repairs what it can and says what it changed (warnings), so
the model gets data plus an explanation instead of an error.

COMPILATION STEPS
-----------------
1.  Resolve the property's metadata snapshot (cached, 5 min TTL)
2.  Map aliases to canonical names (revenue -> totalRevenue)
3.  Drop unknown fields (warn); no metrics left -> NO_VALID_METRICS
4.  Apply scope rules:
      user/session metrics + item dimensions  -> drop item dimensions
      item metrics without item dimension     -> inject itemName (or swap
                                                 itemRevenue -> totalRevenue)
5.  Cap dimensions at 3 (drop from the tail)
6.  Drop an orderBy that references no kept field
7.  Clamp limit to [1, 1000], default the date range to 28daysAgo..yesterday
8.  Cache lookup (key: canonical body + property + user)
9.  Degradation cascade on upstream failure:
      (i) compiled request  (ii) no dimensions  (iii) single safest metric
10. Normalize to headers/rows/rowCount + warnings, cache, return

RELATED FILES
-------------
- app/semantic/scope.py: Scope classification tables
- app/semantic/model.py: Aliases, caps, defaults
- app/semantic/metadata.py: Metadata snapshots
- app/semantic/cache.py: Report cache and key builder
- app/services/ga4_client.py: Upstream API client
- app/agent/tools.py: Tools that call this compiler
"""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from app.semantic.cache import ReportCache, build_report_cache_key
from app.semantic.errors import NoValidMetricsError, UpstreamQueryFailure
from app.semantic.metadata import MetadataResolver
from app.semantic.model import (
    BROADER_METRIC_ALIASES,
    DIMENSION_CAP,
    EXAMPLE_METRICS,
    PREFERRED_ITEM_DIMENSIONS,
    SAFEST_FALLBACK_METRIC,
    apply_alias,
    clamp_limit,
    normalize_property_id,
)
from app.semantic.query import (
    CompiledReport,
    DateRange,
    MetadataSnapshot,
    OrderBy,
    ReportRequest,
    ReportResult,
    build_request_body,
)
from app.semantic.scope import (
    has_item_dimension,
    has_item_metric,
    has_user_or_session_metric,
    is_item_dimension,
    is_item_metric,
    item_dimensions,
)
from app.services.ga4_client import AnalyticsApiError, AnalyticsDataClient

logger = logging.getLogger(__name__)


# =============================================================================
# REWRITE HELPERS (pure)
# =============================================================================

def sanitize_fields(
    requested: Sequence[str],
    available: FrozenSet[str],
    warnings: List[str],
) -> List[str]:
    """
    Alias, dedupe and filter requested names against the property's fields.

    WHAT: Keeps known names in request order; every dropped name adds a warning.

    RETURNS:
        Canonical names present on the property, without duplicates.
    """
    kept: List[str] = []
    for raw in requested:
        candidate = apply_alias(raw)
        if candidate not in available:
            warnings.append(f"Dropped unknown field: {raw}")
        elif candidate in kept:
            warnings.append(f"Dropped duplicate field: {raw}")
        else:
            kept.append(candidate)
    return kept


def pick_first_available_item_dimension(available: FrozenSet[str]) -> Optional[str]:
    for name in PREFERRED_ITEM_DIMENSIONS:
        if name in available:
            return name
    return None


def apply_scope_rules(
    dimensions: List[str],
    metrics: List[str],
    snapshot: MetadataSnapshot,
    warnings: List[str],
) -> Tuple[List[str], List[str]]:
    """
    Rewrite a dimension/metric combination so GA4 can answer it.

    RULES:
        - user/session metric + item dimension, no item metric:
              remove the item dimensions
        - item metric, no item dimension:
              inject the first preferred item dimension available, else
              swap to a broader metric (itemRevenue -> totalRevenue), else
              warn that the item metrics may not return data

    RETURNS:
        (dimensions, metrics) after rewriting
    """
    item_metric = has_item_metric(metrics)
    item_dim = has_item_dimension(dimensions)

    if has_user_or_session_metric(metrics) and item_dim and not item_metric:
        removed = item_dimensions(dimensions)
        dimensions = [d for d in dimensions if not is_item_dimension(d)]
        warnings.append(
            f"Removed incompatible item dimensions ({', '.join(removed)}) from user/session-scoped "
            f"metrics query. User metrics like 'activeUsers' cannot be broken down by products."
        )

    elif item_metric and not item_dim:
        inject = pick_first_available_item_dimension(snapshot.dimensions)
        if inject:
            dimensions = [inject] + dimensions
            warnings.append(f"Added '{inject}' dimension to align with item-scoped metrics.")
        else:
            swapped: List[str] = []
            for metric in metrics:
                broader = BROADER_METRIC_ALIASES.get(metric)
                if broader and broader in snapshot.metrics:
                    warnings.append(
                        f"Replaced '{metric}' with '{broader}' due to missing item-scoped dimensions."
                    )
                    metric = broader
                if metric not in swapped:
                    swapped.append(metric)
            metrics = swapped
            remaining = [m for m in metrics if is_item_metric(m)]
            if remaining:
                warnings.append(
                    f"No item dimension is available on this property; item-scoped metrics "
                    f"({', '.join(remaining)}) may return no data."
                )

    return dimensions, metrics


def effective_order_by(
    order_by: Optional[OrderBy],
    dimensions: Sequence[str],
    metrics: Sequence[str],
    warnings: List[str],
) -> Optional[OrderBy]:
    """Return the order-by with canonical names, or None (warned) if it references no kept field."""
    if order_by is None:
        return None
    if order_by.metric:
        metric = apply_alias(order_by.metric)
        if metric in metrics:
            return OrderBy(metric=metric, desc=order_by.desc)
        warnings.append(f"Removed orderBy on unknown metric: {order_by.metric}")
        return None
    dimension = apply_alias(order_by.dimension or "")
    if dimension in dimensions:
        return OrderBy(dimension=dimension, desc=order_by.desc)
    warnings.append(f"Removed orderBy on unknown dimension: {order_by.dimension}")
    return None


def example_metrics(snapshot: MetadataSnapshot, count: int = 5) -> List[str]:
    """A handful of metrics that exist on the property, well-known ones first."""
    examples = [m for m in EXAMPLE_METRICS if m in snapshot.metrics]
    for metric in sorted(snapshot.metrics):
        if len(examples) >= count:
            break
        if metric not in examples:
            examples.append(metric)
    return examples[:count]


def normalize_report_response(
    data: Dict[str, Any],
    property_id: str,
    date_range: DateRange,
    warnings: List[str],
) -> ReportResult:
    """Flatten a GA4 runReport response into headers + string rows."""
    headers = [h.get("name", "") for h in data.get("dimensionHeaders") or []]
    headers += [h.get("name", "") for h in data.get("metricHeaders") or []]

    rows: List[List[str]] = []
    for row in data.get("rows") or []:
        values = [v.get("value", "") for v in row.get("dimensionValues") or []]
        values += [v.get("value", "") for v in row.get("metricValues") or []]
        rows.append(values)

    row_count = data.get("rowCount")
    return ReportResult(
        headers=headers,
        rows=rows,
        row_count=int(row_count) if row_count is not None else len(rows),
        property_id=property_id,
        date_range=date_range,
        warnings=list(warnings),
    )


# =============================================================================
# COMPILER
# =============================================================================

class ReportCompiler:
    """
    Validates, rewrites, executes and caches GA4 report requests.

    USAGE:
        compiler = ReportCompiler(client, metadata_resolver, report_cache)
        result = await compiler.compile(
            ReportRequest(metrics=["itemRevenue"]),
            property_id="123456",
            user_id="user-1",
        )
        result.headers   # ["itemName", "itemRevenue"]
        result.warnings  # ["Added 'itemName' dimension to align with item-scoped metrics."]

    PARAMETERS:
        client: Authenticated upstream client for the current caller
        metadata_resolver: Shared MetadataResolver
        report_cache: Shared report cache (TTLCache or RedisReportCache)
    """

    def __init__(
        self,
        client: AnalyticsDataClient,
        metadata_resolver: MetadataResolver,
        report_cache: ReportCache,
    ):
        self.client = client
        self.metadata = metadata_resolver
        self.cache = report_cache

    async def prepare(self, request: ReportRequest, property_id: str) -> CompiledReport:
        """
        Steps 1-7: produce a valid request without running it.

        RAISES:
            NoValidMetricsError: No requested metric exists on the property
            AnalyticsApiError: Metadata could not be fetched
        """
        pid = normalize_property_id(property_id)
        snapshot = await self.metadata.get_schema(pid, self.client)
        warnings: List[str] = []

        dimensions = sanitize_fields(request.dimensions or [], snapshot.dimensions, warnings)
        metrics = sanitize_fields(request.metrics or [], snapshot.metrics, warnings)
        if not metrics:
            raise NoValidMetricsError(request.metrics or [], example_metrics(snapshot))

        dimensions, metrics = apply_scope_rules(dimensions, metrics, snapshot, warnings)

        if len(dimensions) > DIMENSION_CAP:
            dimensions = dimensions[:DIMENSION_CAP]
            warnings.append(
                f"Truncated dimensions to first {DIMENSION_CAP}: {', '.join(dimensions)}"
            )

        order_by = effective_order_by(request.order_by, dimensions, metrics, warnings)

        return CompiledReport(
            property_id=pid,
            dimensions=tuple(dimensions),
            metrics=tuple(metrics),
            date_range=request.date_range or DateRange(),
            limit=clamp_limit(request.limit),
            order_by=order_by,
            warnings=tuple(warnings),
        )

    async def compile_json(self, request: ReportRequest, property_id: str, user_id: str) -> str:
        """
        Compile, run (or read from cache) and return the serialized ReportResult.

        Two calls with structurally equal compiled requests within the cache
        TTL return the identical string; the second makes no runReport call.

        RAISES:
            NoValidMetricsError, UpstreamQueryFailure
        """
        compiled = await self.prepare(request, property_id)
        body = compiled.to_request_body()
        cache_key = build_report_cache_key(body, compiled.property_id, user_id)

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"[COMPILER] Cache hit for property {compiled.property_id}")
            return cached

        warnings = list(compiled.warnings)
        data = await self._run_with_fallbacks(compiled, body, warnings)
        result = normalize_report_response(data, compiled.property_id, compiled.date_range, warnings)

        payload = result.to_json()
        self.cache.set(cache_key, payload)
        logger.info(
            f"[COMPILER] property={compiled.property_id} rows={result.row_count} "
            f"warnings={len(result.warnings)}"
        )
        return payload

    async def compile(self, request: ReportRequest, property_id: str, user_id: str) -> ReportResult:
        """Same as compile_json(), parsed into a ReportResult."""
        return ReportResult.from_json(await self.compile_json(request, property_id, user_id))

    async def _run_with_fallbacks(
        self,
        compiled: CompiledReport,
        body: Dict[str, Any],
        warnings: List[str],
    ) -> Dict[str, Any]:
        """
        Degradation cascade. The first attempt that succeeds wins.

        (i)   the compiled request
        (ii)  same metrics, dimensions cleared
        (iii) one metric (purchases if kept, else the first), dimensions cleared

        Each fallback appends a warning before it runs. Only upstream API
        errors trigger a fallback.
        """
        fallback_metric = (
            SAFEST_FALLBACK_METRIC if SAFEST_FALLBACK_METRIC in compiled.metrics else compiled.metrics[0]
        )
        attempts = [
            (None, body),
            (
                "FALLBACK_APPLIED due to API error. Retrying with dimensions=[] and same metrics.",
                build_request_body((), compiled.metrics, compiled.date_range, compiled.limit),
            ),
            (
                f"FALLBACK_APPLIED again. Retrying with dimensions=[] and metric={fallback_metric}.",
                build_request_body((), (fallback_metric,), compiled.date_range, compiled.limit),
            ),
        ]

        for number, (notice, attempt_body) in enumerate(attempts, start=1):
            if notice:
                warnings.append(notice)
            try:
                return await self.client.run_report(compiled.property_id, attempt_body)
            except AnalyticsApiError as e:
                logger.warning(
                    f"[COMPILER] Attempt {number}/{len(attempts)} failed for property "
                    f"{compiled.property_id}: {e}"
                )
                if number == len(attempts):
                    raise UpstreamQueryFailure(e, attempts=len(attempts), warnings=warnings) from e

