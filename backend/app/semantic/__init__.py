"""
Report Semantic Layer
=====================

**Version**: 1.0.0
**Status**: Active

Everything between "the model wants a report" and "GA4 returned rows":
scope rules, field aliases, metadata snapshots, caches and the compiler.

ARCHITECTURE
------------
```
ReportRequest (from a tool)
    |
    v
ReportCompiler.prepare()  <-- MetadataResolver (TTL cache)
    |                     <-- scope rules, aliases, caps
    v
CompiledReport  --> report cache? --> hit: cached JSON
    |
    v
GA4 runReport (3-step degradation cascade)
    |
    v
ReportResult (headers, rows, rowCount, warnings)
```

RELATED FILES
-------------
- app/agent/tools.py: Tools wrapping the compiler
- app/services/ga4_client.py: Upstream client
"""

from app.semantic.cache import RedisReportCache, ReportCache, TTLCache, build_report_cache_key
from app.semantic.compiler import ReportCompiler
from app.semantic.errors import NoValidMetricsError, ReportQueryError, UpstreamQueryFailure
from app.semantic.metadata import MetadataResolver
from app.semantic.query import (
    CompiledReport,
    DateRange,
    MetadataSnapshot,
    OrderBy,
    ReportRequest,
    ReportResult,
)
from app.semantic.scope import ScopeClass, dimension_scope, is_compatible, metric_scope

__all__ = [
    "CompiledReport",
    "DateRange",
    "MetadataResolver",
    "MetadataSnapshot",
    "NoValidMetricsError",
    "OrderBy",
    "RedisReportCache",
    "ReportCache",
    "ReportCompiler",
    "ReportQueryError",
    "ReportRequest",
    "ReportResult",
    "ScopeClass",
    "TTLCache",
    "UpstreamQueryFailure",
    "build_report_cache_key",
    "dimension_scope",
    "is_compatible",
    "metric_scope",
]
