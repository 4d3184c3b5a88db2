"""
Report Query Model
==================

**Version**: 1.0.0
**Status**: Active

Data structures flowing through the report compiler:

    ReportRequest  (raw, from a tool)  ->  CompiledReport  (valid, immutable)
                                                |
                                                v
                                   GA4 runReport body  ->  ReportResult

WHY THIS FILE EXISTS
--------------------
The LLM's request is loose: any field names, any limit, optional everything.
The compiler needs a typed shape to read from and a frozen shape to hand to
the API and to hash for caching. Keeping both here keeps the compiler about
rules, not about dict plumbing.

RELATED FILES
-------------
- app/semantic/compiler.py: Produces CompiledReport and ReportResult
- app/agent/tools.py: Builds ReportRequest from validated tool arguments
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from app.semantic.model import DEFAULT_END_DATE, DEFAULT_LIMIT, DEFAULT_START_DATE


@dataclass(frozen=True)
class DateRange:
    """
    Date range in GA4 date expressions.

    Accepts absolute dates ("2024-01-31") or relative expressions
    ("28daysAgo", "yesterday", "today"). GA4 resolves relative expressions
    in the property's own reporting timezone.
    """
    start_date: str = DEFAULT_START_DATE
    end_date: str = DEFAULT_END_DATE

    def to_dict(self) -> Dict[str, str]:
        return {"startDate": self.start_date, "endDate": self.end_date}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DateRange":
        return cls(start_date=data["startDate"], end_date=data["endDate"])


@dataclass(frozen=True)
class OrderBy:
    """Ordering on exactly one metric or one dimension."""
    metric: Optional[str] = None
    dimension: Optional[str] = None
    desc: bool = False

    @property
    def field_name(self) -> str:
        return self.metric or self.dimension or ""

    def to_dict(self) -> Dict[str, Any]:
        if self.metric:
            return {"metric": {"metricName": self.metric}, "desc": self.desc}
        return {"dimension": {"dimensionName": self.dimension}, "desc": self.desc}


@dataclass
class ReportRequest:
    """
    Raw report request as supplied by a tool.

    Nothing here is trusted: names may be aliases or unknown, the limit may
    be out of range, the order-by may reference a dropped field.
    """
    metrics: List[str]
    dimensions: List[str] = field(default_factory=list)
    date_range: Optional[DateRange] = None
    limit: Optional[int] = DEFAULT_LIMIT
    order_by: Optional[OrderBy] = None


@dataclass(frozen=True)
class CompiledReport:
    """
    Valid, scope-consistent request ready for the API.

    WHAT: Output of ReportCompiler.prepare(). Immutable once built.

    FIELDS:
        property_id: Numeric GA4 property id
        dimensions: Kept dimensions, in output column order
        metrics: Kept metrics, in output column order
        date_range: Effective date range (defaulted if absent)
        limit: Clamped row limit
        order_by: Effective ordering (None if dropped)
        warnings: Rewrite notices accumulated so far, in order
    """
    property_id: str
    dimensions: Tuple[str, ...]
    metrics: Tuple[str, ...]
    date_range: DateRange
    limit: int
    order_by: Optional[OrderBy] = None
    warnings: Tuple[str, ...] = ()

    def to_request_body(self) -> Dict[str, Any]:
        """Render the GA4 runReport JSON body."""
        return build_request_body(
            dimensions=self.dimensions,
            metrics=self.metrics,
            date_range=self.date_range,
            limit=self.limit,
            order_by=self.order_by,
        )


def build_request_body(
    dimensions: Tuple[str, ...] | List[str],
    metrics: Tuple[str, ...] | List[str],
    date_range: DateRange,
    limit: int,
    order_by: Optional[OrderBy] = None,
) -> Dict[str, Any]:
    """Build a runReport body. GA4 expects limit as a string (int64)."""
    body: Dict[str, Any] = {
        "dateRanges": [date_range.to_dict()],
        "dimensions": [{"name": name} for name in dimensions],
        "metrics": [{"name": name} for name in metrics],
        "limit": str(limit),
    }
    if order_by is not None:
        body["orderBys"] = [order_by.to_dict()]
    return body


@dataclass
class ReportResult:
    """
    Normalized report returned to the model.

    Serialized with camelCase keys because the JSON goes straight into the
    LLM conversation, next to GA4 field names that are camelCase too.
    """
    headers: List[str]
    rows: List[List[str]]
    row_count: int
    property_id: str
    date_range: DateRange
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headers": self.headers,
            "rows": self.rows,
            "rowCount": self.row_count,
            "propertyId": self.property_id,
            "dateRange": self.date_range.to_dict(),
            "warnings": self.warnings,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "ReportResult":
        payload = json.loads(json_str)
        return cls(
            headers=payload["headers"],
            rows=payload["rows"],
            row_count=payload["rowCount"],
            property_id=payload["propertyId"],
            date_range=DateRange.from_dict(payload["dateRange"]),
            warnings=payload.get("warnings", []),
        )


@dataclass(frozen=True)
class MetadataSnapshot:
    """Valid field names for one property, as of a metadata fetch."""
    property_id: str
    dimensions: FrozenSet[str]
    metrics: FrozenSet[str]
    expires_at: float
