"""
Agent Tools - Report Compiler Wrappers
======================================

**Version**: 1.0.0
**Status**: Active

The fixed catalog of tools the model can call. Every report tool is a thin
wrapper around ReportCompiler; they differ only in how much of the request
shape the model gets to choose.

WHY THIS FILE EXISTS
--------------------
The model is good at picking a tool that matches the question and bad at
assembling valid GA4 requests from scratch. So the catalog is layered:

    (a) Fixed-shape tools    ga_total_revenue, ga_revenue_by_date,
                             ga_purchases_by_channel
                             -> only dateRange / limit
    (b) Scoped tools         ga_general_report, ga_item_report,
                             ga_event_report
                             -> caller fields, sensible defaults, scope guidance
    (c) Escape hatch         ga_run_report
                             -> the full ReportRequest shape
    Discovery                ga_list_available_metrics
                             -> what this property actually has

Each tool declares a pydantic argument model. Arguments are validated
against it BEFORE any I/O; a validation failure becomes a structured tool
error the model can read and correct.

RELATED FILES
-------------
- app/semantic/compiler.py: What report tools call
- app/agent/orchestrator.py: Dispatches tool calls through ToolRegistry
- app/services/ga4_client.py: Metadata listing for discovery
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Annotated, Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from app.agent.exceptions import ToolExecutionError
from app.semantic.compiler import ReportCompiler
from app.semantic.errors import ReportQueryError
from app.semantic.model import property_resource_name
from app.semantic.query import DateRange, OrderBy, ReportRequest
from app.services.ga4_client import AnalyticsApiError, AnalyticsDataClient

logger = logging.getLogger(__name__)

FieldName = Annotated[str, Field(min_length=1)]

MAX_LISTED_FIELDS = 50


# =============================================================================
# ARGUMENT MODELS
# =============================================================================

class ToolArgs(BaseModel):
    """Base for tool argument models: camelCase on the wire, no unknown keys."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class DateRangeArgs(ToolArgs):
    start_date: str = Field(
        alias="startDate",
        min_length=1,
        description="Start date: YYYY-MM-DD or a relative expression like '28daysAgo', 'today'",
    )
    end_date: str = Field(
        alias="endDate",
        min_length=1,
        description="End date: YYYY-MM-DD or a relative expression like 'yesterday', 'today'",
    )

    def to_date_range(self) -> DateRange:
        return DateRange(start_date=self.start_date, end_date=self.end_date)


class OrderByArgs(ToolArgs):
    metric: Optional[str] = Field(default=None, min_length=1, description="Metric to sort by")
    dimension: Optional[str] = Field(default=None, min_length=1, description="Dimension to sort by")
    desc: bool = Field(default=False, description="Sort descending")

    @model_validator(mode="after")
    def _exactly_one_field(self) -> "OrderByArgs":
        if bool(self.metric) == bool(self.dimension):
            raise ValueError("orderBy needs exactly one of 'metric' or 'dimension'")
        return self

    def to_order_by(self) -> OrderBy:
        return OrderBy(metric=self.metric, dimension=self.dimension, desc=self.desc)


class FixedShapeArgs(ToolArgs):
    date_range: Optional[DateRangeArgs] = Field(
        default=None,
        alias="dateRange",
        description="Defaults to the last 28 days ending yesterday",
    )
    limit: Optional[int] = Field(default=None, ge=1, le=1000, description="Row limit (default 50)")


class ScopedReportArgs(FixedShapeArgs):
    dimensions: Optional[List[FieldName]] = Field(default=None, max_length=3)
    metrics: Optional[List[FieldName]] = Field(default=None, max_length=5)
    order_by: Optional[OrderByArgs] = Field(default=None, alias="orderBy")


class EventReportArgs(FixedShapeArgs):
    event_name: Optional[str] = Field(
        default=None,
        alias="eventName",
        description='Specific event name (e.g. "purchase", "order_completed"). Leave empty to see all events.',
    )
    additional_dimensions: List[FieldName] = Field(
        default_factory=list,
        alias="additionalDimensions",
        max_length=2,
        description='Extra dimensions like "date", "sessionSource", "deviceCategory"',
    )
    additional_metrics: List[FieldName] = Field(
        default_factory=list,
        alias="additionalMetrics",
        max_length=3,
        description='Metrics beyond eventCount (e.g. "totalRevenue")',
    )
    order_by: Optional[OrderByArgs] = Field(default=None, alias="orderBy")


class RunReportArgs(FixedShapeArgs):
    dimensions: List[FieldName] = Field(default_factory=list, max_length=6)
    metrics: List[FieldName] = Field(min_length=1, max_length=10)
    order_by: Optional[OrderByArgs] = Field(default=None, alias="orderBy")


class ListMetricsArgs(ToolArgs):
    search_term: Optional[str] = Field(
        default=None,
        alias="searchTerm",
        description='Filter metrics/dimensions (e.g. "purchase", "revenue", "conversion", "item", "cart")',
    )


# =============================================================================
# TOOL PLUMBING
# =============================================================================

@dataclass
class ToolContext:
    """Per-run context passed to every tool invocation."""
    compiler: ReportCompiler
    client: AnalyticsDataClient
    property_id: str
    user_id: str


ToolHandler = Callable[[Any, ToolContext], Awaitable[str]]


@dataclass(frozen=True)
class ReportTool:
    """
    One named tool: description, argument model and async handler.

    WHAT:
        validate() enforces the argument model; invoke() runs the handler;
        run() does both and converts known failures to ToolExecutionError.

    USAGE:
        tool = registry.get("ga_total_revenue")
        payload = await tool.run({"dateRange": {...}}, context)
    """
    name: str
    description: str
    args_model: Type[ToolArgs]
    handler: ToolHandler

    def validate(self, arguments: Optional[Dict[str, Any]]) -> ToolArgs:
        """Validate model-supplied arguments. No I/O happens before this succeeds."""
        if arguments is None:
            raise ToolExecutionError(self.name, "Invalid arguments: expected a JSON object")
        try:
            return self.args_model.model_validate(arguments)
        except ValidationError as e:
            problems = [
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            raise ToolExecutionError(
                self.name,
                f"Invalid arguments for {self.name}",
                details={"details": problems},
            ) from e

    async def invoke(self, validated: ToolArgs, context: ToolContext) -> str:
        return await self.handler(validated, context)

    async def run(self, arguments: Optional[Dict[str, Any]], context: ToolContext) -> str:
        """
        Validate then invoke.

        RAISES:
            ToolExecutionError: Validation failed, or the compiler/upstream
                reported a failure (code preserved in details)
        """
        validated = self.validate(arguments)
        try:
            return await self.invoke(validated, context)
        except ReportQueryError as e:
            payload = e.to_payload()
            details = {k: v for k, v in payload.items() if k != "error"}
            raise ToolExecutionError(self.name, e.message, details=details) from e
        except AnalyticsApiError as e:
            details = {"code": e.reason} if e.reason else {}
            raise ToolExecutionError(self.name, e.to_user_message(), details=details) from e

    def to_openai_tool(self) -> Dict[str, Any]:
        """OpenAI function-tool definition built from the argument model."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.args_model.model_json_schema(by_alias=True),
            },
        }


class ToolRegistry:
    """
    Immutable name -> ReportTool mapping, built once at startup.

    WHAT: Lookup by name plus the tool catalog bound to every model call.

    WHY: Shared read-only by all concurrent runs, so nothing here mutates
    after construction.
    """

    def __init__(self, tools: Iterable[ReportTool]):
        by_name: Dict[str, ReportTool] = {}
        for tool in tools:
            if tool.name in by_name:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            by_name[tool.name] = tool
        self._tools = MappingProxyType(by_name)
        self._catalog = tuple(tool.to_openai_tool() for tool in by_name.values())

    def get(self, name: str) -> Optional[ReportTool]:
        return self._tools.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def catalog(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(list(self._catalog))

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


# =============================================================================
# HANDLERS
# =============================================================================

def _date_range(args: FixedShapeArgs) -> Optional[DateRange]:
    return args.date_range.to_date_range() if args.date_range else None


def _order_by(order_by: Optional[OrderByArgs]) -> Optional[OrderBy]:
    return order_by.to_order_by() if order_by else None


async def _compile(context: ToolContext, request: ReportRequest) -> str:
    return await context.compiler.compile_json(request, context.property_id, context.user_id)


def _fixed_shape(dimensions: List[str], metrics: List[str]) -> ToolHandler:
    async def handler(args: FixedShapeArgs, context: ToolContext) -> str:
        return await _compile(context, ReportRequest(
            dimensions=list(dimensions),
            metrics=list(metrics),
            date_range=_date_range(args),
            limit=args.limit,
        ))
    return handler


def _scoped(default_dimensions: List[str], default_metrics: List[str]) -> ToolHandler:
    async def handler(args: ScopedReportArgs, context: ToolContext) -> str:
        return await _compile(context, ReportRequest(
            dimensions=list(args.dimensions if args.dimensions is not None else default_dimensions),
            metrics=list(args.metrics or default_metrics),
            date_range=_date_range(args),
            limit=args.limit,
            order_by=_order_by(args.order_by),
        ))
    return handler


async def _event_report(args: EventReportArgs, context: ToolContext) -> str:
    dimensions = list(args.additional_dimensions)
    if args.event_name:
        dimensions = ["eventName"] + dimensions
    return await _compile(context, ReportRequest(
        dimensions=dimensions,
        metrics=["eventCount"] + list(args.additional_metrics),
        date_range=_date_range(args),
        limit=args.limit,
        order_by=_order_by(args.order_by),
    ))


async def _run_report(args: RunReportArgs, context: ToolContext) -> str:
    return await _compile(context, ReportRequest(
        dimensions=list(args.dimensions),
        metrics=list(args.metrics),
        date_range=_date_range(args),
        limit=args.limit,
        order_by=_order_by(args.order_by),
    ))


def _describe_fields(entries: Optional[List[Dict[str, Any]]], term: Optional[str]) -> List[Dict[str, str]]:
    described = [
        {
            "apiName": entry.get("apiName") or "",
            "uiName": entry.get("uiName") or "",
            "description": entry.get("description") or "",
        }
        for entry in entries or []
    ]
    described = [d for d in described if d["apiName"]]
    if term:
        needle = term.lower()
        described = [d for d in described if any(needle in value.lower() for value in d.values())]
    return described[:MAX_LISTED_FIELDS]


async def _list_available_metrics(args: ListMetricsArgs, context: ToolContext) -> str:
    data = await context.client.get_metadata(context.property_id)
    if args.search_term:
        note = (
            f'Filtered by search term: "{args.search_term}". '
            f"Use this tool again without searchTerm to see all available metrics."
        )
    else:
        note = (
            f"Showing up to {MAX_LISTED_FIELDS} metrics and {MAX_LISTED_FIELDS} dimensions. "
            f"Use searchTerm parameter to filter (e.g., 'purchase', 'revenue', 'conversion')."
        )
    return json.dumps({
        "propertyResourceName": property_resource_name(context.property_id),
        "totalMetrics": len(data.get("metrics") or []),
        "totalDimensions": len(data.get("dimensions") or []),
        "metrics": _describe_fields(data.get("metrics"), args.search_term),
        "dimensions": _describe_fields(data.get("dimensions"), args.search_term),
        "note": note,
    }, indent=2)


# =============================================================================
# CATALOG
# =============================================================================

GENERAL_REPORT_DESCRIPTION = """General (non-item) GA4 report for property-level, user-scoped and session-scoped metrics.

USE THIS FOR: activeUsers, totalUsers, sessions, engagedSessions, totalRevenue, purchases, conversions, bounceRate
COMPATIBLE DIMENSIONS: date, country, city, deviceCategory, sessionDefaultChannelGroup, sessionSource, sessionMedium, browser, newVsReturning

DO NOT USE with item dimensions (itemName, itemId, itemBrand): they are incompatible with user/session metrics.
DO NOT USE for item-scoped metrics (itemRevenue, itemsViewed): use ga_item_report instead.

Examples:
- "activeUsers by date" -> OK
- "sessions by deviceCategory" -> OK
- "activeUsers by itemName" -> NOT OK
"""

ITEM_REPORT_DESCRIPTION = (
    "Item-scoped GA4 report. Defaults to itemRevenue by itemName. Use only item dimensions "
    "(itemName, itemId, itemBrand, itemCategory, itemVariant)."
)

EVENT_REPORT_DESCRIPTION = """Query GA4 events and event counts.

USE THIS FOR:
- Custom conversion events (e.g. "order_completed", "purchase_confirmed", "checkout_complete")
- Tracking specific user actions by event name
- When standard metrics like "purchases" aren't available but custom events are tracked
- Finding out which events are tracked (leave eventName empty)

Many sites track purchases as custom events instead of GA4's standard "purchase" event.
If the "purchases" metric fails:
1. Query all events without eventName to see what is tracked
2. Look for purchase-related events in the results
3. Query that event by passing its eventName

Examples:
- "All tracked events" -> eventName empty, additionalDimensions: []
- "Custom purchase event" -> eventName: "order_completed", additionalDimensions: ["sessionSource"]
- "Form submissions by source" -> eventName: "form_submit", additionalDimensions: ["sessionSource"]

COMPATIBLE ADDITIONAL DIMENSIONS: date, country, city, deviceCategory, sessionSource, sessionMedium, sessionDefaultChannelGroup, browser
"""

RUN_REPORT_DESCRIPTION = """Run an arbitrary GA4 report with custom dimensions and metrics.

Use this only when no other tool fits. The request is checked against the
property's metadata: unknown fields are dropped, incompatible item/user
combinations are repaired, and every change is listed in "warnings".
"""

LIST_METRICS_DESCRIPTION = """Lists the metrics and dimensions available in the current GA4 property.

USE THIS WHEN:
- A field you tried is not found ("Dropped unknown field" warning, NO_VALID_METRICS error)
- You need to discover which conversion/purchase metrics exist
- The user asks "what data do we have?" or "what can I analyze?"
- You want alternatives (search for "purchase" or "revenue")

Different properties expose different metrics depending on e-commerce setup,
custom event definitions and enhanced measurement settings. searchTerm is
optional but recommended.
"""


def build_default_registry() -> ToolRegistry:
    """Build the standard GA4 tool catalog."""
    return ToolRegistry([
        ReportTool(
            name="ga_total_revenue",
            description="Total revenue for the date range. No dimensions.",
            args_model=FixedShapeArgs,
            handler=_fixed_shape([], ["totalRevenue"]),
        ),
        ReportTool(
            name="ga_revenue_by_date",
            description="Total revenue by date (trend).",
            args_model=FixedShapeArgs,
            handler=_fixed_shape(["date"], ["totalRevenue"]),
        ),
        ReportTool(
            name="ga_purchases_by_channel",
            description="Purchases by session default channel group.",
            args_model=FixedShapeArgs,
            handler=_fixed_shape(["sessionDefaultChannelGroup"], ["purchases"]),
        ),
        ReportTool(
            name="ga_item_report",
            description=ITEM_REPORT_DESCRIPTION,
            args_model=ScopedReportArgs,
            handler=_scoped(["itemName"], ["itemRevenue"]),
        ),
        ReportTool(
            name="ga_general_report",
            description=GENERAL_REPORT_DESCRIPTION,
            args_model=ScopedReportArgs,
            handler=_scoped([], ["totalRevenue"]),
        ),
        ReportTool(
            name="ga_event_report",
            description=EVENT_REPORT_DESCRIPTION,
            args_model=EventReportArgs,
            handler=_event_report,
        ),
        ReportTool(
            name="ga_run_report",
            description=RUN_REPORT_DESCRIPTION,
            args_model=RunReportArgs,
            handler=_run_report,
        ),
        ReportTool(
            name="ga_list_available_metrics",
            description=LIST_METRICS_DESCRIPTION,
            args_model=ListMetricsArgs,
            handler=_list_available_metrics,
        ),
    ])
