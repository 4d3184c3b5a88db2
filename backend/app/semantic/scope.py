"""
Scope Rules
===========

**Version**: 1.0.0
**Status**: Active

Static classification of GA4 metrics and dimensions into scope classes.

WHY THIS FILE EXISTS
--------------------
GA4 refuses (or silently zeroes) reports that mix fields aggregated over
different entities. The classic failure:

    activeUsers by itemName   -> user-scoped metric, item-scoped dimension

Users are not products, so GA4 cannot break user counts down by item.
The compiler consults these tables BEFORE calling the API so it can rewrite
the request instead of burning a round-trip on a guaranteed failure.

SCOPE CLASSES
-------------
- user:    aggregates over users (activeUsers, newUsers, ...)
- session: aggregates over sessions (sessions, bounceRate, ...)
- item:    aggregates over ecommerce items (itemRevenue, itemsViewed, ...)
- event:   everything else (eventCount, totalRevenue, purchases, ...)

COMPATIBILITY
-------------
- user/session metrics  x item dimensions  -> incompatible
- item metrics          without item dims  -> needs an item dimension
- event metrics                            -> compatible with anything

Pure functions only. No I/O, no state.

RELATED FILES
-------------
- app/semantic/compiler.py: Applies these rules while rewriting requests
- app/semantic/model.py: Aliases and preferred item dimensions
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List


class ScopeClass(str, Enum):
    """What entity a metric or dimension aggregates over."""

    USER = "user"
    SESSION = "session"
    ITEM = "item"
    EVENT = "event"


USER_SCOPED_METRICS = frozenset({
    "activeUsers",
    "totalUsers",
    "newUsers",
    "returningUsers",
    "userEngagementDuration",
})

SESSION_SCOPED_METRICS = frozenset({
    "sessions",
    "engagedSessions",
    "bounceRate",
    "sessionConversionRate",
    "averageSessionDuration",
    "sessionsPerUser",
})

ITEM_SCOPED_METRICS = frozenset({
    "itemRevenue",
    "itemsViewed",
    "itemPurchaseQuantity",
    "itemsPurchased",
    "itemsAddedToCart",
    "itemsCheckedOut",
    "itemsClickedInList",
    "itemsClickedInPromotion",
    "itemListClickEvents",
    "itemListViewEvents",
    "itemPromotionClickEvents",
    "itemPromotionViewEvents",
    "itemRefundAmount",
})

ITEM_SCOPED_DIMENSIONS = frozenset({
    "itemName",
    "itemId",
    "itemBrand",
    "itemVariant",
    "itemCategory",
    "itemCategory2",
    "itemCategory3",
    "itemCategory4",
    "itemCategory5",
})


def metric_scope(name: str) -> ScopeClass:
    """Classify a metric. Unknown metrics are event-scoped (flexible)."""
    if name in USER_SCOPED_METRICS:
        return ScopeClass.USER
    if name in SESSION_SCOPED_METRICS:
        return ScopeClass.SESSION
    if name in ITEM_SCOPED_METRICS:
        return ScopeClass.ITEM
    return ScopeClass.EVENT


def dimension_scope(name: str) -> ScopeClass:
    """Classify a dimension: item-scoped or not (event)."""
    if name in ITEM_SCOPED_DIMENSIONS:
        return ScopeClass.ITEM
    return ScopeClass.EVENT


def is_item_dimension(name: str) -> bool:
    return dimension_scope(name) is ScopeClass.ITEM


def is_item_metric(name: str) -> bool:
    return metric_scope(name) is ScopeClass.ITEM


def has_user_or_session_metric(metrics: Iterable[str]) -> bool:
    return any(metric_scope(m) in (ScopeClass.USER, ScopeClass.SESSION) for m in metrics)


def has_item_metric(metrics: Iterable[str]) -> bool:
    return any(is_item_metric(m) for m in metrics)


def has_item_dimension(dimensions: Iterable[str]) -> bool:
    return any(is_item_dimension(d) for d in dimensions)


def item_dimensions(dimensions: Iterable[str]) -> List[str]:
    """Return the item-scoped dimensions, preserving order."""
    return [d for d in dimensions if is_item_dimension(d)]


def is_compatible(metrics: Iterable[str], dimensions: Iterable[str]) -> bool:
    """
    Check a metric/dimension combination against the scope rules.

    RETURNS:
        False when user/session metrics meet item dimensions without any
        item metric, or when item metrics have no item dimension.
    """
    metrics = list(metrics)
    dimensions = list(dimensions)
    item_metric = has_item_metric(metrics)
    item_dim = has_item_dimension(dimensions)

    if has_user_or_session_metric(metrics) and item_dim and not item_metric:
        return False
    if item_metric and not item_dim:
        return False
    return True
