"""
GA4 Field Model
===============

**Version**: 1.0.0
**Status**: Active

Static knowledge about GA4 field names that the compiler needs before it
ever talks to the API: aliases, preferred substitutes and request bounds.

WHY THIS FILE EXISTS
--------------------
The LLM does not reliably use GA4 canonical names. It says "revenue" when
GA4 wants "totalRevenue", "productName" when GA4 wants "itemName", and
"orders" when GA4 wants "purchases". Mapping these up front turns a
dropped field into a kept one.

RELATED FILES
-------------
- app/semantic/scope.py: Scope classification tables
- app/semantic/compiler.py: Uses aliases, caps and fallbacks
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple


# =============================================================================
# ALIASES
# =============================================================================

# Common synonyms -> GA4 canonical API names
FIELD_ALIASES: Dict[str, str] = {
    "productName": "itemName",
    "productId": "itemId",
    "productsViewed": "itemsViewed",
    "itemViews": "itemsViewed",
    "revenue": "totalRevenue",
    "orders": "purchases",
    "transactions": "purchases",
    "transaction": "purchases",
}


def apply_alias(name: str) -> str:
    """Map a requested field name to its canonical GA4 name (identity if unknown)."""
    return FIELD_ALIASES.get(name, name)


# =============================================================================
# SCOPE REPAIR PREFERENCES
# =============================================================================

# Tried in order when an item-scoped metric arrives without an item dimension
PREFERRED_ITEM_DIMENSIONS: Tuple[str, ...] = ("itemName", "itemId", "itemBrand", "itemCategory")

# Item-scoped metric -> property-wide metric used when no item dimension exists
BROADER_METRIC_ALIASES: Dict[str, str] = {
    "itemRevenue": "totalRevenue",
}

# Last step of the degradation cascade prefers this metric when kept
SAFEST_FALLBACK_METRIC = "purchases"

# Named in NO_VALID_METRICS errors when the property has them
EXAMPLE_METRICS: Tuple[str, ...] = (
    "purchases",
    "totalRevenue",
    "itemRevenue",
    "activeUsers",
    "sessions",
    "eventCount",
)


# =============================================================================
# REQUEST BOUNDS AND DEFAULTS
# =============================================================================

DIMENSION_CAP = 3
MIN_LIMIT = 1
MAX_LIMIT = 1000
DEFAULT_LIMIT = 50

# GA4 relative date expressions, evaluated in the property's reporting
# timezone by GA4 itself (not the caller's wall clock)
DEFAULT_START_DATE = "28daysAgo"
DEFAULT_END_DATE = "yesterday"


def clamp_limit(limit: Optional[int]) -> int:
    """Clamp a row limit into [MIN_LIMIT, MAX_LIMIT]. None means the default."""
    if limit is None:
        return DEFAULT_LIMIT
    return min(max(int(limit), MIN_LIMIT), MAX_LIMIT)


# =============================================================================
# PROPERTY IDS
# =============================================================================

def normalize_property_id(property_id: str) -> str:
    """
    Accept either "123456" or "properties/123456" and return "123456".

    WHY: Callers pass whichever form they stored; caches and URLs need one.
    """
    value = str(property_id).strip()
    if value.startswith("properties/"):
        value = value.split("/", 1)[1]
    if not value:
        raise ValueError("property_id must not be empty")
    return value


def property_resource_name(property_id: str) -> str:
    """Return the GA4 resource name ("properties/123456") for a property id."""
    return f"properties/{normalize_property_id(property_id)}"
