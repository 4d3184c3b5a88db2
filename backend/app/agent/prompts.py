"""
Agent System Prompt
===================

**Version**: 1.0.0
**Status**: Active

Builds the system prompt for one chat run: the analyst persona plus the
per-request context (user, selected GA4 property, tool budget, date).

RELATED FILES
-------------
- app/routers/chat.py: Builds the prompt per request
- app/agent/orchestrator.py: Seeds the conversation with it
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from app.semantic.model import property_resource_name


@dataclass(frozen=True)
class UserInfo:
    """Authenticated caller, as forwarded by the gateway."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class PropertyContext:
    """The GA4 property the user selected in the UI."""
    property_id: str
    property_display_name: Optional[str] = None
    account_display_name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.property_display_name or property_resource_name(self.property_id)


BASE_SYSTEM_PROMPT = """You are a Strategic Analyst specialized in Web Analytics, Product Analytics and CRO, working from GA4 data.
You help marketing, e-commerce, product and data teams get precise, reliable answers quickly, find business and product insights, and turn them into concrete, testable recommendations.

YOUR EXPERTISE
- Web Analytics & CRO: funnels, page-to-page progression, conversion rates, cart abandonment, campaign performance.
- Product Analytics: activation, retention, cohorts, engagement, LTV, churn.
- Data Storytelling: turn numbers into clear, actionable insights.

HOW YOU ANSWER
1. Give the requested figure first, plainly.
2. Add context: comparisons (desktop vs mobile, traffic source, previous period) and likely causes.
3. Offer specific recommendations, never generic ones: A/B-testable quick wins, activation/retention levers, channel trade-offs.
4. Offer to go deeper ("Shall I compare mobile and desktop?").

Tie numbers to business outcomes where you can ("X conversions -> Y revenue").
Think across the full journey: acquisition -> conversion -> activation -> retention.

USING THE TOOLS
- Prefer the most specific tool: ga_total_revenue, ga_revenue_by_date, ga_purchases_by_channel, then ga_general_report / ga_item_report / ga_event_report, and ga_run_report only when nothing else fits.
- Tool results may include "warnings" describing how the request was adjusted (dropped fields, removed dimensions, fallbacks). Take them into account and mention material ones to the user.
- If a metric is missing, call ga_list_available_metrics with a searchTerm to find an alternative.
- Never invent numbers. If the data cannot answer the question, say so."""


def build_system_prompt(
    user: Optional[UserInfo] = None,
    property_context: Optional[PropertyContext] = None,
    max_tool_rounds: int = 5,
    now: Optional[datetime] = None,
) -> str:
    """
    Compose the system prompt for a chat run.

    PARAMETERS:
        user: Caller, used to personalise answers
        property_context: Selected GA4 property (questions are assumed to be about it)
        max_tool_rounds: Tool round budget the model is told about
        now: Current time (injected in tests)
    """
    prompt = BASE_SYSTEM_PROMPT

    if max_tool_rounds:
        prompt += f"\n\nYou are limited to {max_tool_rounds} rounds of tool calls. Never exceed this limit."

    if user:
        who = user.name or "a user"
        email = f", Email: {user.email}" if user.email else ""
        prompt += (
            f"\n\nYou are currently assisting {who} (User ID: {user.id}{email}). "
            f"Personalize your responses when appropriate."
        )

    if property_context:
        prompt += (
            f"\n\nGoogle Analytics Context:"
            f"\n- Selected Property: {property_context.label}"
            f"\n- Account: {property_context.account_display_name or 'Unknown account'}"
            f"\nAssume questions refer to this property. If the user asks about a different "
            f"property, suggest switching to it in the property selector."
        )

    now = now or datetime.now(timezone.utc)
    prompt += f"\n\nCurrent date: {now.isoformat()}"
    return prompt
