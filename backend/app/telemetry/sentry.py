"""
Sentry Error Tracking
=====================

Error tracking for the chat backend.

Related files:
- app/main.py: Initializes Sentry on app startup
- app/routers/chat.py: Tags each chat request with user and property

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays off without it)
- ENVIRONMENT: Environment name (production, staging, development)
- RELEASE_VERSION: Release tag (set via CI/CD)
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration

logger = logging.getLogger(__name__)


def init_sentry(dsn: Optional[str], environment: str = "development") -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Call once during application startup.

    Returns:
        True if Sentry was initialized, False if no DSN is configured.

    Example:
        settings = get_settings()
        init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT)
    """
    if not dsn:
        logger.info("[SENTRY] SENTRY_DSN not set - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            RedisIntegration(),
            LoggingIntegration(
                level=logging.INFO,         # INFO+ as breadcrumbs
                event_level=logging.ERROR,  # ERROR+ as events
            ),
        ],
        traces_sample_rate=0.1,
        # User is set explicitly per request
        send_default_pii=False,
        release=os.environ.get("RELEASE_VERSION"),
    )
    logger.info(f"[SENTRY] Initialized for {environment} environment")
    return True


def set_user_context(
    user_id: str,
    email: Optional[str] = None,
    property_id: Optional[str] = None,
) -> None:
    """
    Attach the caller to all events captured for the rest of the request.

    Args:
        user_id: Gateway-provided user id
        email: User's email address (optional)
        property_id: Selected GA4 property (optional)
    """
    sentry_sdk.set_user({"id": user_id, "email": email})
    if property_id:
        sentry_sdk.set_tag("ga4_property_id", property_id)
