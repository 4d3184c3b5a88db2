"""
Telemetry Module
================

Observability for the GA4 copilot backend.

Components:
- sentry.py: Error tracking and performance monitoring

Logging is plain stdlib `logging` with `[TAG]` prefixes per component;
LoggingIntegration forwards ERROR records to Sentry.
"""

from app.telemetry.sentry import init_sentry, set_user_context

__all__ = [
    "init_sentry",
    "set_user_context",
]
