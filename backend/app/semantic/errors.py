"""
Report Query Errors
===================

**Version**: 1.0.0
**Status**: Active

Errors the report compiler raises when it cannot produce a result.

WHY THIS FILE EXISTS
--------------------
Most problems with a report request are recoverable: unknown fields are
dropped, scope conflicts are rewritten, upstream failures are retried with a
narrower query. Only two outcomes are not:

    1. NO_VALID_METRICS       nothing left to query after rewriting
    2. UPSTREAM_QUERY_FAILED  all three degradation attempts failed

Both are surfaced to the model as a tool failure payload, never as a
run-fatal error, so the model can pick different fields and try again.

RELATED FILES
-------------
- app/semantic/compiler.py: Raises these errors
- app/services/ga4_client.py: AnalyticsApiError (wrapped by UpstreamQueryFailure)
- app/agent/orchestrator.py: Converts them into tool result payloads
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class ReportQueryError(Exception):
    """
    Base exception for report compilation failures.

    WHAT:
        Carries a machine-readable code next to the human message.

    WHY:
        The model reads the payload; a stable code lets prompts and tests
        match on the failure kind without parsing prose.
    """

    code = "REPORT_QUERY_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class NoValidMetricsError(ReportQueryError):
    """
    No requested metric exists on the property after alias resolution.

    ATTRIBUTES:
        requested: Metric names as the caller sent them
        examples: A handful of metrics that DO exist on the property
    """

    code = "NO_VALID_METRICS"

    def __init__(self, requested: Sequence[str], examples: Sequence[str]):
        self.requested = list(requested)
        self.examples = list(examples)
        message = (
            f"NO_VALID_METRICS. Available examples include: {', '.join(self.examples)}. "
            f"Requested: {', '.join(self.requested)}"
        )
        super().__init__(message)


class UpstreamQueryFailure(ReportQueryError):
    """
    The analytics API rejected every step of the degradation cascade.

    ATTRIBUTES:
        attempts: Number of attempts made (3 when the cascade ran fully)
        warnings: Cascade notices accumulated before giving up
        cause: The last upstream error
    """

    code = "UPSTREAM_QUERY_FAILED"

    def __init__(
        self,
        cause: Exception,
        attempts: int,
        warnings: Optional[List[str]] = None,
    ):
        self.cause = cause
        self.attempts = attempts
        self.warnings = list(warnings or [])
        super().__init__(f"UPSTREAM_QUERY_FAILED after {attempts} attempts: {cause}")

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.warnings:
            payload["warnings"] = self.warnings
        return payload
