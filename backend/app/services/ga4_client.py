"""GA4 Data API client service abstraction.

WHAT:
    Thin async client for the two Google Analytics Data API calls the
    copilot needs: runReport and getMetadata. Classifies every HTTP and
    transport failure into a typed error at this boundary.

WHY:
    - Separation of concerns: the compiler works with dicts and typed
      errors, never with status codes or httpx exceptions.
    - Testability: the httpx.AsyncClient is injected, so tests use
      httpx.MockTransport instead of the network.
    - OAuth is someone else's job: the caller hands us an access token that
      is already valid for the analytics.readonly scope.

REFERENCES:
    https://developers.google.com/analytics/devguides/reporting/data/v1/rest
    app/semantic/compiler.py (consumer)
    app/semantic/metadata.py (consumer)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Protocol

import httpx

from app.semantic.model import normalize_property_id

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://analyticsdata.googleapis.com/v1beta"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class AnalyticsApiError(Exception):
    """Base exception for GA4 Data API failures.

    WHAT:
        Any failed call, already classified. Carries the HTTP status (None
        for transport failures) and Google's error status string.

    WHY:
        The compiler's degradation cascade retries on exactly this type and
        nothing else, so programming errors are never masked as fallbacks.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.reason = reason

    def to_user_message(self) -> str:
        return self.message


class InvalidReportRequestError(AnalyticsApiError):
    """GA4 rejected the request body (400 / INVALID_ARGUMENT)."""


class AnalyticsPermissionError(AnalyticsApiError):
    """Token missing, expired or lacking access to the property (401/403)."""

    def to_user_message(self) -> str:
        return "Google Analytics access was denied. Please reconnect your Google account."


class QuotaExhaustedError(AnalyticsApiError):
    """Property or project quota exhausted (429 / RESOURCE_EXHAUSTED)."""

    def to_user_message(self) -> str:
        return "The Google Analytics API quota is exhausted for now. Please try again later."


class AnalyticsTimeoutError(AnalyticsApiError):
    """The request did not complete within the client timeout."""


def classify_response_error(response: httpx.Response) -> AnalyticsApiError:
    """Turn a non-2xx GA4 response into the matching typed error.

    GA4 errors look like:
        {"error": {"code": 400, "message": "...", "status": "INVALID_ARGUMENT"}}
    """
    status_code = response.status_code
    reason = None
    message = f"GA4 API returned HTTP {status_code}"
    try:
        error = response.json().get("error", {})
        reason = error.get("status")
        if error.get("message"):
            message = error["message"]
    except ValueError:
        if response.text:
            message = f"{message}: {response.text[:200]}"

    if status_code == 429 or reason == "RESOURCE_EXHAUSTED":
        return QuotaExhaustedError(message, status_code, reason)
    if status_code in (401, 403) or reason in ("UNAUTHENTICATED", "PERMISSION_DENIED"):
        return AnalyticsPermissionError(message, status_code, reason)
    if status_code == 400 or reason == "INVALID_ARGUMENT":
        return InvalidReportRequestError(message, status_code, reason)
    return AnalyticsApiError(message, status_code, reason)


# =============================================================================
# CLIENT
# =============================================================================

class AnalyticsDataClient(Protocol):
    """What the compiler and metadata resolver need from an upstream client."""

    async def run_report(self, property_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def get_metadata(self, property_id: str) -> Dict[str, Any]:
        ...


class GA4DataClient:
    """Authenticated GA4 Data API client for one caller.

    USAGE:
        client = GA4DataClient(http_client, access_token="ya29...")
        data = await client.run_report("123456", {"metrics": [{"name": "sessions"}], ...})

    PARAMETERS:
        http_client: Shared httpx.AsyncClient (connection pool, timeout)
        access_token: OAuth access token for this user
        base_url: API root, overridable for tests and proxies
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        access_token: str,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self.http = http_client
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _request(self, method: str, url: str, endpoint: str, **kwargs: Any) -> Dict[str, Any]:
        start = time.monotonic()
        try:
            response = await self.http.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"[GA4] {endpoint} timed out: {e}")
            raise AnalyticsTimeoutError(f"GA4 {endpoint} timed out", reason="TIMEOUT") from e
        except httpx.RequestError as e:
            logger.warning(f"[GA4] {endpoint} transport error: {e}")
            raise AnalyticsApiError(f"GA4 {endpoint} request failed: {e}", reason="TRANSPORT") from e

        latency_ms = int((time.monotonic() - start) * 1000)
        if response.status_code >= 400:
            error = classify_response_error(response)
            logger.warning(
                f"[GA4] {endpoint} FAIL ({latency_ms}ms) status={response.status_code} "
                f"reason={error.reason}: {error.message}"
            )
            raise error

        logger.info(f"[GA4] {endpoint} OK ({latency_ms}ms)")
        try:
            return response.json()
        except ValueError as e:
            raise AnalyticsApiError(f"GA4 {endpoint} returned invalid JSON", response.status_code) from e

    async def run_report(self, property_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST properties/{id}:runReport and return the raw response JSON."""
        pid = normalize_property_id(property_id)
        url = f"{self.base_url}/properties/{pid}:runReport"
        return await self._request("POST", url, "runReport", json=body)

    async def get_metadata(self, property_id: str) -> Dict[str, Any]:
        """GET properties/{id}/metadata (dimensions and metrics with apiName/uiName)."""
        pid = normalize_property_id(property_id)
        url = f"{self.base_url}/properties/{pid}/metadata"
        return await self._request("GET", url, "getMetadata")
