"""Unit tests for the GA4 Data API client.

WHAT:
    Request shape (URL, method, bearer token, body) and error
    classification for HTTP and transport failures.

WHY:
    Failures are classified once, here. The compiler's fallback logic and
    the tool error payloads rely on getting the right error type.

REFERENCES:
    - app/services/ga4_client.py
"""

import asyncio
import json

import httpx
import pytest

from app.services.ga4_client import (
    AnalyticsApiError,
    AnalyticsPermissionError,
    AnalyticsTimeoutError,
    GA4DataClient,
    InvalidReportRequestError,
    QuotaExhaustedError,
)


def call(handler, method_name, *args):
    """Run one client call against a MockTransport handler."""
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = GA4DataClient(http, access_token="token-abc", base_url="https://ga.test/v1beta/")
            return await getattr(client, method_name)(*args)
    return asyncio.run(run())


def error_response(status_code, status, message="nope"):
    return httpx.Response(
        status_code,
        json={"error": {"code": status_code, "message": message, "status": status}},
    )


# =============================================================================
# REQUESTS
# =============================================================================

class TestRequests:

    def test_run_report_posts_body_with_bearer_token(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"rows": [], "rowCount": 0})

        body = {"metrics": [{"name": "sessions"}], "limit": "10"}
        data = call(handler, "run_report", "properties/123456", body)

        assert data == {"rows": [], "rowCount": 0}
        assert seen["method"] == "POST"
        assert seen["url"] == "https://ga.test/v1beta/properties/123456:runReport"
        assert seen["auth"] == "Bearer token-abc"
        assert seen["body"] == body

    def test_get_metadata(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"dimensions": [], "metrics": []})

        call(handler, "get_metadata", "123456")

        assert seen["method"] == "GET"
        assert seen["url"] == "https://ga.test/v1beta/properties/123456/metadata"


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================

class TestErrorClassification:

    @pytest.mark.parametrize("status_code,status,error_type", [
        (400, "INVALID_ARGUMENT", InvalidReportRequestError),
        (401, "UNAUTHENTICATED", AnalyticsPermissionError),
        (403, "PERMISSION_DENIED", AnalyticsPermissionError),
        (429, "RESOURCE_EXHAUSTED", QuotaExhaustedError),
        (500, "INTERNAL", AnalyticsApiError),
    ])
    def test_http_errors(self, status_code, status, error_type):
        with pytest.raises(error_type) as exc_info:
            call(lambda request: error_response(status_code, status, "Field itemFoo is not valid"), "run_report", "1", {})

        error = exc_info.value
        assert type(error) is error_type
        assert error.status_code == status_code
        assert error.reason == status
        assert error.message == "Field itemFoo is not valid"

    def test_non_json_error_body(self):
        with pytest.raises(AnalyticsApiError) as exc_info:
            call(lambda request: httpx.Response(502, text="Bad Gateway"), "run_report", "1", {})

        assert "502" in exc_info.value.message
        assert "Bad Gateway" in exc_info.value.message

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(AnalyticsTimeoutError) as exc_info:
            call(handler, "run_report", "1", {})
        assert exc_info.value.reason == "TIMEOUT"

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AnalyticsApiError) as exc_info:
            call(handler, "get_metadata", "1")
        assert exc_info.value.reason == "TRANSPORT"

    def test_invalid_json_success_body(self):
        with pytest.raises(AnalyticsApiError):
            call(lambda request: httpx.Response(200, text="<html>"), "run_report", "1", {})

    def test_user_messages(self):
        """WHAT: Permission and quota errors carry actionable copy.
        WHY: These messages reach the model, which relays them to the user.
        """
        assert "reconnect" in AnalyticsPermissionError("x", 403).to_user_message()
        assert "quota" in QuotaExhaustedError("x", 429).to_user_message()
        assert InvalidReportRequestError("bad field", 400).to_user_message() == "bad field"
