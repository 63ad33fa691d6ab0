"""Unit tests for HTTP error classification helpers."""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from llmstream.exceptions import ErrorCode, ProviderError, RateLimitError
from llmstream.http import (
    classify_response,
    classify_status,
    classify_transport_error,
    extract_error_message,
    parse_retry_after,
    retry_after_from_headers,
)


class TestParseRetryAfter:
    """Tests for parse_retry_after."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("30", 30000),
            ("0", 0),
            ("1.5", 1500),
            (" 2 ", 2000),
            (None, None),
            ("", None),
            ("-1", None),
            ("soon", None),
            ("nan", None),
            ("inf", None),
        ],
    )
    def test_seconds(self, value, expected):
        """Test the delay-seconds form and invalid values."""
        assert parse_retry_after(value) == expected

    def test_http_date_in_future(self):
        """Test the HTTP-date form."""
        when = datetime.now(timezone.utc) + timedelta(seconds=120)

        millis = parse_retry_after(format_datetime(when, usegmt=True))

        assert millis is not None
        assert 100_000 <= millis <= 120_000

    def test_http_date_in_past(self):
        """Test a past date means no wait."""
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0

    def test_retry_after_ms_header_wins(self):
        """Test retry-after-ms takes precedence over Retry-After."""
        headers = httpx.Headers({"Retry-After": "30", "retry-after-ms": "250"})

        assert retry_after_from_headers(headers) == 250

    def test_invalid_retry_after_ms_falls_back(self):
        """Test an unparseable retry-after-ms falls back to Retry-After."""
        headers = httpx.Headers({"Retry-After": "3", "retry-after-ms": "later"})

        assert retry_after_from_headers(headers) == 3000


class TestExtractErrorMessage:
    """Tests for extract_error_message."""

    @pytest.mark.parametrize(
        "body,expected",
        [
            ('{"error": {"message": "Invalid API key", "type": "auth"}}', "Invalid API key"),
            ('{"error": "Model is loading"}', "Model is loading"),
            ('{"message": "Not found"}', "Not found"),
            ('{"detail": "x"}', "Request failed with status code 400"),
            ("[1, 2]", "Request failed with status code 400"),
            ("", "Request failed with status code 400"),
            ("upstream timeout", "Request failed with status code 400: upstream timeout"),
        ],
    )
    def test_bodies(self, body, expected):
        """Test message extraction from common error shapes."""
        assert extract_error_message(body, 400) == expected


class TestClassify:
    """Tests for status and transport classification."""

    def test_rate_limit(self):
        """Test 429 becomes RateLimitError with the retry hint."""
        error = classify_status(429, httpx.Headers({"Retry-After": "30"}), "", "huggingface")

        assert isinstance(error, RateLimitError)
        assert error.status_code == 429
        assert error.retry_after_ms == 30000
        assert error.provider == "huggingface"
        assert error.error_code == ErrorCode.RATE_LIMIT

    def test_rate_limit_without_hint(self):
        """Test 429 without Retry-After."""
        error = classify_status(429, httpx.Headers(), "", "openai")

        assert isinstance(error, RateLimitError)
        assert error.retry_after_ms is None

    def test_server_error(self):
        """Test 5xx becomes a ProviderError."""
        error = classify_status(502, httpx.Headers(), '{"error": {"message": "bad gateway"}}', "openai")

        assert type(error) is ProviderError
        assert error.status_code == 502
        assert error.message == "bad gateway"
        assert error.is_server_error
        assert error.to_dict()["details"] == {"status_code": 502, "provider": "openai"}

    def test_transport_error(self):
        """Test transport failures become a 503 ProviderError with cause."""
        cause = httpx.ConnectError("connection refused")

        error = classify_transport_error(cause, "anthropic")

        assert error.status_code == 503
        assert error.cause is cause
        assert error.details["transport_error"] == "ConnectError"

    @pytest.mark.asyncio
    async def test_classify_response_closes_response(self):
        """Test the error body is read and the response closed."""
        response = httpx.Response(401, content=b'{"error": {"message": "Invalid API key"}}')

        error = await classify_response(response, "openai")

        assert isinstance(error, ProviderError)
        assert error.status_code == 401
        assert error.message == "Invalid API key"
        assert response.is_closed
