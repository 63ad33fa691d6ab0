"""
Mapping of HTTP outcomes to classified errors.

Providers hand every non-2xx response and every transport failure to the
helpers in this module, so callers only ever see the taxonomy from
``llmstream.exceptions``.
"""

import json
import logging
import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping

import httpx

from llmstream.constants import TRANSPORT_ERROR_STATUS
from llmstream.exceptions import ClassifiedError, ProviderError, RateLimitError

logger = logging.getLogger(__name__)

# Longest slice of a non-JSON error body kept in an error message
MAX_ERROR_BODY_CHARS: int = 500


def parse_retry_after(value: str | None) -> int | None:
    """
    Convert a ``Retry-After`` header value to milliseconds.

    Both forms allowed by RFC 9110 are understood: delay-seconds and an
    HTTP-date. Dates in the past yield ``0``.

    Parameters
    ----------
    value : str | None
        Raw header value.

    Returns
    -------
    int | None
        Delay in milliseconds, or None if the header is missing or invalid.

    Examples
    --------
    >>> parse_retry_after("30")
    30000
    >>> parse_retry_after("soon") is None
    True
    """
    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    try:
        seconds: float = float(value)
    except ValueError:
        pass
    else:
        if seconds < 0 or not math.isfinite(seconds):
            return None
        return int(seconds * 1000)

    try:
        when: datetime = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring unparseable Retry-After header: {value!r}")
        return None

    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = when - datetime.now(timezone.utc)
    return max(0, int(delta.total_seconds() * 1000))


def retry_after_from_headers(headers: Mapping[str, str]) -> int | None:
    """
    Read the retry hint from response headers.

    ``retry-after-ms`` (sent by some OpenAI-compatible servers) takes
    precedence over the standard ``Retry-After`` header.
    """
    millis: str | None = headers.get("retry-after-ms")
    if millis is not None:
        try:
            return max(0, int(float(millis)))
        except (ValueError, OverflowError):
            logger.debug(f"Ignoring unparseable retry-after-ms header: {millis!r}")
    return parse_retry_after(headers.get("retry-after"))


def extract_error_message(body: str, status_code: int) -> str:
    """
    Pull a human-readable message out of a provider error body.

    Parameters
    ----------
    body : str
        Raw response body.
    status_code : int
        HTTP status code, used for the fallback message.

    Returns
    -------
    str
        The provider's message if one can be found, otherwise a generic one.
    """
    fallback: str = f"Request failed with status code {status_code}"
    if not body.strip():
        return fallback

    try:
        data: Any = json.loads(body)
    except json.JSONDecodeError:
        return f"{fallback}: {body[:MAX_ERROR_BODY_CHARS]}"

    if isinstance(data, dict):
        error: Any = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if data.get("message"):
            return str(data["message"])

    return fallback


def classify_status(
    status_code: int,
    headers: Mapping[str, str],
    body: str,
    provider: str,
) -> ClassifiedError:
    """
    Build the classified error for a non-2xx response.

    Parameters
    ----------
    status_code : int
        HTTP status code.
    headers : Mapping[str, str]
        Response headers (case-insensitive mapping expected).
    body : str
        Response body text.
    provider : str
        Provider name recorded on the error.

    Returns
    -------
    ClassifiedError
        ``RateLimitError`` for 429, ``ProviderError`` otherwise.
    """
    message: str = extract_error_message(body, status_code)
    if status_code == 429:
        return RateLimitError(
            provider,
            retry_after_ms=retry_after_from_headers(headers),
            message=message,
        )
    return ProviderError(status_code, message, provider)


async def classify_response(response: httpx.Response, provider: str) -> ClassifiedError:
    """
    Read an unsuccessful streaming response and classify it.

    The body is read (it is an error document, not content) and the response
    is closed.

    Parameters
    ----------
    response : httpx.Response
        Response with a non-2xx status.
    provider : str
        Provider name recorded on the error.

    Returns
    -------
    ClassifiedError
        The error to raise.
    """
    try:
        body: bytes = await response.aread()
        text: str = body.decode(response.encoding or "utf-8", errors="replace")
    except httpx.HTTPError as e:
        logger.debug(f"Could not read error body from {provider}: {e}")
        text = ""
    finally:
        await response.aclose()

    error: ClassifiedError = classify_status(
        response.status_code,
        response.headers,
        text,
        provider,
    )
    logger.debug(f"Classified {provider} response {response.status_code} as {type(error).__name__}")
    return error


def classify_transport_error(error: httpx.HTTPError, provider: str) -> ProviderError:
    """
    Wrap a transport-level failure (connect, read, timeout) as a ProviderError.

    The status is reported as 503 so the default retry predicate treats it
    as a transient server-side failure.

    Parameters
    ----------
    error : httpx.HTTPError
        The httpx exception.
    provider : str
        Provider name recorded on the error.

    Returns
    -------
    ProviderError
        Error with the original exception as its cause.
    """
    return ProviderError(
        TRANSPORT_ERROR_STATUS,
        f"Transport error talking to {provider}: {error}",
        provider,
        details={"transport_error": type(error).__name__},
        cause=error,
    )
