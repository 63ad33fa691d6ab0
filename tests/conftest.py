"""Shared fixtures and helpers for llmstream tests."""

from typing import AsyncIterator, Callable, Iterable

import httpx
import pytest

from llmstream.retry import RetryPolicy


async def byte_chunks(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    """Yield ``chunks`` one by one, like a network body."""
    for chunk in chunks:
        yield chunk


def make_response(
    chunks: Iterable[bytes],
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """Build an unread streaming response over ``chunks``."""
    return httpx.Response(status_code, headers=headers, content=byte_chunks(chunks))


def sse(*payloads: str, done: bool = True) -> bytes:
    """Encode payloads as a ``data:`` event stream body."""
    body: str = "".join(f"data: {payload}\n\n" for payload in payloads)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Default retry policy without backoff waits."""
    return RetryPolicy(initial_delay=0.0, max_delay=0.0)
