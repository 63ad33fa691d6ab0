"""Unit tests for StreamSession, the end-to-end decode pipeline."""

import json

import httpx
import pytest

from llmstream.cancellation import CancellationToken
from llmstream.exceptions import OperationCancelledError, ProviderError, RateLimitError, StreamError
from llmstream.providers.openai import ChatDeltaExtractor, extract_chat_delta
from llmstream.stream.session import StreamSession
from tests.conftest import make_response, mock_client, sse


def delta(text: str) -> str:
    return json.dumps({"choices": [{"delta": {"content": text}}]})


def text_extractor(payload: str) -> str | None:
    return json.loads(payload).get("text")


class TestStreamSession:
    """Tests for iterating a StreamSession."""

    @pytest.mark.asyncio
    async def test_split_frame_reassembled(self):
        """Test a frame split across reads yields one token."""
        response = make_response(
            [b'data: {"text": "Hel', b'lo"}\n\ndata: [DONE]\n\n'],
        )
        session = StreamSession(response, text_extractor)

        assert await session.collect() == ["Hello"]
        assert session.emitted == 1
        assert session.closed
        assert session.tool_calls == []

    @pytest.mark.asyncio
    async def test_tool_call_fragments_collected(self):
        """Test tool-call fragments split across reads are merged on the session."""
        body = sse(
            json.dumps({"choices": [{"delta": {"tool_calls": [
                {"index": 0, "id": "call_1", "type": "function", "function": {"name": "lookup", "arguments": '{"ci'}},
            ]}}]}),
            json.dumps({"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": 'ty": "Oslo"}'}}]}}]}),
        )
        chunks = [body[i:i + 7] for i in range(0, len(body), 7)]
        session = StreamSession(make_response(chunks), ChatDeltaExtractor())

        assert await session.collect() == []
        assert len(session.tool_calls) == 1
        assert session.tool_calls[0].id == "call_1"
        assert session.tool_calls[0].function.arguments == '{"city": "Oslo"}'

    @pytest.mark.asyncio
    async def test_tokens_in_wire_order(self):
        """Test multiple tokens keep their order and empty results are skipped."""
        body = sse(
            json.dumps({"choices": [{"delta": {"role": "assistant"}}]}),
            delta("The"),
            delta(" sky"),
            json.dumps({"choices": []}),
            delta(" is blue"),
        )
        chunks = [body[i:i + 5] for i in range(0, len(body), 5)]
        session = StreamSession(make_response(chunks), extract_chat_delta)

        assert await session.collect() == ["The", " sky", " is blue"]

    @pytest.mark.asyncio
    async def test_stream_ends_at_body_end_without_sentinel(self):
        """Test a body without [DONE] ends cleanly, last line included."""
        response = make_response([b'data: {"text": "a"}\n\ndata: {"text": "b"}'])

        assert await StreamSession(response, text_extractor).collect() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_frames_after_sentinel_ignored(self):
        """Test nothing after the sentinel is extracted."""
        calls: list[str] = []

        def extractor(payload: str) -> str | None:
            calls.append(payload)
            return payload

        response = make_response([b"data: a\ndata: [DONE]\ndata: b\n"])

        assert await StreamSession(response, extractor).collect() == ["a"]
        assert calls == ["a"]

    @pytest.mark.asyncio
    async def test_cancellation_mid_stream(self):
        """Test cancelling after two tokens stops the stream and releases it."""
        token = CancellationToken()
        body = sse(*(delta(str(i)) for i in range(10)))
        session = StreamSession(make_response([body]), extract_chat_delta, token=token)
        received: list[str] = []

        with pytest.raises(OperationCancelledError):
            async for text in session:
                received.append(text)
                if len(received) == 2:
                    token.cancel()

        assert received == ["0", "1"]
        assert session.emitted == 2
        assert session.closed

    @pytest.mark.asyncio
    async def test_cancelled_before_iteration(self):
        """Test a cancelled token yields nothing."""
        token = CancellationToken()
        token.cancel()
        session = StreamSession(make_response([sse(delta("x"))]), extract_chat_delta, token=token)

        with pytest.raises(OperationCancelledError):
            await session.collect()

        assert session.emitted == 0
        assert session.closed

    @pytest.mark.asyncio
    async def test_extractor_failure_becomes_stream_error(self):
        """Test extractor exceptions surface as StreamError with the cause."""
        response = make_response([b"data: not json\n\n"])
        session = StreamSession(response, extract_chat_delta)

        with pytest.raises(StreamError) as exc_info:
            await session.collect()

        assert isinstance(exc_info.value.cause, json.JSONDecodeError)
        assert exc_info.value.details["payload"] == "not json"
        assert session.closed

    @pytest.mark.asyncio
    async def test_stream_error_from_extractor_kept(self):
        """Test a StreamError raised by the extractor is not re-wrapped."""
        original = StreamError("provider said no")

        def extractor(payload: str) -> str | None:
            raise original

        session = StreamSession(make_response([b"data: x\n"]), extractor)

        with pytest.raises(StreamError) as exc_info:
            await session.collect()

        assert exc_info.value is original

    @pytest.mark.asyncio
    async def test_error_status_on_iteration(self):
        """Test a non-2xx response is classified before any decoding."""
        response = make_response([b'{"error": {"message": "boom"}}'], status_code=500)
        session = StreamSession(response, text_extractor, provider="openai")

        with pytest.raises(ProviderError) as exc_info:
            await session.collect()

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "boom"
        assert session.closed

    @pytest.mark.asyncio
    async def test_rate_limit_on_iteration(self):
        """Test 429 with Retry-After produces a RateLimitError."""
        response = make_response([b""], status_code=429, headers={"Retry-After": "30"})

        with pytest.raises(RateLimitError) as exc_info:
            await StreamSession(response, provider="huggingface").collect()

        assert exc_info.value.retry_after_ms == 30000

    @pytest.mark.asyncio
    async def test_single_pass(self):
        """Test a second iteration yields nothing."""
        session = StreamSession(make_response([b"data: a\ndata: b\n"]))

        assert await session.collect() == ["a", "b"]
        assert await session.collect() == []

    @pytest.mark.asyncio
    async def test_early_exit_releases_response(self):
        """Test leaving the context manager mid-stream closes the response."""
        session = StreamSession(make_response([b"data: a\ndata: b\ndata: c\n"]))

        async with session:
            async for text in session:
                assert text == "a"
                break

        assert session.closed
        assert session.emitted == 1

    @pytest.mark.asyncio
    async def test_aclose_without_iteration(self):
        """Test closing an unread session releases the response."""
        session = StreamSession(make_response([b"data: a\n"]))

        await session.aclose()

        assert session.closed


class TestStreamSessionOpen:
    """Tests for StreamSession.open over a mocked transport."""

    @pytest.mark.asyncio
    async def test_open_and_stream(self):
        """Test opening a request and reading its tokens."""
        client = mock_client(lambda request: httpx.Response(200, content=sse(delta("Hi"), delta("!"))))
        request = client.build_request("POST", "https://api.example.com/v1/chat/completions")

        async with client:
            async with await StreamSession.open(client, request, extract_chat_delta) as session:
                tokens = await session.collect()

        assert tokens == ["Hi", "!"]

    @pytest.mark.asyncio
    async def test_open_rate_limited(self):
        """Test a 429 fails at open time."""
        client = mock_client(
            lambda request: httpx.Response(
                429,
                headers={"Retry-After": "30"},
                json={"error": {"message": "slow down"}},
            ),
        )
        request = client.build_request("POST", "https://api.example.com/v1/chat/completions")

        async with client:
            with pytest.raises(RateLimitError) as exc_info:
                await StreamSession.open(client, request, provider="openai")

        assert exc_info.value.retry_after_ms == 30000
        assert exc_info.value.message == "slow down"

    @pytest.mark.asyncio
    async def test_open_transport_error(self):
        """Test transport failures are classified as 503."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = mock_client(handler)
        request = client.build_request("POST", "https://api.example.com/v1/chat/completions")

        async with client:
            with pytest.raises(ProviderError) as exc_info:
                await StreamSession.open(client, request, provider="openai")

        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_open_with_cancelled_token(self):
        """Test no request is sent once the token is cancelled."""
        sent: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            return httpx.Response(200, content=sse())

        token = CancellationToken()
        token.cancel()
        client = mock_client(handler)
        request = client.build_request("POST", "https://api.example.com/v1/chat/completions")

        async with client:
            with pytest.raises(OperationCancelledError):
                await StreamSession.open(client, request, token=token)

        assert sent == []
