"""
Streaming session: one HTTP response turned into a lazy sequence of tokens.

A ``StreamSession`` owns the response for exactly one attempt. It pulls body
chunks, feeds them to an ``EventFrameDecoder``, passes every frame payload
through a provider-specific extractor, and yields the non-empty results.
The response is released on every exit path.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import AsyncIterator, Callable

import httpx

from llmstream.cancellation import CancellationToken
from llmstream.exceptions import StreamError
from llmstream.http import classify_response, classify_transport_error
from llmstream.models import ToolCall
from llmstream.stream.decoder import EventFrameDecoder, Frame
from llmstream.tools import ToolCallExtractor

logger = logging.getLogger(__name__)

Extractor = Callable[[str], str | None]

# Longest slice of a frame payload recorded on a StreamError
MAX_PAYLOAD_DETAIL_CHARS: int = 200


def identity_extractor(payload: str) -> str | None:
    """Return the payload unchanged; for providers that stream plain text."""
    return payload


class StreamSession:
    """
    Single-pass async iterator of content tokens for one response.

    Parameters
    ----------
    response : httpx.Response
        Open response obtained with ``stream=True``.
    extractor : Callable[[str], str | None], optional
        Maps a frame payload to content; ``None`` means "nothing to emit".
    token : CancellationToken | None, optional
        Checked before every chunk read and before every emitted token.
    provider : str, default="unknown"
        Provider name recorded on errors and log lines.

    Examples
    --------
    >>> async with await StreamSession.open(client, request, extract, token=token) as session:
    ...     async for text in session:
    ...         print(text, end="")
    """

    def __init__(
        self,
        response: httpx.Response,
        extractor: Extractor = identity_extractor,
        *,
        token: CancellationToken | None = None,
        provider: str = "unknown",
    ) -> None:
        self.response: httpx.Response = response
        self.extractor: Extractor = extractor
        self.token: CancellationToken | None = token
        self.provider: str = provider
        self._decoder: EventFrameDecoder = EventFrameDecoder()
        self._iterator: AsyncIterator[str] | None = None
        self._emitted: int = 0

    @classmethod
    async def open(
        cls,
        client: httpx.AsyncClient,
        request: httpx.Request,
        extractor: Extractor = identity_extractor,
        *,
        token: CancellationToken | None = None,
        provider: str = "unknown",
    ) -> StreamSession:
        """
        Send ``request`` in streaming mode and wrap the validated response.

        Parameters
        ----------
        client : httpx.AsyncClient
            Shared client used to send the request.
        request : httpx.Request
            Fully built request.
        extractor : Callable[[str], str | None], optional
            Provider content extractor.
        token : CancellationToken | None, optional
            Cancellation token for this request.
        provider : str, default="unknown"
            Provider name recorded on errors.

        Returns
        -------
        StreamSession
            Session over a 2xx response, not yet iterated.

        Raises
        ------
        ProviderError
            For non-2xx statuses and transport failures.
        RateLimitError
            For HTTP 429.
        OperationCancelledError
            If the token is cancelled before or while sending.
        """
        if token is not None:
            token.check_cancelled()

        logger.debug(f"Opening {provider} stream: {request.method} {request.url}")
        try:
            response: httpx.Response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise classify_transport_error(e, provider) from e

        if not response.is_success:
            raise await classify_response(response, provider)

        if token is not None and token.is_cancelled():
            await response.aclose()
            token.check_cancelled()

        return cls(response, extractor, token=token, provider=provider)

    @property
    def emitted(self) -> int:
        """Number of tokens yielded so far."""
        return self._emitted

    @property
    def closed(self) -> bool:
        """Whether the underlying response has been released."""
        return self.response.is_closed

    @property
    def tool_calls(self) -> list[ToolCall]:
        """
        Tool calls the model requested so far.

        Complete once iteration has finished. Always empty for extractors
        that do not collect tool calls.
        """
        if isinstance(self.extractor, ToolCallExtractor):
            return self.extractor.tool_calls
        return []

    def __aiter__(self) -> AsyncIterator[str]:
        if self._iterator is None:
            self._iterator = self._iterate()
        return self._iterator

    async def __aenter__(self) -> StreamSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop iteration (if started) and release the response."""
        if self._iterator is not None:
            await self._iterator.aclose()
        await self._release()

    async def collect(self) -> list[str]:
        """
        Drain the session.

        Returns
        -------
        list[str]
            Every token in wire order.
        """
        return [text async for text in self]

    async def _iterate(self) -> AsyncIterator[str]:
        chunks: AsyncIterator[bytes] | None = None
        try:
            if not self.response.is_success:
                raise await classify_response(self.response, self.provider)

            chunks = self.response.aiter_bytes()
            while True:
                self._check_cancelled()
                try:
                    chunk: bytes = await anext(chunks)
                except StopAsyncIteration:
                    break
                except httpx.HTTPError as e:
                    raise classify_transport_error(e, self.provider) from e

                for frame in self._decoder.feed(chunk):
                    if frame.is_terminal:
                        logger.debug(f"{self.provider} stream finished after {self._emitted} tokens")
                        return
                    text: str | None = self._extract(frame)
                    if text is not None:
                        self._check_cancelled()
                        self._emitted += 1
                        yield text

            for frame in self._decoder.flush():
                if frame.is_terminal:
                    break
                text = self._extract(frame)
                if text is not None:
                    self._check_cancelled()
                    self._emitted += 1
                    yield text

            logger.debug(f"{self.provider} stream body exhausted after {self._emitted} tokens")
        finally:
            if chunks is not None:
                await chunks.aclose()
            await self._release()

    def _check_cancelled(self) -> None:
        if self.token is not None and self.token.is_cancelled():
            logger.debug(f"{self.provider} stream cancelled after {self._emitted} tokens")
            self.token.check_cancelled()

    def _extract(self, frame: Frame) -> str | None:
        try:
            return self.extractor(frame.payload)
        except StreamError:
            raise
        except Exception as e:
            raise StreamError(
                f"Failed to extract content from {self.provider} stream: {e}",
                cause=e,
                details={"payload": frame.payload[:MAX_PAYLOAD_DETAIL_CHARS]},
            ) from e

    async def _release(self) -> None:
        if not self.response.is_closed:
            await self.response.aclose()
            logger.debug(f"{self.provider} response released")
