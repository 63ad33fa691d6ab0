"""
Base class shared by all LLM providers.

A provider only knows how to build its HTTP requests and how to pull content
out of one frame payload. Sending, decoding, cancellation and retries are
handled here on top of ``StreamSession`` and ``RetryExecutor``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any, Mapping, Sequence, Union

import httpx
from pydantic import ValidationError

from llmstream.cancellation import CancellationToken
from llmstream.constants import DEFAULT_TIMEOUT
from llmstream.exceptions import ConfigurationError
from llmstream.models import ChatMessage, ChatResponse, ModelOptions
from llmstream.retry import RetryExecutor, RetryPolicy
from llmstream.stream.session import Extractor, StreamSession
from llmstream.tools import ToolDefinition

logger = logging.getLogger(__name__)

MessageInput = Union[ChatMessage, Mapping[str, Any]]


class BaseProvider(ABC):
    """
    Common plumbing for streaming LLM providers.

    Parameters
    ----------
    api_key : str | None, optional
        Provider API key.
    base_url : str | None, optional
        API root. Defaults to the provider's ``default_base_url``.
    http_client : httpx.AsyncClient | None, optional
        Shared client to send requests with. When omitted the provider
        creates (and owns) one on first use.
    retry_policy : RetryPolicy | None, optional
        Policy applied to every call.
    timeout : float, default=60.0
        Timeout in seconds for an owned client.

    Attributes
    ----------
    name : str
        Provider name recorded on errors.
    supports_tools : bool
        Whether tool definitions may be passed to ``chat``.
    supported_roles : frozenset[str]
        Message roles this provider accepts.
    """

    name: str = "base"
    default_base_url: str = ""
    supports_tools: bool = False
    supported_roles: frozenset[str] = frozenset({"system", "user", "assistant"})

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key: str | None = api_key
        self.base_url: str = (base_url or self.default_base_url).rstrip("/")
        self.retry_policy: RetryPolicy = retry_policy or RetryPolicy()
        self.timeout: float = timeout
        self._client: httpx.AsyncClient | None = http_client
        self._owns_client: bool = http_client is None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_url={self.base_url!r})"

    def _get_client(self) -> httpx.AsyncClient:
        """
        Get or create the HTTP client.

        Returns
        -------
        httpx.AsyncClient
            The injected client, or one created on first use.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
            logger.debug(f"{self.name} HTTP client initialized")
        return self._client

    async def close(self) -> None:
        """
        Close the HTTP client if this provider created it.

        Injected clients are left open; their owner closes them.
        """
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.debug(f"{self.name} HTTP client closed")

    async def __aenter__(self) -> BaseProvider:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # Request building, implemented per provider

    @abstractmethod
    def build_chat_request(
        self,
        messages: list[ChatMessage],
        options: ModelOptions,
        tools: Sequence[ToolDefinition] | None = None,
    ) -> httpx.Request:
        """Build the streaming chat request."""

    @abstractmethod
    def build_completion_request(self, prompt: str, options: ModelOptions) -> httpx.Request:
        """Build the streaming completion request."""

    @abstractmethod
    def chat_extractor(self, payload: str) -> str | None:
        """Extract content from one chat stream frame."""

    def completion_extractor(self, payload: str) -> str | None:
        """Extract content from one completion stream frame."""
        return self.chat_extractor(payload)

    def new_chat_extractor(self) -> Extractor:
        """Return the extractor for one chat response; stateful ones are created per attempt."""
        return self.chat_extractor

    def new_completion_extractor(self) -> Extractor:
        """Return the extractor for one completion response."""
        return self.completion_extractor

    # Streaming API

    async def stream_chat(
        self,
        messages: Sequence[MessageInput],
        options: ModelOptions,
        *,
        tools: Sequence[ToolDefinition] | None = None,
        token: CancellationToken | None = None,
    ) -> StreamSession:
        """
        Open a chat stream.

        Opening the stream (request plus status check) is retried under the
        provider's policy. Errors raised while iterating the session are not
        retried.

        Parameters
        ----------
        messages : Sequence[ChatMessage | Mapping[str, Any]]
            Conversation so far.
        options : ModelOptions
            Model and sampling options.
        tools : Sequence[ToolDefinition] | None, optional
            Tools the model may call.
        token : CancellationToken | None, optional
            Cancellation token for this request.

        Returns
        -------
        StreamSession
            Open session; iterate it with ``async for``.

        Raises
        ------
        ConfigurationError
            For unsupported roles or tools.
        ClassifiedError
            When opening the stream fails for good.
        OperationCancelledError
            When the token is cancelled.
        """
        request: httpx.Request = self._chat_request(messages, options, tools)
        return await self._retrying().execute(
            lambda: self._open(request, self.new_chat_extractor(), token),
            token=token,
        )

    async def stream_complete(
        self,
        prompt: str,
        options: ModelOptions,
        *,
        token: CancellationToken | None = None,
    ) -> StreamSession:
        """Open a completion stream; see ``stream_chat``."""
        request: httpx.Request = self.build_completion_request(prompt, options)
        return await self._retrying().execute(
            lambda: self._open(request, self.new_completion_extractor(), token),
            token=token,
        )

    # Buffered API

    async def chat(
        self,
        messages: Sequence[MessageInput],
        options: ModelOptions,
        *,
        tools: Sequence[ToolDefinition] | None = None,
        token: CancellationToken | None = None,
    ) -> str:
        """
        Run a chat request to completion and return the full text.

        Each attempt streams into a fresh session; output from a failed
        attempt is dropped before the next one starts. Use
        ``chat_response`` to also receive tool calls.

        Returns
        -------
        str
            Concatenated content of the successful attempt.
        """
        response: ChatResponse = await self.chat_response(messages, options, tools=tools, token=token)
        return response.content

    async def chat_response(
        self,
        messages: Sequence[MessageInput],
        options: ModelOptions,
        *,
        tools: Sequence[ToolDefinition] | None = None,
        token: CancellationToken | None = None,
    ) -> ChatResponse:
        """
        Run a chat request to completion, keeping requested tool calls.

        Returns
        -------
        ChatResponse
            Text and tool calls of the successful attempt. Append
            ``response.to_message()`` and the ``invoke_tool`` results to the
            conversation to continue a tool-call round trip.

        Examples
        --------
        >>> response = await provider.chat_response(messages, options, tools=[weather])
        >>> for tool_call in response.tool_calls:
        ...     result = await invoke_tool(tools, FunctionCall.from_tool_call(tool_call))
        """
        request: httpx.Request = self._chat_request(messages, options, tools)
        return await self._retrying().execute(
            lambda: self._drain(request, self.new_chat_extractor(), token),
            token=token,
        )

    async def complete(
        self,
        prompt: str,
        options: ModelOptions,
        *,
        token: CancellationToken | None = None,
    ) -> str:
        """Run a completion request to completion; see ``chat``."""
        request: httpx.Request = self.build_completion_request(prompt, options)
        response: ChatResponse = await self._retrying().execute(
            lambda: self._drain(request, self.new_completion_extractor(), token),
            token=token,
        )
        return response.content

    # Helpers

    def _retrying(self) -> RetryExecutor:
        return RetryExecutor(self.retry_policy)

    def _chat_request(
        self,
        messages: Sequence[MessageInput],
        options: ModelOptions,
        tools: Sequence[ToolDefinition] | None,
    ) -> httpx.Request:
        if tools and not self.supports_tools:
            raise ConfigurationError(f"{self.name} provider does not support tools/functions")
        return self.build_chat_request(self._coerce_messages(messages), options, tools)

    def _coerce_messages(self, messages: Sequence[MessageInput]) -> list[ChatMessage]:
        if not messages:
            raise ConfigurationError("No messages provided")

        coerced: list[ChatMessage] = []
        for message in messages:
            if not isinstance(message, ChatMessage):
                try:
                    message = ChatMessage(**message)
                except (TypeError, ValidationError) as e:
                    raise ConfigurationError(f"Invalid message: {e}", cause=e) from e
            if message.role not in self.supported_roles:
                raise ConfigurationError(f"Unsupported message role: {message.role}")
            if (message.tool_calls or message.function_call) and not self.supports_tools:
                raise ConfigurationError(f"{self.name} provider does not support tools/functions")
            coerced.append(message)
        return coerced

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError(
                f"API key not configured for provider '{self.name}'",
                config_key="api_key",
            )
        return self.api_key

    async def _open(
        self,
        request: httpx.Request,
        extractor: Extractor,
        token: CancellationToken | None,
    ) -> StreamSession:
        return await StreamSession.open(
            self._get_client(),
            request,
            extractor,
            token=token,
            provider=self.name,
        )

    async def _drain(
        self,
        request: httpx.Request,
        extractor: Extractor,
        token: CancellationToken | None,
    ) -> ChatResponse:
        async with await self._open(request, extractor, token) as session:
            parts: list[str] = await session.collect()
            return ChatResponse(content="".join(parts), tool_calls=session.tool_calls)
