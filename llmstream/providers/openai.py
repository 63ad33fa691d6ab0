"""
OpenAI provider.

Also works with OpenAI-compatible servers (vLLM, Ollama, LM Studio) by
pointing ``base_url`` at them; the API key is optional for those.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

import httpx

from llmstream.models import ChatMessage, ModelOptions
from llmstream.providers.base import BaseProvider
from llmstream.tools import ToolCallExtractor, ToolDefinition


def _first_delta(data: dict[str, Any]) -> dict[str, Any] | None:
    choices: list[dict[str, Any]] = data.get("choices") or []
    if not choices:
        return None
    return choices[0].get("delta") or {}


def extract_chat_delta(payload: str) -> str | None:
    """
    Return ``choices[0].delta.content`` from a chat completion chunk.

    Chunks without choices (usage reports, Azure prompt-filter results) and
    deltas without content (role announcements, tool-call deltas) yield
    None.

    Examples
    --------
    >>> extract_chat_delta('{"choices": [{"delta": {"content": "Hi"}}]}')
    'Hi'
    """
    delta: dict[str, Any] | None = _first_delta(json.loads(payload))
    if delta is None:
        return None
    return delta.get("content") or None


class ChatDeltaExtractor(ToolCallExtractor):
    """
    Chat chunk extractor that also collects ``tool_calls`` and legacy
    ``function_call`` fragments.

    Examples
    --------
    >>> extractor = ChatDeltaExtractor()
    >>> extractor('{"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "c1", '
    ...           '"function": {"name": "search", "arguments": "{}"}}]}}]}') is None
    True
    >>> extractor.tool_calls[0].function.name
    'search'
    """

    def __call__(self, payload: str) -> str | None:
        delta: dict[str, Any] | None = _first_delta(json.loads(payload))
        if delta is None:
            return None
        if delta.get("tool_calls"):
            self.accumulator.add(delta["tool_calls"])
        if delta.get("function_call"):
            self.accumulator.add_function_call(delta["function_call"])
        return delta.get("content") or None


def extract_completion_text(payload: str) -> str | None:
    """Return ``choices[0].text`` from a legacy completion chunk."""
    data: dict[str, Any] = json.loads(payload)
    choices: list[dict[str, Any]] = data.get("choices") or []
    if not choices:
        return None
    return choices[0].get("text") or None


class OpenAIProvider(BaseProvider):
    """
    Streaming client for the OpenAI chat and completion endpoints.

    Examples
    --------
    >>> async with OpenAIProvider(api_key="sk-...") as provider:
    ...     session = await provider.stream_chat(
    ...         [{"role": "user", "content": "Hello"}],
    ...         ModelOptions(model="gpt-4o-mini"),
    ...     )
    ...     async for text in session:
    ...         print(text, end="")
    """

    name = "openai"
    default_base_url = "https://api.openai.com/v1"
    supports_tools = True
    supported_roles = frozenset({"system", "user", "assistant", "tool", "function"})

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "text/event-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _chat_body(
        self,
        messages: list[ChatMessage],
        options: ModelOptions,
        tools: Sequence[ToolDefinition] | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = options.to_payload()
        body["messages"] = [message.to_dict() for message in messages]
        body["stream"] = True
        if tools:
            body["tools"] = [tool.to_openai() for tool in tools]
            body["tool_choice"] = "auto"
        return body

    def build_chat_request(
        self,
        messages: list[ChatMessage],
        options: ModelOptions,
        tools: Sequence[ToolDefinition] | None = None,
    ) -> httpx.Request:
        return self._get_client().build_request(
            "POST",
            f"{self.base_url}/chat/completions",
            json=self._chat_body(messages, options, tools),
            headers=self._headers(),
        )

    def build_completion_request(self, prompt: str, options: ModelOptions) -> httpx.Request:
        body: dict[str, Any] = options.to_payload()
        body["prompt"] = prompt
        body["stream"] = True
        return self._get_client().build_request(
            "POST",
            f"{self.base_url}/completions",
            json=body,
            headers=self._headers(),
        )

    def chat_extractor(self, payload: str) -> str | None:
        return extract_chat_delta(payload)

    def new_chat_extractor(self) -> ChatDeltaExtractor:
        return ChatDeltaExtractor()

    def completion_extractor(self, payload: str) -> str | None:
        return extract_completion_text(payload)
