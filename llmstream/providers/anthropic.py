"""
Anthropic provider (Messages API).

Anthropic streams typed events and never sends a ``[DONE]`` sentinel; the
stream ends when the server closes the body after ``message_stop``. Only
``content_block_delta`` text deltas carry content.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

import httpx

from llmstream.exceptions import StreamError
from llmstream.models import ChatMessage, ModelOptions
from llmstream.providers.base import BaseProvider
from llmstream.tools import ToolDefinition

ANTHROPIC_VERSION: str = "2023-06-01"
DEFAULT_MAX_TOKENS: int = 1024


def extract_text_delta(payload: str) -> str | None:
    """
    Return the text of a ``content_block_delta`` event.

    Raises
    ------
    StreamError
        If the server reports an error event mid-stream.

    Examples
    --------
    >>> extract_text_delta('{"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}}')
    'Hi'
    >>> extract_text_delta('{"type": "ping"}') is None
    True
    """
    data: dict[str, Any] = json.loads(payload)
    event_type: str | None = data.get("type")

    if event_type == "error":
        error: dict[str, Any] = data.get("error") or {}
        raise StreamError(
            f"Anthropic stream error: {error.get('message', 'unknown error')}",
            details={"error_type": error.get("type")},
        )

    if event_type != "content_block_delta":
        return None

    delta: dict[str, Any] = data.get("delta") or {}
    if delta.get("type") != "text_delta":
        return None
    return delta.get("text") or None


class AnthropicProvider(BaseProvider):
    """
    Streaming client for the Anthropic Messages API.

    System messages are moved to the top-level ``system`` field. Tools are
    not supported by this client.
    """

    name = "anthropic"
    default_base_url = "https://api.anthropic.com/v1"

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "text/event-stream",
            "x-api-key": self._require_api_key(),
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_chat_request(
        self,
        messages: list[ChatMessage],
        options: ModelOptions,
        tools: Sequence[ToolDefinition] | None = None,
    ) -> httpx.Request:
        system: list[str] = [m.content for m in messages if m.role == "system"]
        body: dict[str, Any] = {
            "model": options.model,
            "messages": [
                {"role": m.role, "content": m.content}
                for m in messages
                if m.role != "system"
            ],
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "stream": True,
        }
        if system:
            body["system"] = "\n\n".join(system)
        if options.temperature is not None:
            body["temperature"] = options.temperature
        if options.top_p is not None:
            body["top_p"] = options.top_p
        if options.stop:
            body["stop_sequences"] = options.stop

        return self._get_client().build_request(
            "POST",
            f"{self.base_url}/messages",
            json=body,
            headers=self._headers(),
        )

    def build_completion_request(self, prompt: str, options: ModelOptions) -> httpx.Request:
        return self.build_chat_request([ChatMessage(role="user", content=prompt)], options)

    def chat_extractor(self, payload: str) -> str | None:
        return extract_text_delta(payload)
