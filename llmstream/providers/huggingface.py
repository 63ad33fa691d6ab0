"""
Hugging Face text-generation provider.

Streams from text-generation-inference style endpoints, where every frame
carries one generated token.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

import httpx

from llmstream.exceptions import ConfigurationError
from llmstream.models import ChatMessage, ModelOptions
from llmstream.providers.base import BaseProvider
from llmstream.tools import ToolDefinition


def extract_generated_token(payload: str) -> str | None:
    """
    Return ``token.text`` from a text-generation stream frame.

    Special tokens (end-of-sequence and the like) are dropped.

    Examples
    --------
    >>> extract_generated_token('{"token": {"text": " world", "special": false}}')
    ' world'
    """
    data: dict[str, Any] = json.loads(payload)
    token: dict[str, Any] = data.get("token") or {}
    if token.get("special"):
        return None
    return token.get("text") or None


class HuggingFaceProvider(BaseProvider):
    """
    Streaming client for Hugging Face text generation.

    Only plain completion is supported; chat would need model-specific
    prompt templates, which this client does not build.
    """

    name = "huggingface"
    default_base_url = "https://api-inference.huggingface.co/models"

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "text/event-stream",
            "Authorization": f"Bearer {self._require_api_key()}",
        }

    def build_chat_request(
        self,
        messages: list[ChatMessage],
        options: ModelOptions,
        tools: Sequence[ToolDefinition] | None = None,
    ) -> httpx.Request:
        raise ConfigurationError(
            "HuggingFace provider does not support chat; use complete() with a formatted prompt",
        )

    def build_completion_request(self, prompt: str, options: ModelOptions) -> httpx.Request:
        parameters: dict[str, Any] = {}
        if options.max_tokens is not None:
            parameters["max_new_tokens"] = options.max_tokens
        if options.temperature is not None:
            parameters["temperature"] = options.temperature
        if options.top_p is not None:
            parameters["top_p"] = options.top_p
        if options.stop:
            parameters["stop"] = options.stop

        return self._get_client().build_request(
            "POST",
            f"{self.base_url}/{options.model}",
            json={"inputs": prompt, "parameters": parameters, "stream": True},
            headers=self._headers(),
        )

    def chat_extractor(self, payload: str) -> str | None:
        return extract_generated_token(payload)
