"""
Azure OpenAI provider.

Same wire format as OpenAI; requests go to a deployment URL and authenticate
with the ``api-key`` header.
"""

from __future__ import annotations

from typing import Any, Sequence

import httpx

from llmstream.exceptions import ConfigurationError
from llmstream.models import ChatMessage, ModelOptions
from llmstream.providers.openai import OpenAIProvider
from llmstream.tools import ToolDefinition

DEFAULT_API_VERSION: str = "2024-06-01"


class AzureOpenAIProvider(OpenAIProvider):
    """
    Streaming client for Azure OpenAI deployments.

    Parameters
    ----------
    api_key : str | None
        Azure OpenAI key.
    base_url : str | None
        Resource endpoint, e.g. ``https://my-resource.openai.azure.com``.
    deployment : str | None, optional
        Deployment name. Defaults to ``options.model`` per request.
    api_version : str, default="2024-06-01"
        ``api-version`` query parameter.
    **kwargs
        Forwarded to ``BaseProvider``.
    """

    name = "azure"
    default_base_url = ""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        deployment: str | None = None,
        api_version: str = DEFAULT_API_VERSION,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, **kwargs)
        self.deployment: str | None = deployment
        self.api_version: str = api_version

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "text/event-stream",
            "api-key": self._require_api_key(),
        }

    def _deployment_url(self, options: ModelOptions) -> str:
        if not self.base_url:
            raise ConfigurationError(
                "Azure OpenAI requires the resource endpoint as base_url",
                config_key="base_url",
            )
        deployment: str = self.deployment or options.model
        return f"{self.base_url}/openai/deployments/{deployment}/chat/completions"

    def build_chat_request(
        self,
        messages: list[ChatMessage],
        options: ModelOptions,
        tools: Sequence[ToolDefinition] | None = None,
    ) -> httpx.Request:
        body: dict[str, Any] = self._chat_body(messages, options, tools)
        # The deployment in the URL selects the model
        body.pop("model", None)
        return self._get_client().build_request(
            "POST",
            self._deployment_url(options),
            params={"api-version": self.api_version},
            json=body,
            headers=self._headers(),
        )

    def build_completion_request(self, prompt: str, options: ModelOptions) -> httpx.Request:
        return self.build_chat_request([ChatMessage(role="user", content=prompt)], options)

    def completion_extractor(self, payload: str) -> str | None:
        return self.chat_extractor(payload)
