"""
Factory for creating providers from configuration.
"""

import logging

import httpx

from llmstream.config.schema import Configuration
from llmstream.exceptions import ConfigurationError
from llmstream.providers.anthropic import AnthropicProvider
from llmstream.providers.azure import AzureOpenAIProvider
from llmstream.providers.base import BaseProvider
from llmstream.providers.huggingface import HuggingFaceProvider
from llmstream.providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "azure": AzureOpenAIProvider,
    "anthropic": AnthropicProvider,
    "huggingface": HuggingFaceProvider,
}


def create_provider(
    config: Configuration,
    http_client: httpx.AsyncClient | None = None,
) -> BaseProvider:
    """
    Create the provider described by ``config``.

    Parameters
    ----------
    config : Configuration
        Loaded configuration; supplies provider settings, API key and retry
        policy.
    http_client : httpx.AsyncClient | None, optional
        Shared client to inject. When omitted the provider owns its own.

    Returns
    -------
    BaseProvider
        Configured provider instance.

    Raises
    ------
    ConfigurationError
        If the provider name is unknown.

    Examples
    --------
    >>> provider = create_provider(load_configuration())
    """
    name: str = config.provider.name
    provider_class: type[BaseProvider] | None = PROVIDER_CLASSES.get(name)
    if provider_class is None:
        raise ConfigurationError(
            f"Unknown provider: {name}. Choose from: {sorted(PROVIDER_CLASSES)}",
            config_key="provider.name",
        )

    provider: BaseProvider = provider_class(
        config.api_key,
        base_url=config.provider.base_url,
        http_client=http_client,
        retry_policy=config.retry.to_policy(),
        timeout=config.provider.timeout,
    )
    logger.debug(f"Created provider {provider!r}")
    return provider
