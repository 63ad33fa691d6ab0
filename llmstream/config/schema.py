"""
Configuration schema definitions for llmstream.

This module defines the Pydantic models for configuration validation:
provider settings, retry settings and the aggregate configuration.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator

from llmstream.constants import (
    API_KEY_ENV_VAR,
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_INITIAL_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
    DEFAULT_TIMEOUT,
)
from llmstream.models import ModelOptions
from llmstream.retry import RetryPolicy

# Conventional API key variables, checked after LLMSTREAM_API_KEY
PROVIDER_API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "huggingface": "HF_TOKEN",
}

SUPPORTED_PROVIDERS: frozenset[str] = frozenset(PROVIDER_API_KEY_ENV_VARS)


class ProviderSettings(BaseModel):
    """
    Settings for the provider used by default.

    Parameters
    ----------
    name : str, default="openai"
        Provider name: openai, azure, anthropic or huggingface.
    model : str, default="gpt-4o-mini"
        Model (or Azure deployment) name.
    base_url : str | None, optional
        API root override; required for Azure.
    temperature : float | None, optional
        Sampling temperature between 0.0 and 2.0.
    max_tokens : int | None, optional
        Maximum number of tokens to generate.
    timeout : float, default=60.0
        HTTP timeout in seconds.

    Examples
    --------
    >>> settings = ProviderSettings(name="anthropic", model="claude-3-5-haiku-latest")
    """

    name: str = Field(default="openai", description="Provider name")
    model: str = Field(default="gpt-4o-mini", description="Model name")
    base_url: str | None = Field(default=None, description="API base URL")
    temperature: float | None = Field(
        default=None,
        ge=0.0,
        le=2.0,
        description="Sampling temperature (0.0-2.0)",
    )
    max_tokens: int | None = Field(default=None, gt=0, description="Maximum tokens")
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0.0, description="HTTP timeout in seconds")

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        """Lower-case the provider name."""
        return v.strip().lower()

    def to_options(self) -> ModelOptions:
        """Build request options from these settings."""
        return ModelOptions(
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )


class RetrySettings(BaseModel):
    """
    Retry settings, converted to an immutable ``RetryPolicy`` at use.

    Parameters
    ----------
    max_attempts : int, default=3
        Total attempts per call.
    initial_delay : float, default=1.0
        First backoff delay in seconds.
    max_delay : float, default=10.0
        Backoff ceiling in seconds.
    backoff_multiplier : float, default=1.5
        Backoff growth factor.
    respect_retry_after : bool, default=False
        Honour server ``Retry-After`` hints.
    """

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    initial_delay: float = Field(default=DEFAULT_RETRY_INITIAL_DELAY, ge=0.0)
    max_delay: float = Field(default=DEFAULT_RETRY_MAX_DELAY, ge=0.0)
    backoff_multiplier: float = Field(default=DEFAULT_BACKOFF_MULTIPLIER, ge=1.0)
    respect_retry_after: bool = Field(default=False)

    def to_policy(self) -> RetryPolicy:
        """Build the ``RetryPolicy`` (with the default retry predicate)."""
        return RetryPolicy(**self.model_dump())


class Configuration(BaseModel):
    """
    Main configuration model.

    Parameters
    ----------
    provider : ProviderSettings, optional
        Provider settings. Uses defaults if not provided.
    retry : RetrySettings, optional
        Retry settings. Uses defaults if not provided.
    debug : bool, default=False
        Enable debug logging.

    Examples
    --------
    >>> config = Configuration(provider=ProviderSettings(name="openai"), debug=True)
    """

    provider: ProviderSettings = Field(
        default_factory=ProviderSettings,
        description="Provider settings",
    )
    retry: RetrySettings = Field(
        default_factory=RetrySettings,
        description="Retry settings",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    @property
    def api_key(self) -> str | None:
        """
        Get the API key from environment variables.

        ``LLMSTREAM_API_KEY`` wins; otherwise the provider's conventional
        variable (``OPENAI_API_KEY``, ``ANTHROPIC_API_KEY``, ...) is used.

        Returns
        -------
        str | None
            The API key if set, None otherwise.
        """
        key: str | None = os.environ.get(API_KEY_ENV_VAR)
        if key:
            return key
        fallback: str | None = PROVIDER_API_KEY_ENV_VARS.get(self.provider.name)
        return os.environ.get(fallback) if fallback else None

    def validate(self) -> list[str]:
        """
        Validate the configuration and return any errors.

        Returns
        -------
        list[str]
            List of error messages. Empty list if configuration is valid.
        """
        errors: list[str] = []

        if self.provider.name not in SUPPORTED_PROVIDERS:
            errors.append(
                f"Unknown provider '{self.provider.name}'. "
                f"Choose from: {sorted(SUPPORTED_PROVIDERS)}",
            )

        if self.provider.name == "azure" and not self.provider.base_url:
            errors.append("Azure provider requires base_url (the resource endpoint)")

        if self.retry.initial_delay > self.retry.max_delay:
            errors.append(
                f"retry.initial_delay ({self.retry.initial_delay}) exceeds "
                f"retry.max_delay ({self.retry.max_delay})",
            )

        return errors

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary."""
        return self.model_dump(mode="json")
