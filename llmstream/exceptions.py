"""
Exception hierarchy for llmstream.

Every failure that can reach an SDK caller is one of the classified kinds
below, or an ``OperationCancelledError``. Classified errors carry enough
context (status code, provider, retry-after hint) for a retry policy to make
its decision without inspecting message strings.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    UNKNOWN = "UNKNOWN"
    PROVIDER = "PROVIDER"
    RATE_LIMIT = "RATE_LIMIT"
    STREAM = "STREAM"
    FUNCTION_CALL = "FUNCTION_CALL"
    CONFIGURATION = "CONFIGURATION"
    CANCELLED = "CANCELLED"


class LLMStreamError(Exception):
    """
    Root of every error raised by llmstream.

    Parameters
    ----------
    message : str
        What went wrong, suitable for showing to a user.
    error_code : ErrorCode, default=ErrorCode.UNKNOWN
        Machine-readable kind of failure.
    details : dict[str, Any] | None, optional
        Structured context (status code, provider, payload excerpt, ...).
    cause : BaseException | None, optional
        Lower-level exception this error wraps.

    Examples
    --------
    >>> str(LLMStreamError("boom", details={"provider": "openai"}))
    '[UNKNOWN] boom | Details: provider=openai'
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.error_code: ErrorCode = error_code
        self.details: dict[str, Any] = dict(details) if details else {}
        self.cause: BaseException | None = cause

    def __str__(self) -> str:
        text: str = f"[{self.error_code.value}] {self.message}"
        if self.details:
            text += " | Details: " + ", ".join(f"{key}={value}" for key, value in self.details.items())
        if self.cause is not None:
            text += f" | Caused by: {type(self.cause).__name__}: {self.cause}"
        return text

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, error_code={self.error_code.value!r})"

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize the error for logs or API responses.

        Returns
        -------
        dict[str, Any]
            Type, code, message and details, plus the cause when present.
        """
        data: dict[str, Any] = {
            "type": type(self).__name__,
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }
        if self.cause is not None:
            data["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}
        return data


class ClassifiedError(LLMStreamError):
    """Base class for the failure kinds a retry policy can reason about."""


class ProviderError(ClassifiedError):
    """
    Exception raised when a provider API answers with a non-2xx status.

    Parameters
    ----------
    status_code : int
        HTTP status code returned by the provider.
    message : str
        Human-readable error message.
    provider : str
        Name of the provider (e.g. ``"openai"``).
    details : dict[str, Any] | None, optional
        Additional context about the error.
    cause : BaseException | None, optional
        The underlying exception that caused this error.

    Examples
    --------
    >>> raise ProviderError(500, "Internal server error", "openai")
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        provider: str,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
        error_code: ErrorCode = ErrorCode.PROVIDER,
    ) -> None:
        details = dict(details or {})
        details["status_code"] = status_code
        details["provider"] = provider
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            cause=cause,
        )
        self.status_code: int = status_code
        self.provider: str = provider

    @property
    def is_server_error(self) -> bool:
        """Whether the status code is in the 5xx range."""
        return 500 <= self.status_code <= 599


class RateLimitError(ProviderError):
    """
    Exception raised when a provider answers HTTP 429.

    Parameters
    ----------
    provider : str
        Name of the provider.
    retry_after_ms : int | None, optional
        Server-suggested wait in milliseconds, parsed from ``Retry-After``.
    message : str | None, optional
        Human-readable error message. A default is generated when omitted.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    cause : BaseException | None, optional
        The underlying exception that caused this error.

    Examples
    --------
    >>> error = RateLimitError("huggingface", retry_after_ms=30000)
    >>> error.status_code
    429
    """

    def __init__(
        self,
        provider: str,
        retry_after_ms: int | None = None,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        details = dict(details or {})
        if retry_after_ms is not None:
            details["retry_after_ms"] = retry_after_ms
        super().__init__(
            429,
            message or f"Rate limit exceeded for provider '{provider}'",
            provider,
            details=details,
            cause=cause,
            error_code=ErrorCode.RATE_LIMIT,
        )
        self.retry_after_ms: int | None = retry_after_ms


class StreamError(ClassifiedError):
    """
    Exception raised while extracting content from a successful response.

    Parameters
    ----------
    message : str
        Human-readable error message.
    cause : BaseException | None, optional
        The exception raised by the content extractor.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            error_code=ErrorCode.STREAM,
            details=details,
            cause=cause,
        )


class FunctionCallError(ClassifiedError):
    """
    Exception raised when invoking a caller-supplied tool fails.

    Parameters
    ----------
    function_name : str
        Name of the function that failed.
    message : str
        Human-readable error message.
    cause : BaseException | None, optional
        The exception raised by the tool.

    Examples
    --------
    >>> raise FunctionCallError("get_weather", "Unknown function")
    """

    def __init__(
        self,
        function_name: str,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            error_code=ErrorCode.FUNCTION_CALL,
            details={"function_name": function_name},
            cause=cause,
        )
        self.function_name: str = function_name


class ConfigurationError(ClassifiedError):
    """
    Exception raised for invalid combinations of inputs or settings.

    Parameters
    ----------
    message : str
        Human-readable error message.
    config_key : str | None, optional
        The configuration key that caused the error.
    config_file : str | None, optional
        The configuration file path where the error occurred.
    cause : BaseException | None, optional
        The underlying exception that caused this error.

    Examples
    --------
    >>> raise ConfigurationError("Unsupported message role: tool")
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_file: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if config_key:
            details["config_key"] = config_key
        if config_file:
            details["config_file"] = config_file
        super().__init__(
            message,
            error_code=ErrorCode.CONFIGURATION,
            details=details,
            cause=cause,
        )
        self.config_key: str | None = config_key
        self.config_file: str | None = config_file


class OperationCancelledError(LLMStreamError):
    """
    Raised when an operation observes that its CancellationToken was cancelled.

    Not a ``ClassifiedError``; ``RetryExecutor`` re-raises it immediately.
    """

    def __init__(self, message: str = "The operation was cancelled") -> None:
        super().__init__(message, error_code=ErrorCode.CANCELLED)
