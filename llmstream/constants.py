"""
Library-wide constants for llmstream.

This module defines constants used throughout the package to ensure
consistency and maintainability.
"""

# Configuration file names
CONFIG_FILE_NAME: str = "config.toml"

# Application directories
APP_NAME: str = "llmstream"
CONFIG_DIR_NAME: str = ".llmstream"

# Environment variables
API_KEY_ENV_VAR: str = "LLMSTREAM_API_KEY"

# Default retry values (seconds)
DEFAULT_MAX_ATTEMPTS: int = 3
DEFAULT_RETRY_INITIAL_DELAY: float = 1.0
DEFAULT_RETRY_MAX_DELAY: float = 10.0
DEFAULT_BACKOFF_MULTIPLIER: float = 1.5

# HTTP defaults
DEFAULT_TIMEOUT: float = 60.0
DEFAULT_ENCODING: str = "utf-8"
TRANSPORT_ERROR_STATUS: int = 503

# Event stream wire format
EVENT_DATA_PREFIX: str = "data: "
STREAM_DONE_SENTINEL: str = "[DONE]"
