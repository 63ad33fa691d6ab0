"""
Streaming client SDK for large-language-model APIs.

This package turns chunked provider responses into lazy token sequences,
with cooperative cancellation and retry/backoff for transient failures,
behind a small set of provider clients (OpenAI, Azure OpenAI, Anthropic,
Hugging Face).
"""

__version__ = "0.1.0"
