"""
Data models for LLM requests.

This module defines the Pydantic models shared by every provider: chat
messages (including the tool calls an assistant message may carry) and
model options.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator


class ToolCallFunction(BaseModel):
    """
    Name and raw JSON arguments of a requested function.

    Parameters
    ----------
    name : str
        Function name.
    arguments : str, default=""
        Arguments as the JSON text the model produced.
    """

    name: str = Field(description="Function name")
    arguments: str = Field(default="", description="JSON-encoded arguments")


class ToolCall(BaseModel):
    """
    A tool call requested by the model, as carried on an assistant message.

    Examples
    --------
    >>> call = ToolCall(id="call_1", function=ToolCallFunction(name="search", arguments='{"q": "x"}'))
    >>> call.model_dump()["type"]
    'function'
    """

    id: str | None = Field(default=None, description="Call id, echoed by the tool message")
    type: str = Field(default="function", description="Tool type")
    function: ToolCallFunction = Field(description="Requested function")


class ChatMessage(BaseModel):
    """
    A single chat message.

    Parameters
    ----------
    role : str
        One of ``"system"``, ``"user"``, ``"assistant"``, ``"tool"`` or
        ``"function"``.
    content : str | None, optional
        Message text. May be omitted only on assistant messages that carry
        ``tool_calls`` or ``function_call``.
    name : str | None, optional
        Optional participant or function name.
    function_call : ToolCallFunction | None, optional
        Legacy single function call requested by the assistant.
    tool_calls : list[ToolCall] | None, optional
        Tool calls requested by the assistant.
    tool_call_id : str | None, optional
        Id of the tool call a ``tool`` message answers.

    Examples
    --------
    >>> message = ChatMessage(role="user", content="Hello")
    >>> message.to_dict()
    {'role': 'user', 'content': 'Hello'}
    """

    role: str = Field(description="Message role")
    content: str | None = Field(default=None, description="Message content")
    name: str | None = Field(default=None, description="Participant name")
    function_call: ToolCallFunction | None = Field(default=None, description="Legacy function call")
    tool_calls: list[ToolCall] | None = Field(default=None, description="Requested tool calls")
    tool_call_id: str | None = Field(default=None, description="Answered tool call id")

    @model_validator(mode="after")
    def require_content(self) -> ChatMessage:
        """Require content unless the message carries a call."""
        if self.content is None and not self.tool_calls and self.function_call is None:
            raise ValueError("content is required unless the message carries tool calls")
        return self

    def to_dict(self) -> dict[str, Any]:
        """Return the message as a request dictionary without empty fields."""
        return self.model_dump(exclude_none=True)


class ChatResponse(BaseModel):
    """
    Complete result of a buffered chat request.

    Parameters
    ----------
    content : str, default=""
        Concatenated text of the response.
    tool_calls : list[ToolCall], optional
        Tool calls the model requested instead of, or besides, text.
    """

    content: str = Field(default="", description="Response text")
    tool_calls: list[ToolCall] = Field(default_factory=list, description="Requested tool calls")

    def to_message(self) -> ChatMessage:
        """
        Convert to the assistant message to append to the conversation.

        Returns
        -------
        ChatMessage
            Assistant message with the text and any tool calls.
        """
        return ChatMessage(
            role="assistant",
            content=self.content or (None if self.tool_calls else ""),
            tool_calls=self.tool_calls or None,
        )


class ModelOptions(BaseModel):
    """
    Sampling options for a single request.

    Parameters
    ----------
    model : str
        Model identifier (or deployment name for Azure).
    temperature : float | None, optional
        Sampling temperature between 0.0 and 2.0.
    max_tokens : int | None, optional
        Maximum number of tokens to generate.
    top_p : float | None, optional
        Nucleus sampling mass between 0.0 and 1.0.
    stop : list[str] | None, optional
        Stop sequences.

    Examples
    --------
    >>> options = ModelOptions(model="gpt-4o-mini", temperature=0.2)
    >>> options.to_payload()
    {'model': 'gpt-4o-mini', 'temperature': 0.2}
    """

    model: str = Field(description="Model name")
    temperature: float | None = Field(
        default=None,
        ge=0.0,
        le=2.0,
        description="Sampling temperature (0.0-2.0)",
    )
    max_tokens: int | None = Field(default=None, gt=0, description="Maximum tokens")
    top_p: float | None = Field(default=None, ge=0.0, le=1.0, description="Nucleus sampling")
    stop: list[str] | None = Field(default=None, description="Stop sequences")

    def to_payload(self) -> dict[str, Any]:
        """Return the options as request body fields, omitting unset ones."""
        return self.model_dump(exclude_none=True)
