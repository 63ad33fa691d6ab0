"""
Tool (function) definitions and invocation for tool-call round trips.

Definitions are sent to providers that support function calling; when the
model asks for a call, ``invoke_tool`` runs the matching caller-supplied tool
and turns any failure into a ``FunctionCallError``.
"""

from __future__ import annotations

import inspect
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence

from pydantic import BaseModel, Field, field_validator

from llmstream.exceptions import FunctionCallError
from llmstream.models import ChatMessage, ToolCall, ToolCallFunction

logger = logging.getLogger(__name__)


class ToolFunction(BaseModel):
    """
    The function part of a tool definition.

    Parameters
    ----------
    name : str
        Function name the model will use.
    description : str, default=""
        What the function does.
    parameters : dict[str, Any], optional
        JSON schema of the arguments. Passed through as-is.
    """

    name: str = Field(description="Function name")
    description: str = Field(default="", description="Function description")
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema for arguments",
    )


class ToolDefinition(BaseModel):
    """
    A tool the model may call.

    Examples
    --------
    >>> tool = ToolDefinition(function=ToolFunction(name="search"))
    >>> tool.to_openai()["function"]["name"]
    'search'
    """

    type: str = Field(default="function", description="Tool type")
    function: ToolFunction = Field(description="Function definition")

    @property
    def name(self) -> str:
        return self.function.name

    def to_openai(self) -> dict[str, Any]:
        """Return the definition in OpenAI ``tools`` format."""
        return self.model_dump()


class FunctionCall(BaseModel):
    """
    A function call requested by the model.

    Parameters
    ----------
    name : str
        Name of the function to call.
    arguments : dict[str, Any] | str
        Arguments. JSON strings are parsed; unparseable strings are kept
        as-is and rejected by ``invoke_tool``.
    id : str | None, optional
        Tool call id to echo in the response; None for legacy function calls.
    """

    name: str = Field(description="Function name")
    arguments: dict[str, Any] | str = Field(default_factory=dict, description="Call arguments")
    id: str | None = Field(default=None, description="Tool call id")

    @field_validator("arguments", mode="before")
    @classmethod
    def parse_arguments(cls, v: Any) -> Any:
        """Parse arguments if they are a JSON object string."""
        if isinstance(v, str):
            if not v.strip():
                return {}
            try:
                parsed: Any = json.loads(v)
            except json.JSONDecodeError:
                return v
            return parsed if isinstance(parsed, dict) else v
        return v

    @classmethod
    def from_tool_call(cls, call: ToolCall) -> FunctionCall:
        """Build the call to invoke from a streamed ``ToolCall``."""
        return cls(name=call.function.name, arguments=call.function.arguments, id=call.id)


class FunctionResponse(BaseModel):
    """The result of running a tool, ready to send back to the model."""

    name: str = Field(description="Function name")
    result: Any = Field(default=None, description="Function result")
    tool_call_id: str | None = Field(default=None, description="Answered tool call id")

    def to_message(self) -> ChatMessage:
        """
        Convert to the chat message that answers the call.

        Returns
        -------
        ChatMessage
            A ``tool`` message when the call had an id, otherwise a legacy
            ``function`` message. Content is the result, JSON-encoded unless
            it is already a string.
        """
        content: str = self.result if isinstance(self.result, str) else json.dumps(self.result)
        if self.tool_call_id is not None:
            return ChatMessage(role="tool", tool_call_id=self.tool_call_id, content=content)
        return ChatMessage(role="function", name=self.name, content=content)


class ToolCallAccumulator:
    """
    Merge streamed tool-call fragments into complete calls.

    Streaming APIs send the id and name of a call once and its JSON arguments
    in pieces, keyed by the call's index.

    Examples
    --------
    >>> acc = ToolCallAccumulator()
    >>> acc.add([{"index": 0, "id": "call_1", "function": {"name": "search", "arguments": '{"q": '}}])
    >>> acc.add([{"index": 0, "function": {"arguments": '"rust"}'}}])
    >>> acc.tool_calls[0].function.arguments
    '{"q": "rust"}'
    """

    def __init__(self) -> None:
        self._calls: dict[int, dict[str, Any]] = {}

    def __bool__(self) -> bool:
        return bool(self._calls)

    def add(self, fragments: Sequence[Mapping[str, Any]]) -> None:
        """Merge a ``delta.tool_calls`` list."""
        for position, fragment in enumerate(fragments):
            index: int = fragment.get("index", position)
            self._merge(index, fragment.get("id"), fragment.get("function") or {})

    def add_function_call(self, fragment: Mapping[str, Any]) -> None:
        """Merge a legacy ``delta.function_call`` fragment."""
        self._merge(0, None, fragment)

    def _merge(self, index: int, call_id: str | None, function: Mapping[str, Any]) -> None:
        call: dict[str, Any] = self._calls.setdefault(index, {"id": None, "name": "", "arguments": ""})
        if call_id:
            call["id"] = call_id
        call["name"] += function.get("name") or ""
        call["arguments"] += function.get("arguments") or ""

    @property
    def tool_calls(self) -> list[ToolCall]:
        """Calls collected so far, in index order."""
        return [
            ToolCall(
                id=call["id"],
                function=ToolCallFunction(name=call["name"], arguments=call["arguments"]),
            )
            for _, call in sorted(self._calls.items())
        ]


class ToolCallExtractor(ABC):
    """
    Stateful content extractor that also collects tool-call fragments.

    One instance serves one response; ``StreamSession.tool_calls`` reads the
    calls it collected.
    """

    def __init__(self) -> None:
        self.accumulator: ToolCallAccumulator = ToolCallAccumulator()

    @abstractmethod
    def __call__(self, payload: str) -> str | None:
        """Return the content of one frame, recording any tool-call fragment."""

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self.accumulator.tool_calls


class CallableTool(Protocol):
    """Protocol for caller-supplied tools."""

    definition: ToolDefinition

    async def call(self, arguments: dict[str, Any]) -> Any:
        """Run the tool with parsed arguments."""
        ...


class FunctionTool:
    """
    Adapt a plain function (sync or async) to ``CallableTool``.

    Parameters
    ----------
    definition : ToolDefinition
        Definition advertised to the model.
    func : Callable[..., Any]
        Called with the arguments as keyword arguments.

    Examples
    --------
    >>> def add(a: int, b: int) -> int:
    ...     return a + b
    >>> tool = FunctionTool(ToolDefinition(function=ToolFunction(name="add")), add)
    """

    def __init__(
        self,
        definition: ToolDefinition,
        func: Callable[..., Any | Awaitable[Any]],
    ) -> None:
        self.definition: ToolDefinition = definition
        self._func = func

    async def call(self, arguments: dict[str, Any]) -> Any:
        result: Any = self._func(**arguments)
        if inspect.isawaitable(result):
            result = await result
        return result


async def invoke_tool(tools: Sequence[CallableTool], call: FunctionCall) -> FunctionResponse:
    """
    Run the tool named by ``call``.

    Parameters
    ----------
    tools : Sequence[CallableTool]
        Tools available for this request.
    call : FunctionCall
        The call requested by the model.

    Returns
    -------
    FunctionResponse
        The tool result.

    Raises
    ------
    FunctionCallError
        If no tool has that name, the arguments are not a JSON object, or
        the tool raises.
    """
    registry: dict[str, CallableTool] = {tool.definition.function.name: tool for tool in tools}
    tool: CallableTool | None = registry.get(call.name)
    if tool is None:
        raise FunctionCallError(call.name, f"Unknown function: {call.name}")

    if not isinstance(call.arguments, dict):
        raise FunctionCallError(
            call.name,
            f"Arguments for '{call.name}' are not a JSON object: {call.arguments!r}",
        )

    logger.debug(f"Invoking tool {call.name}")
    try:
        result: Any = await tool.call(call.arguments)
    except FunctionCallError:
        raise
    except Exception as e:
        raise FunctionCallError(call.name, f"Function '{call.name}' failed: {e}", cause=e) from e

    return FunctionResponse(name=call.name, result=result, tool_call_id=call.id)
