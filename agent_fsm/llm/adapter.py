"""Model backend protocol and conversation item types."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Union, runtime_checkable

from ..tools import ToolSpec


def new_item_id(prefix: str = "item") -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


@dataclass
class MessageItem:
    """A chat message."""

    role: str  # "system", "developer", "user", "assistant"
    content: str = ""
    id: str = field(default_factory=lambda: new_item_id("msg"))


@dataclass
class FunctionCall:
    """A function call requested by the model. ``arguments`` is raw JSON."""

    call_id: str
    name: str
    arguments: str = "{}"
    id: str = field(default_factory=lambda: new_item_id("fc"))


@dataclass
class FunctionCallOutput:
    """The textual result of a function call, matched to it by ``call_id``."""

    call_id: str
    output: str
    name: str | None = None
    id: str = field(default_factory=lambda: new_item_id("fco"))


ConversationItem = Union[MessageItem, FunctionCall, FunctionCallOutput]


@dataclass
class OutputSchema:
    """Structured output descriptor. ``schema`` is an opaque JSON-schema dict."""

    name: str
    schema: dict[str, Any]
    strict: bool = True
    description: str = ""


@dataclass
class ResponseOptions:
    """Everything besides the history that a model call needs."""

    instructions: str = ""
    tools: list[ToolSpec] = field(default_factory=list)
    output_schema: OutputSchema | None = None
    reasoning_effort: str | None = None  # "low", "medium", "high"
    parallel_tool_calls: bool = True
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass
class ModelResponse:
    """Response from a model call."""

    id: str = field(default_factory=lambda: new_item_id("resp"))
    output: list[ConversationItem] = field(default_factory=list)
    finish_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [item for item in self.output if isinstance(item, FunctionCall)]

    @property
    def text(self) -> str:
        for item in reversed(self.output):
            if isinstance(item, MessageItem) and item.role == "assistant":
                return item.content or ""
        return ""


@runtime_checkable
class ModelAdapter(Protocol):
    """Minimal protocol for model backends.

    Implementations must provide:
      - create_response(): send history and options, get a response
      - create_streaming_response(): same, calling ``on_delta`` per text chunk
    """

    async def create_response(
        self, items: list[ConversationItem], options: ResponseOptions
    ) -> ModelResponse: ...

    async def create_streaming_response(
        self,
        items: list[ConversationItem],
        options: ResponseOptions,
        on_delta: Callable[[str], None],
    ) -> ModelResponse: ...
