"""Agent configuration: model, instructions, tools and output type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from pydantic import TypeAdapter, ValidationError

from .errors import ConfigurationError, StructuredOutputError
from .llm.adapter import ModelAdapter, OutputSchema, ResponseOptions
from .tools import AgentTool, ToolRegistry, ToolSpec


@dataclass
class GuardrailResult:
    """Outcome of an input guardrail check."""

    tripwire_triggered: bool = False
    info: str = ""


Guardrail = Callable[[str], Union[GuardrailResult, Awaitable[GuardrailResult]]]


def build_output_schema(output_type: Any) -> OutputSchema | None:
    """JSON-schema descriptor for a structured output type (None for plain text)."""
    if output_type is None or output_type is str:
        return None
    schema = TypeAdapter(output_type).json_schema()
    name = getattr(output_type, "__name__", None) or "output"
    return OutputSchema(
        name=name, schema=schema, strict=False, description=schema.get("description", "")
    )


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        text = text.rsplit("```", 1)[0].strip()
    return text


def parse_output(text: str, output_type: Any) -> Any:
    """Parse model text into ``output_type``; plain ``str`` passes through."""
    if output_type is None or output_type is str:
        return text
    try:
        return TypeAdapter(output_type).validate_json(_strip_code_fence(text))
    except ValidationError as e:
        raise StructuredOutputError(text, e.errors()) from e


class Agent:
    """A bound configuration capable of running a conversation loop.

    Usage:
        agent = Agent(
            model=OpenAIAdapter(model="gpt-4o-mini"),
            name="researcher",
            instructions="Summarize search results.",
            tools=[search_web, translator_agent],
        )
        result = await Runner().run(agent, "quantum computing")

    Tools may be plain callables, prebuilt ToolSpecs, or other Agents (which
    become agent tools taking a single ``input`` string).
    """

    def __init__(
        self,
        model: ModelAdapter,
        name: str = "Assistant",
        instructions: str = "",
        *,
        tools: list[Callable | ToolSpec | Agent] | None = None,
        output_type: Any = None,
        parallel_tool_calls: bool = True,
        reasoning_effort: str | None = None,
        guardrail: Guardrail | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        if model is None:
            raise ConfigurationError("Agent needs a model adapter")
        self.model = model
        self.name = name
        self.instructions = instructions or "You are a helpful assistant"
        self.output_type = output_type
        self.output_schema = build_output_schema(output_type)
        self.parallel_tool_calls = parallel_tool_calls
        self.reasoning_effort = reasoning_effort
        self.guardrail = guardrail
        self.temperature = temperature
        self.max_tokens = max_tokens

        self.registry = ToolRegistry()
        for tool in tools or []:
            self.registry.register(tool)

    def __repr__(self) -> str:
        return f"<Agent {self.name!r} tools={len(self.registry)}>"

    @property
    def tools(self) -> list[ToolSpec]:
        return self.registry.list_tools()

    def options(self) -> ResponseOptions:
        return ResponseOptions(
            instructions=self.instructions,
            tools=self.tools,
            output_schema=self.output_schema,
            reasoning_effort=self.reasoning_effort,
            parallel_tool_calls=self.parallel_tool_calls,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    def as_tool(self, description: str | None = None) -> AgentTool:
        return AgentTool.for_agent(self, description)

    def parse(self, text: str) -> Any:
        return parse_output(text, self.output_type)
