"""Tool descriptors, registration and argument binding."""

from __future__ import annotations

import inspect
import json
import typing
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from .errors import ConfigurationError, ToolArgumentError, ToolNotFoundError

if TYPE_CHECKING:
    from .agent import Agent

_EMPTY = inspect.Parameter.empty


@lru_cache(maxsize=256)
def _adapter_for(annotation: Any) -> TypeAdapter:
    return TypeAdapter(annotation)


def _adapter(annotation: Any) -> TypeAdapter:
    try:
        return _adapter_for(annotation)
    except TypeError:
        # Unhashable annotations (e.g. Annotated with dict metadata)
        return TypeAdapter(annotation)


@dataclass
class ToolParameter:
    """One declared parameter of a tool."""

    name: str
    annotation: Any = Any
    has_default: bool = False
    default: Any = None
    description: str | None = None

    @property
    def required(self) -> bool:
        return not self.has_default

    def json_schema(self) -> dict[str, Any]:
        if self.annotation is Any:
            schema: dict[str, Any] = {}
        else:
            schema = _adapter(self.annotation).json_schema()
        if self.description:
            schema["description"] = self.description
        return schema

    def coerce(self, value: Any) -> Any:
        if self.annotation is Any:
            return value
        return _adapter(self.annotation).validate_python(value)


@dataclass
class ToolSpec:
    """Descriptor of a callable the model may request.

    Attributes:
        name: Unique tool name within an agent.
        description: Human-readable description sent to the model.
        parameters: Ordered parameter descriptors, used for binding.
    """

    name: str
    description: str
    parameters: list[ToolParameter] = field(default_factory=list)

    @staticmethod
    def from_callable(
        func: Callable,
        *,
        name: str | None = None,
        description: str | None = None,
        parameter_descriptions: dict[str, str] | None = None,
    ) -> FunctionTool:
        """Build a FunctionTool by inspecting ``func``'s signature once."""
        tool_name = name or getattr(func, "__name__", None)
        if not tool_name:
            raise ConfigurationError(f"Cannot infer a tool name from {func!r}; pass name=")
        tool_desc = description or inspect.getdoc(func) or f"Tool: {tool_name}"
        parameter_descriptions = parameter_descriptions or {}

        try:
            hints = typing.get_type_hints(func)
        except (NameError, TypeError):
            hints = {}

        params: list[ToolParameter] = []
        for pname, param in inspect.signature(func).parameters.items():
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            annotation = hints.get(pname, param.annotation)
            params.append(
                ToolParameter(
                    name=pname,
                    annotation=Any if annotation is _EMPTY else annotation,
                    has_default=param.default is not _EMPTY,
                    default=None if param.default is _EMPTY else param.default,
                    description=parameter_descriptions.get(pname),
                )
            )
        return FunctionTool(
            name=tool_name,
            description=tool_desc,
            parameters=params,
            func=func,
        )

    def json_schema(self) -> dict[str, Any]:
        """Parameter schema as a JSON-schema object.

        Model definitions referenced by parameters are hoisted to a root
        ``$defs`` so ``#/$defs/...`` references resolve against this object.
        """
        properties: dict[str, Any] = {}
        defs: dict[str, Any] = {}
        for param in self.parameters:
            schema = param.json_schema()
            defs.update(schema.pop("$defs", {}))
            properties[param.name] = schema
        result: dict[str, Any] = {
            "type": "object",
            "properties": properties,
            "required": [p.name for p in self.parameters if p.required],
        }
        if defs:
            result["$defs"] = defs
        return result

    def to_openai_schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }

    def bind(self, arguments: str | dict[str, Any] | None) -> dict[str, Any]:
        """Bind raw JSON arguments to this tool's parameters.

        Supplied fields win (matched case-insensitively), then declared
        defaults. A parameter with neither raises ToolArgumentError.
        """
        if arguments is None or arguments == "":
            supplied: Any = {}
        elif isinstance(arguments, str):
            try:
                supplied = json.loads(arguments)
            except json.JSONDecodeError as e:
                raise ToolArgumentError(self.name, f"arguments are not valid JSON ({e})")
        else:
            supplied = arguments
        if not isinstance(supplied, dict):
            raise ToolArgumentError(self.name, "arguments must be a JSON object")

        by_name = {str(k).lower(): v for k, v in supplied.items()}
        by_name.update({k: v for k, v in supplied.items()})

        bound: dict[str, Any] = {}
        for param in self.parameters:
            if param.name in by_name or param.name.lower() in by_name:
                value = by_name.get(param.name, by_name.get(param.name.lower()))
                if value is None and param.has_default:
                    bound[param.name] = param.default
                    continue
                try:
                    bound[param.name] = param.coerce(value)
                except ValidationError as e:
                    raise ToolArgumentError(
                        self.name, f"invalid value for '{param.name}': {e.errors()[0]['msg']}"
                    )
            elif param.has_default:
                bound[param.name] = param.default
            else:
                raise ToolArgumentError(
                    self.name, f"required parameter '{param.name}' not found in arguments"
                )
        return bound


@dataclass
class FunctionTool(ToolSpec):
    """A tool backed by a plain (sync or async) callable."""

    func: Callable[..., Any] | None = None

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.func)


@dataclass
class AgentTool(ToolSpec):
    """A tool that runs a nested agent on a single ``input`` string."""

    agent: Agent | None = None

    @classmethod
    def for_agent(cls, agent: Agent, description: str | None = None) -> AgentTool:
        return cls(
            name=agent.name,
            description=description or agent.instructions,
            parameters=[ToolParameter(name="input", annotation=str)],
            agent=agent,
        )


class ToolRegistry:
    """Per-agent table of function tools and agent tools."""

    def __init__(self) -> None:
        self._functions: dict[str, FunctionTool] = {}
        self._agents: dict[str, AgentTool] = {}

    def register(self, tool: Callable | ToolSpec | Agent, **kwargs: Any) -> ToolSpec:
        """Register a callable, a prebuilt descriptor, or an Agent (as an agent tool)."""
        from .agent import Agent

        if isinstance(tool, Agent):
            spec: ToolSpec = tool.as_tool(**kwargs)
        elif isinstance(tool, ToolSpec):
            spec = tool
        elif callable(tool):
            spec = ToolSpec.from_callable(tool, **kwargs)
        else:
            raise ConfigurationError(f"Cannot register {tool!r} as a tool")

        if spec.name in self._functions or spec.name in self._agents:
            raise ConfigurationError(f"Duplicate tool name '{spec.name}'")
        if isinstance(spec, AgentTool):
            self._agents[spec.name] = spec
        elif isinstance(spec, FunctionTool):
            self._functions[spec.name] = spec
        else:
            raise ConfigurationError(f"Tool '{spec.name}' has no callable or agent attached")
        return spec

    def get(self, name: str) -> ToolSpec | None:
        return self._functions.get(name) or self._agents.get(name)

    def resolve(self, name: str) -> ToolSpec:
        """Look up plain function tools first, then agent tools."""
        if name in self._functions:
            return self._functions[name]
        if name in self._agents:
            return self._agents[name]
        raise ToolNotFoundError(name)

    def list_tools(self) -> list[ToolSpec]:
        return [*self._functions.values(), *self._agents.values()]

    def to_openai_schemas(self) -> list[dict[str, Any]]:
        return [t.to_openai_schema() for t in self.list_tools()]

    def __len__(self) -> int:
        return len(self._functions) + len(self._agents)

    def __contains__(self, name: object) -> bool:
        return name in self._functions or name in self._agents
