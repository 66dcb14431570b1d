"""Custom exceptions for agent-fsm."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .runner import RunResult


class AgentFSMError(Exception):
    """Base class for every error raised by agent-fsm."""


class WorkflowError(AgentFSMError):
    """General state machine error."""
    pass


class ConfigurationError(WorkflowError):
    """The state graph is wired incorrectly (missing states, bad targets)."""


class NoTransitionError(ConfigurationError):
    """Raised when no transition of a state accepts its output."""

    def __init__(self, state_name: str, output: Any):
        self.state_name = state_name
        self.output = output
        super().__init__(
            f"State '{state_name}' has no matching transition for output: {output!r}"
        )


class MaxRetriesExceeded(WorkflowError):
    """Raised when a state is invoked more often than its attempt budget allows."""

    def __init__(self, state_name: str, max_attempts: int):
        self.state_name = state_name
        self.max_attempts = max_attempts
        super().__init__(
            f"State '{state_name}' exceeded its budget of {max_attempts} attempts"
        )


class ToolError(AgentFSMError):
    """A single function call could not be resolved or bound."""


class ToolNotFoundError(ToolError):
    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"No tool named '{tool_name}'")


class ToolArgumentError(ToolError):
    """Raised when function call arguments cannot be bound to a tool's parameters."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"{tool_name}: {message}")


class StructuredOutputError(AgentFSMError):
    """Raised when model text cannot be parsed into the declared output type."""

    def __init__(self, text: str, errors: Any = None):
        self.text = text
        self.errors = errors
        super().__init__(f"Could not parse structured output: {errors}")


class RunError(AgentFSMError):
    """A conversation run failed. ``result`` holds the history gathered so far."""

    def __init__(self, message: str, result: RunResult | None = None):
        self.result = result
        super().__init__(message)


class MaxTurnsExceeded(RunError):
    pass


class ModelBackendError(RunError):
    """The model backend call failed. The original exception is chained as the cause."""


class GuardrailTripped(RunError):
    """Raised when an input guardrail stops the agent before the first model call."""

    def __init__(self, info: str, result: RunResult | None = None):
        self.info = info
        super().__init__(
            f"Input guardrail stopped the agent from continuing because: {info}", result
        )


class RunCancelled(AgentFSMError):
    """Raised at an await point once the run's cancellation token is triggered."""

    def __init__(self, message: str = "Run was cancelled", result: RunResult | None = None):
        self.result = result
        super().__init__(message)
