"""agent-fsm: typed state machines for orchestrating tool-calling agents.

A small FSM engine whose states can be backed by agent conversations, plus
the conversation loop (Runner) that calls a model backend and dispatches the
tool calls it requests until a final answer is produced.
"""

__version__ = "0.1.0"

from .agent import Agent, GuardrailResult, parse_output
from .agent_state import AgentState, FanOutState
from .cancellation import CancellationToken
from .control import AgentStateMachine, ControlAgent
from .dispatcher import ToolDispatcher
from .errors import (
    AgentFSMError,
    ConfigurationError,
    GuardrailTripped,
    MaxRetriesExceeded,
    MaxTurnsExceeded,
    ModelBackendError,
    NoTransitionError,
    RunCancelled,
    RunError,
    StructuredOutputError,
    ToolArgumentError,
    ToolError,
    ToolNotFoundError,
    WorkflowError,
)
from .events import CallbackBus, Event
from .llm.adapter import (
    FunctionCall,
    FunctionCallOutput,
    MessageItem,
    ModelAdapter,
    ModelResponse,
    ResponseOptions,
)
from .machine import ParallelSubMachineState, StateMachine, SubMachineState
from .runner import Runner, RunResult, run_agent
from .state import ExitState, FunctionState, State, Transition
from .tools import AgentTool, FunctionTool, ToolParameter, ToolRegistry, ToolSpec

__all__ = [
    # State machine engine
    "State",
    "FunctionState",
    "ExitState",
    "Transition",
    "StateMachine",
    "SubMachineState",
    "ParallelSubMachineState",
    # Agents
    "Agent",
    "AgentState",
    "FanOutState",
    "AgentStateMachine",
    "ControlAgent",
    "GuardrailResult",
    "parse_output",
    # Conversation loop
    "Runner",
    "RunResult",
    "run_agent",
    "ToolDispatcher",
    # Tools
    "ToolSpec",
    "ToolParameter",
    "FunctionTool",
    "AgentTool",
    "ToolRegistry",
    # Model backend
    "ModelAdapter",
    "ModelResponse",
    "ResponseOptions",
    "MessageItem",
    "FunctionCall",
    "FunctionCallOutput",
    # Callbacks and cancellation
    "Event",
    "CallbackBus",
    "CancellationToken",
    # Errors
    "AgentFSMError",
    "WorkflowError",
    "ConfigurationError",
    "NoTransitionError",
    "MaxRetriesExceeded",
    "ToolError",
    "ToolNotFoundError",
    "ToolArgumentError",
    "StructuredOutputError",
    "RunError",
    "MaxTurnsExceeded",
    "ModelBackendError",
    "GuardrailTripped",
    "RunCancelled",
]
