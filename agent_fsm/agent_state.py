"""States backed by an agent conversation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Union

from pydantic_core import to_json

from .agent import Agent, parse_output
from .events import CallbackBus
from .runner import Runner, RunResult
from .state import State

logger = logging.getLogger(__name__)

AgentFactory = Callable[[], Agent]


def format_prompt(value: Any) -> str:
    """Default prompt for a state input: strings as-is, anything else as JSON."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return to_json(value, serialize_unknown=True).decode()


class AgentState(State):
    """A state whose invocation is one conversation with an agent.

    Usage:
        planner = AgentState(
            "plan",
            lambda: Agent(model, instructions="List search queries.", output_type=Plan),
            input_type=str,
            output_type=Plan,
        )

    ``agent`` is an Agent or a zero-argument factory returning one. The
    factory is called once here; subclasses that need isolated conversations
    (see FanOutState) call :meth:`new_agent` for a fresh one.

    Structured output is parsed with pydantic; a parse failure raises
    StructuredOutputError from ``invoke`` and is not retried here.
    """

    def __init__(
        self,
        name: str | None,
        agent: Union[Agent, AgentFactory],
        *,
        prompt: Callable[[Any], str] | None = None,
        runner: Runner | None = None,
        streaming: bool | None = None,
        **kwargs: Any,
    ):
        super().__init__(name, **kwargs)
        self._factory: AgentFactory | None = None if isinstance(agent, Agent) else agent
        self.agent = agent if isinstance(agent, Agent) else agent()
        if self.output_type is None:
            self.output_type = self.agent.output_type
        self.prompt = prompt or format_prompt
        self.runner = runner or Runner()
        self.streaming = streaming
        self.callbacks = CallbackBus()
        self.last_result: RunResult | None = None

    def new_agent(self) -> Agent:
        """A fresh agent from the factory, or the shared one if none was given."""
        if self._factory is None:
            return self.agent
        return self._factory()

    async def begin_run(self, prompt: str, agent: Agent | None = None) -> RunResult:
        """Run one conversation and return the raw RunResult."""
        agent = agent or self.agent
        logger.debug("State '%s' running agent '%s'", self.name, agent.name)
        result = await self.runner.run(
            agent,
            prompt,
            callbacks=self.callbacks,
            cancellation_token=self.token,
            streaming=self.streaming,
        )
        self.last_result = result
        return result

    def parse(self, text: str) -> Any:
        return parse_output(text, self.output_type)

    async def invoke(self, input: Any) -> Any:
        result = await self.begin_run(self.prompt(input))
        return self.parse(result.text)


class FanOutState(AgentState):
    """Runs one isolated conversation per item of its input, concurrently.

    ``split`` turns the state input into a list of prompts (by default the
    input is expected to be a list and each item is formatted as a prompt).
    All branches are awaited; if any branch fails, the first error (in branch
    order) fails the state. ``join`` folds the parsed branch outputs into the
    state's output (default: the list itself).

    Each branch gets its own agent from the factory when one was given, so
    branch histories never mix.
    """

    def __init__(
        self,
        name: str | None,
        agent: Union[Agent, AgentFactory],
        *,
        split: Callable[[Any], list[Any]] | None = None,
        join: Callable[[list[Any]], Any] | None = None,
        branch_output_type: Any = None,
        **kwargs: Any,
    ):
        declared_output = kwargs.get("output_type")
        super().__init__(name, agent, **kwargs)
        if declared_output is None:
            # The agent's type describes one branch, not the joined output.
            self.output_type = None
        self.split = split or list
        self.join = join
        if branch_output_type is None:
            branch_output_type = self.agent.output_type
        self.branch_output_type = branch_output_type

    async def run_branch(self, item: Any) -> Any:
        result = await self.begin_run(self.prompt(item), agent=self.new_agent())
        return parse_output(result.text, self.branch_output_type)

    async def invoke(self, input: Any) -> Any:
        items = self.split(input)
        logger.info("State '%s' fanning out %d branches", self.name, len(items))
        outcomes = await asyncio.gather(
            *(self.run_branch(item) for item in items), return_exceptions=True
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        outputs = list(outcomes)
        if self.join is None:
            return outputs
        return self.join(outputs)
