"""The conversation loop: call the model, dispatch tool calls, repeat."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any

from .agent import Agent, parse_output
from .cancellation import CancellationToken
from .dispatcher import ToolDispatcher
from .errors import GuardrailTripped, MaxTurnsExceeded, ModelBackendError, RunCancelled, RunError
from .events import CallbackBus
from .llm.adapter import (
    ConversationItem,
    FunctionCall,
    FunctionCallOutput,
    MessageItem,
    ModelResponse,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()


@dataclass
class RunResult:
    """History and final response of one conversation run.

    Attributes:
        items: Every conversation item, including seeded history.
        response: The last model response.
        turns: Number of model calls made.
        output_type: The agent's declared output type, used by final_output().
    """

    items: list[ConversationItem] = field(default_factory=list)
    response: ModelResponse = field(default_factory=ModelResponse)
    turns: int = 0
    output_type: Any = None

    @property
    def text(self) -> str:
        return self.response.text

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [item for item in self.items if isinstance(item, FunctionCall)]

    def final_output(self, output_type: Any = _UNSET) -> Any:
        """Final text parsed into ``output_type`` (defaults to the agent's)."""
        if output_type is _UNSET:
            output_type = self.output_type
        return parse_output(self.text, output_type)


def describe_item(item: ConversationItem) -> str:
    if isinstance(item, FunctionCall):
        return f"Calling tool: {item.name}\nusing parameters: {item.arguments}"
    if isinstance(item, FunctionCallOutput):
        return f"[Tool output]({item.name}) {item.output}"
    if isinstance(item, MessageItem):
        return f"[Message]({item.role}) {item.content}"
    return repr(item)


class Runner:
    """Drives one agent conversation until the model stops requesting tools.

    Each ``run`` owns its own history; a Runner instance only holds
    configuration and can serve concurrent runs.

    Args:
        max_turns: Maximum model calls per run. None (the default) means no cap.
        streaming: Use the adapter's streaming call and emit text deltas on
            the ``streaming`` event of the run's callbacks.
    """

    def __init__(self, *, max_turns: int | None = None, streaming: bool = False):
        self.max_turns = max_turns
        self.streaming = streaming

    async def run(
        self,
        agent: Agent,
        input: str = "",
        *,
        messages: list[ConversationItem] | None = None,
        callbacks: CallbackBus | None = None,
        cancellation_token: CancellationToken | None = None,
        streaming: bool | None = None,
    ) -> RunResult:
        streaming = self.streaming if streaming is None else streaming
        result = RunResult(output_type=agent.output_type)
        if messages:
            result.items.extend(messages)
        if input:
            result.items.append(MessageItem(role="user", content=input))

        await self._check_guardrail(agent, input, result)

        dispatcher = ToolDispatcher(
            agent, self, callbacks=callbacks, cancellation_token=cancellation_token
        )
        options = agent.options()

        while True:
            self._check_cancelled(cancellation_token, result)
            if self.max_turns is not None and result.turns >= self.max_turns:
                raise MaxTurnsExceeded(f"Max turns ({self.max_turns}) reached", result)

            logger.debug("Agent '%s' turn %d", agent.name, result.turns + 1)
            response = await self._get_response(agent, result, options, streaming, callbacks)
            # Results arriving after cancellation are discarded.
            self._check_cancelled(cancellation_token, result)

            result.response = response
            result.turns += 1
            result.items.extend(response.output)
            for item in response.output:
                self._emit_verbose(callbacks, item)

            calls = response.function_calls
            if not calls:
                logger.info("Agent '%s' finished after %d turns", agent.name, result.turns)
                return result

            outputs = await dispatcher.dispatch_all(calls)
            result.items.extend(outputs)
            for output in outputs:
                self._emit_verbose(callbacks, output)

    async def _get_response(self, agent, result, options, streaming, callbacks) -> ModelResponse:
        items = list(result.items)
        try:
            if streaming:
                on_delta = callbacks.emit_streaming if callbacks is not None else _ignore
                return await agent.model.create_streaming_response(items, options, on_delta)
            return await agent.model.create_response(items, options)
        except (RunError, RunCancelled):
            raise
        except Exception as e:
            raise ModelBackendError(f"Model call for agent '{agent.name}' failed: {e}", result) from e

    async def _check_guardrail(self, agent: Agent, input: str, result: RunResult) -> None:
        if agent.guardrail is None:
            return
        outcome = agent.guardrail(input)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if outcome is not None and outcome.tripwire_triggered:
            logger.info("Input guardrail tripped for agent '%s': %s", agent.name, outcome.info)
            raise GuardrailTripped(outcome.info, result)

    @staticmethod
    def _check_cancelled(token: CancellationToken | None, result: RunResult) -> None:
        if token is not None and token.cancelled:
            raise RunCancelled(result=result)

    @staticmethod
    def _emit_verbose(callbacks: CallbackBus | None, item: ConversationItem) -> None:
        if callbacks is not None:
            callbacks.emit_verbose(describe_item(item))


def _ignore(_: str) -> None:
    pass


async def run_agent(agent: Agent, input: str = "", **kwargs: Any) -> RunResult:
    """Convenience wrapper around ``Runner().run``."""
    return await Runner().run(agent, input, **kwargs)
