"""Resolves model function calls to tools and invokes them."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, TYPE_CHECKING

from pydantic_core import to_json

from .errors import RunCancelled, ToolError
from .llm.adapter import FunctionCall, FunctionCallOutput
from .tools import AgentTool, FunctionTool

if TYPE_CHECKING:
    from .agent import Agent
    from .cancellation import CancellationToken
    from .events import CallbackBus
    from .runner import Runner

logger = logging.getLogger(__name__)


def serialize_output(value: Any) -> str:
    """Textual function-output content; non-strings are JSON encoded."""
    if isinstance(value, str):
        return value
    return to_json(value, serialize_unknown=True).decode()


class ToolDispatcher:
    """Invokes the function calls requested during one conversation run.

    ``invoke`` raises on unknown tools, unbindable arguments and tool
    failures. ``dispatch`` reports any of those back to the model as an
    ``"Error: ..."`` output so the model can correct itself; cancellation is
    always re-raised.
    """

    def __init__(
        self,
        agent: Agent,
        runner: Runner,
        *,
        callbacks: CallbackBus | None = None,
        cancellation_token: CancellationToken | None = None,
    ):
        self.agent = agent
        self.runner = runner
        self.callbacks = callbacks
        self.cancellation_token = cancellation_token

    def _check_cancelled(self) -> None:
        if self.cancellation_token is not None:
            self.cancellation_token.raise_if_cancelled()

    async def invoke(self, call: FunctionCall) -> str:
        tool = self.agent.registry.resolve(call.name)
        kwargs = tool.bind(call.arguments)

        if isinstance(tool, AgentTool):
            logger.debug("Running agent tool '%s'", tool.name)
            result = await self.runner.run(
                tool.agent,
                kwargs["input"],
                callbacks=self.callbacks,
                cancellation_token=self.cancellation_token,
            )
            return result.text

        if not isinstance(tool, FunctionTool) or tool.func is None:
            raise ToolError(f"Tool '{tool.name}' has no callable attached")
        if tool.is_async:
            value = await tool.func(**kwargs)
        else:
            value = await asyncio.to_thread(tool.func, **kwargs)
            if inspect.isawaitable(value):
                value = await value
        return serialize_output(value)

    async def dispatch(self, call: FunctionCall) -> FunctionCallOutput:
        self._check_cancelled()
        logger.debug("Dispatching tool call '%s' (%s)", call.name, call.call_id)
        try:
            output = await self.invoke(call)
        except RunCancelled:
            raise
        except Exception as e:
            logger.warning("Tool call '%s' failed: %s", call.name, e)
            output = f"Error: {e}"
        self._check_cancelled()
        return FunctionCallOutput(call_id=call.call_id, output=output, name=call.name)

    async def dispatch_all(
        self, calls: list[FunctionCall], *, parallel: bool | None = None
    ) -> list[FunctionCallOutput]:
        """Dispatch ``calls``; outputs are returned in request order."""
        if parallel is None:
            parallel = self.agent.parallel_tool_calls
        if parallel and len(calls) > 1:
            outputs = await asyncio.gather(*(self.dispatch(call) for call in calls))
            return list(outputs)
        return [await self.dispatch(call) for call in calls]
