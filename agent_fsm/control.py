"""A top-level conversational agent that drives state machines.

The control agent owns the user-facing conversation and a callback bus.
Every AgentStateMachine started on its behalf registers itself here while
it runs, and forwards the verbose/streaming output of whichever agent state
is current to the control agent's bus.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from .agent import Agent
from .errors import ConfigurationError
from .events import CallbackBus, Event
from .llm.adapter import ConversationItem
from .machine import StateMachine
from .runner import Runner, RunResult
from .state import State

logger = logging.getLogger(__name__)


class ControlAgent:
    """Holds the main conversation and tracks the state machines it started.

    Usage:
        control = ControlAgent(Agent(model, instructions="Route user requests."))
        control.callbacks.verbose.subscribe(print)
        reply = await control.add_to_conversation("Research solid-state batteries")
    """

    def __init__(self, agent: Agent | None = None, *, runner: Runner | None = None):
        self.agent = agent
        self.runner = runner or Runner()
        self.callbacks = CallbackBus()
        self.shared_items: list[ConversationItem] = []
        self.current_result = RunResult()
        self.machine_added = Event("machine_added")
        self.machine_removed = Event("machine_removed")
        self._machines: list[StateMachine] = []
        self._lock = threading.Lock()

    @property
    def active_machines(self) -> list[StateMachine]:
        with self._lock:
            return list(self._machines)

    def add_state_machine(self, machine: StateMachine) -> None:
        with self._lock:
            if machine in self._machines:
                return
            self._machines.append(machine)
        logger.debug("Control agent tracking machine '%s'", machine.name)
        self.machine_added.emit(machine)

    def remove_state_machine(self, machine: StateMachine) -> None:
        with self._lock:
            if machine not in self._machines:
                return
            self._machines.remove(machine)
        logger.debug("Control agent released machine '%s'", machine.name)
        self.machine_removed.emit(machine)

    def cancel_all(self) -> None:
        """Stop every state machine currently running for this agent."""
        for machine in self.active_machines:
            machine.stop()

    async def add_to_conversation(self, text: str, streaming: bool | None = None) -> str:
        """Continue the main conversation with ``text`` and return the reply."""
        if self.agent is None:
            raise ConfigurationError("ControlAgent has no agent; set one before talking to it")
        self.current_result = await self.runner.run(
            self.agent,
            text,
            messages=self.current_result.items,
            callbacks=self.callbacks,
            streaming=streaming,
        )
        return self.current_result.text

    async def start_new_conversation(self, text: str, streaming: bool | None = None) -> str:
        self.current_result = RunResult()
        return await self.add_to_conversation(text, streaming)


class AgentStateMachine(StateMachine):
    """A StateMachine run on behalf of a ControlAgent.

    While running it is listed in ``control_agent.active_machines``. The
    callback bus of the current state (when it has one, as AgentState does)
    is attached to the control agent's bus on entry and detached on exit.
    """

    def __init__(self, control_agent: ControlAgent, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.control_agent = control_agent
        self.shared_items = control_agent.shared_items

        self.on_begin.subscribe(self._register)
        self.on_finish.subscribe(self._unregister)
        self.on_cancelled.subscribe(self._unregister)
        self.on_error.subscribe(self._unregister)
        self.on_state_entered.subscribe(self._attach_callbacks)
        self.on_state_exited.subscribe(self._detach_callbacks)

    def _register(self, *_: Any) -> None:
        self.control_agent.add_state_machine(self)

    def _unregister(self, *_: Any) -> None:
        self.control_agent.remove_state_machine(self)

    def _attach_callbacks(self, state: State) -> None:
        bus = getattr(state, "callbacks", None)
        if isinstance(bus, CallbackBus):
            bus.attach(self.control_agent.callbacks)

    def _detach_callbacks(self, state: State) -> None:
        bus = getattr(state, "callbacks", None)
        if isinstance(bus, CallbackBus):
            bus.detach(self.control_agent.callbacks)
