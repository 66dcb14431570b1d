"""State machine engine: runs states and follows their transitions to the exit."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable

from .cancellation import CancellationToken
from .errors import ConfigurationError, RunCancelled, WorkflowError
from .events import Event
from .state import ExitState, State, types_compatible

logger = logging.getLogger(__name__)


class StateMachine:
    """Drives a graph of states from an entry state to an ExitState.

    Usage:
        plan = FunctionState(make_plan, name="plan")
        execute = FunctionState(run_plan, name="execute")
        plan.add_transition(execute, lambda items: len(items) > 0)
        plan.add_transition(plan)
        execute.to_exit()

        machine = StateMachine(states=[plan, execute], entry_state=plan, output_state=execute)
        result = await machine.run("goal")

    A machine is single-use. The returned value is the last output of
    ``output_state``, or the value handed to the ExitState when no output
    state is set. ``stop()`` cancels the run cooperatively; ``run`` then
    returns None and ``cancelled`` is True.
    """

    def __init__(
        self,
        states: list[State] | None = None,
        entry_state: State | None = None,
        output_state: State | None = None,
        *,
        name: str | None = None,
        parent: StateMachine | None = None,
        cancellation_token: CancellationToken | None = None,
        input_type: Any = None,
        output_type: Any = None,
    ):
        self.name = name or type(self).__name__
        self.input_type = input_type
        self.output_type = output_type
        self.states: list[State] = []
        self.entry_state: State | None = None
        self.output_state: State | None = None
        self.current: State | None = None
        self.parent = parent
        self.stopped = False
        self.finished = False
        self.errored = False
        self.result: Any = None

        self.on_begin = Event("on_begin")
        self.on_state_entered = Event("on_state_entered")
        self.on_state_exited = Event("on_state_exited")
        self.on_finish = Event("on_finish")
        self.on_cancelled = Event("on_cancelled")
        self.on_error = Event("on_error")

        self._outputs: dict[State, Any] = {}
        self._children: list[StateMachine] = []
        self._stop_listeners: list[Callable[[StateMachine], None]] = []
        self._lock = threading.Lock()
        self._started = False

        if parent is not None:
            cancellation_token = parent.token
        self.token = CancellationToken(parent=cancellation_token)
        self.token.add_callback(self.stop)

        for state in states or []:
            self.add_state(state)
        if entry_state is not None:
            self.set_entry_state(entry_state)
        if output_state is not None:
            self.set_output_state(output_state)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} current={self.current!r}>"

    # -- Graph construction --

    def add_state(self, state: State) -> State:
        if state.machine is not None and state.machine is not self:
            raise ConfigurationError(
                f"{state!r} already belongs to {state.machine!r}; states cannot be shared"
            )
        if state not in self.states:
            self.states.append(state)
        state.machine = self
        return state

    def add_states(self, *states: State) -> None:
        for state in states:
            self.add_state(state)

    def set_entry_state(self, state: State) -> None:
        if not types_compatible(self.input_type, state.input_type):
            raise ConfigurationError(
                f"Entry state {state!r} takes {state.input_type!r}, "
                f"machine input is {self.input_type!r}"
            )
        self.add_state(state)
        self.entry_state = state

    def set_output_state(self, state: State) -> None:
        if not types_compatible(state.output_type, self.output_type):
            raise ConfigurationError(
                f"Output state {state!r} produces {state.output_type!r}, "
                f"machine output is {self.output_type!r}"
            )
        self.add_state(state)
        self.output_state = state

    def set_parent(self, parent: StateMachine) -> None:
        """Nest this machine under ``parent`` before it runs."""
        if self._started:
            raise WorkflowError(f"{self!r} is already running")
        self.token.remove_callback(self.stop)
        self.token.release()
        self.parent = parent
        self.token = parent.token.child()
        self.token.add_callback(self.stop)

    def validate(self) -> None:
        if self.entry_state is None:
            raise ConfigurationError(f"{self!r} needs an entry state")
        if self.entry_state not in self.states:
            raise ConfigurationError(f"Entry state {self.entry_state!r} is not registered")
        if self.output_state is not None and self.output_state not in self.states:
            raise ConfigurationError(f"Output state {self.output_state!r} is not registered")
        for state in self.states:
            for transition in state.transitions:
                target = transition.target
                if isinstance(target, ExitState) or target in self.states:
                    continue
                raise ConfigurationError(
                    f"Transition from {state!r} targets {target!r} which is not registered"
                )

    # -- Nesting and cancellation --

    @property
    def cancelled(self) -> bool:
        return self.stopped and not (self.finished or self.errored)

    @property
    def children(self) -> list[StateMachine]:
        with self._lock:
            return list(self._children)

    def add_stop_listener(self, listener: Callable[[StateMachine], None]) -> None:
        with self._lock:
            self._stop_listeners.append(listener)

    def remove_stop_listener(self, listener: Callable[[StateMachine], None]) -> None:
        with self._lock:
            if listener in self._stop_listeners:
                self._stop_listeners.remove(listener)

    def attach_child(self, child: StateMachine) -> None:
        with self._lock:
            self._children.append(child)
        child.add_stop_listener(self._child_stopped)
        if self.stopped:
            child.stop()

    def detach_child(self, child: StateMachine) -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)
        child.remove_stop_listener(self._child_stopped)

    def _child_stopped(self, child: StateMachine) -> None:
        self.stop()

    def stop(self) -> None:
        """Request cancellation of this machine, its children and its parent."""
        with self._lock:
            if self.stopped or self.finished:
                return
            self.stopped = True
            children = list(self._children)
            listeners = list(self._stop_listeners)
        logger.info("Stopping state machine '%s'", self.name)
        self.token.cancel()
        for child in children:
            child.stop()
        for listener in listeners:
            listener(self)

    # -- Execution --

    async def run(self, input: Any = None) -> Any:
        if self._started:
            raise WorkflowError(f"{self!r} has already been run")
        self.validate()
        self._started = True

        if self.parent is not None:
            self.parent.attach_child(self)
        try:
            self.on_begin.emit(self)
            logger.info(
                "State machine '%s' starting at state '%s'", self.name, self.entry_state.name
            )
            return await self._run_loop(input)
        except RunCancelled:
            return self._cancel()
        except Exception as exc:
            logger.info("State machine '%s' failed: %s", self.name, exc)
            self.errored = True
            self._exit_current()
            self.on_error.emit(self, exc)
            raise
        finally:
            if self.parent is not None:
                self.parent.detach_child(self)
            self.token.release()

    async def _run_loop(self, input: Any) -> Any:
        self._change_state(self.entry_state, input)
        while True:
            if self.stopped or self.token.cancelled:
                raise RunCancelled()
            state = self.current
            if isinstance(state, ExitState):
                return self._finish(state.input)

            output = await state.run_once(state.input)
            self._outputs[state] = output

            if self.stopped or self.token.cancelled:
                raise RunCancelled()
            transition = state.select_transition(output)
            if transition.target is state:
                # Looping back keeps the current input and skips enter/exit.
                logger.debug("State '%s' loops back to itself", state.name)
                continue
            self._change_state(transition.target, transition.apply(output))

    def _change_state(self, state: State, value: Any) -> None:
        self._exit_current()
        if state.machine is None:
            state.machine = self
        self.current = state
        state.enter_state(value)
        logger.info("State machine '%s' entered state '%s'", self.name, state.name)
        self.on_state_entered.emit(state)

    def _exit_current(self) -> None:
        state = self.current
        if state is None or not state.entered:
            return
        state.exit_state()
        self.on_state_exited.emit(state)

    def _finish(self, exit_value: Any) -> Any:
        self._exit_current()
        if self.output_state is None or isinstance(self.output_state, ExitState):
            result = exit_value
        elif self.output_state in self._outputs:
            result = self._outputs[self.output_state]
        else:
            raise WorkflowError(
                f"Output state '{self.output_state.name}' never produced an output"
            )
        self.finished = True
        self.result = result
        logger.info("State machine '%s' finished", self.name)
        self.on_finish.emit(result)
        return result

    def _cancel(self) -> None:
        self.stopped = True
        logger.info("State machine '%s' cancelled", self.name)
        self.on_cancelled.emit(self)
        self._exit_current()
        return None


class SubMachineState(State):
    """Runs a freshly built child machine on every invocation.

    The child is nested under the owning machine: stopping the parent stops
    the child, and a child that stops itself (for example after exhausting a
    retry budget) stops the parent too.
    """

    def __init__(self, factory: Callable[[], StateMachine], name: str | None = None, **kwargs: Any):
        super().__init__(name, **kwargs)
        self.factory = factory
        self.child: StateMachine | None = None

    async def invoke(self, input: Any) -> Any:
        child = self.factory()
        if self.machine is not None:
            child.set_parent(self.machine)
        self.child = child
        result = await child.run(input)
        if child.cancelled:
            raise RunCancelled(f"Nested machine '{child.name}' was cancelled")
        return result


class ParallelSubMachineState(State):
    """Runs one fresh child machine per factory concurrently and waits for all.

    Every child is nested under the owning machine, so stopping the parent
    stops all of them. A child error fails the state once every child has
    returned; otherwise a cancelled child surfaces as RunCancelled. The
    output is the list of child results in factory order.
    """

    def __init__(
        self,
        factories: list[Callable[[], StateMachine]],
        name: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(name, **kwargs)
        self.factories = list(factories)
        self.children: list[StateMachine] = []

    async def invoke(self, input: Any) -> list[Any]:
        children = [factory() for factory in self.factories]
        if self.machine is not None:
            for child in children:
                child.set_parent(self.machine)
        self.children = children

        outcomes = await asyncio.gather(
            *(child.run(input) for child in children), return_exceptions=True
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        cancelled = [child.name for child in children if child.cancelled]
        if cancelled:
            raise RunCancelled(f"Nested machines {cancelled} were cancelled")
        return list(outcomes)
