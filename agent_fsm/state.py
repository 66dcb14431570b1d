"""States, transitions and the exit sentinel."""

from __future__ import annotations

import inspect
import logging
import typing
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

from .errors import ConfigurationError, MaxRetriesExceeded, NoTransitionError

if TYPE_CHECKING:
    from .cancellation import CancellationToken
    from .machine import StateMachine

logger = logging.getLogger(__name__)


def _is_plain_class(tp: Any) -> bool:
    return (
        isinstance(tp, type)
        and typing.get_origin(tp) is None
        and tp is not typing.Any
        and tp is not object
    )


def types_compatible(output_type: Any, input_type: Any) -> bool:
    """Whether a value declared as ``output_type`` may feed a state taking ``input_type``.

    Only plain classes are compared; generics, ``Any`` and undeclared types
    are accepted.
    """
    if not (_is_plain_class(output_type) and _is_plain_class(input_type)):
        return True
    return issubclass(output_type, input_type) or issubclass(input_type, output_type)


@dataclass
class Transition:
    """An edge out of a state.

    Attributes:
        target: The state entered when this transition is taken.
        when: Predicate over the source state's output. None always matches.
        transform: Optional conversion applied to the output before it is
                   handed to the target as input.
    """

    target: State
    when: Callable[[Any], bool] | None = None
    transform: Callable[[Any], Any] | None = None

    def evaluate(self, output: Any) -> bool:
        if self.when is None:
            return True
        return bool(self.when(output))

    def apply(self, output: Any) -> Any:
        if self.transform is None:
            return output
        return self.transform(output)


class State:
    """A typed unit of work in a state machine.

    Subclasses implement :meth:`invoke`. ``enter_state`` runs when the machine
    transitions into the state (not when a state loops back to itself) and
    resets the per-visit ``attempts`` counter; overrides must call super.

    Attributes:
        name: Identifier used in logs and errors.
        input_type / output_type: Declared value types, used to check that
            transitions connect compatible states.
        transitions: Outgoing edges, evaluated in declaration order.
        max_attempts: Invocation budget per visit. None means unbounded.
        machine: The owning StateMachine, set on registration.
    """

    input_type: Any = None
    output_type: Any = None

    def __init__(
        self,
        name: str | None = None,
        *,
        input_type: Any = None,
        output_type: Any = None,
        max_attempts: int | None = None,
    ):
        self.name = name or type(self).__name__
        if input_type is not None:
            self.input_type = input_type
        if output_type is not None:
            self.output_type = output_type
        self.transitions: list[Transition] = []
        self.max_attempts = max_attempts
        self.attempts = 0
        self.input: Any = None
        self.output: Any = None
        self.entered = False
        self.exited = False
        self.machine: StateMachine | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"

    @property
    def token(self) -> CancellationToken | None:
        return self.machine.token if self.machine is not None else None

    async def invoke(self, input: Any) -> Any:
        raise NotImplementedError

    def enter_state(self, input: Any) -> None:
        self.input = input
        self.attempts = 0
        self.entered = True
        self.exited = False

    def exit_state(self) -> None:
        self.entered = False
        self.exited = True

    def add_transition(
        self,
        target: State,
        when: Callable[[Any], bool] | None = None,
        *,
        transform: Callable[[Any], Any] | None = None,
    ) -> Transition:
        if transform is None and not types_compatible(self.output_type, target.input_type):
            raise ConfigurationError(
                f"{target!r} takes {target.input_type!r} which is not compatible "
                f"with the output {self.output_type!r} of {self!r}"
            )
        transition = Transition(target=target, when=when, transform=transform)
        self.transitions.append(transition)
        return transition

    def to_exit(
        self,
        when: Callable[[Any], bool] | None = None,
        *,
        transform: Callable[[Any], Any] | None = None,
    ) -> Transition:
        return self.add_transition(ExitState(), when, transform=transform)

    def select_transition(self, output: Any) -> Transition:
        for transition in self.transitions:
            if transition.evaluate(output):
                return transition
        raise NoTransitionError(self.name, output)

    async def run_once(self, input: Any) -> Any:
        """Invoke the state once, enforcing the attempt budget."""
        self.attempts += 1
        if self.max_attempts is not None and self.attempts > self.max_attempts:
            logger.warning(
                "State '%s' exceeded %d attempts, stopping machine", self.name, self.max_attempts
            )
            if self.machine is not None:
                self.machine.stop()
            raise MaxRetriesExceeded(self.name, self.max_attempts)
        self.output = await self.invoke(input)
        return self.output


class FunctionState(State):
    """A state backed by a plain callable ``input -> output`` (sync or async)."""

    def __init__(self, func: Callable[[Any], Any], name: str | None = None, **kwargs: Any):
        super().__init__(name or getattr(func, "__name__", None), **kwargs)
        self.func = func

    async def invoke(self, input: Any) -> Any:
        result = self.func(input)
        if inspect.isawaitable(result):
            result = await result
        return result


class ExitState(State):
    """Terminal sentinel. Reaching it ends the run; its input is the exit value."""

    def __init__(self, name: str = "exit"):
        super().__init__(name)

    async def invoke(self, input: Any) -> Any:
        return input

    def add_transition(self, target, when=None, *, transform=None) -> Transition:
        raise ConfigurationError("ExitState cannot have outgoing transitions")
