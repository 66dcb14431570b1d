"""Multicast events and the verbose/streaming callback bus."""

from __future__ import annotations

import threading
from typing import Any, Callable


class Event:
    """A small observer registry.

    Handlers are called in subscription order. Subscribing and emitting are
    safe from concurrent branches: the handler list is copied under a lock
    and the handlers run outside of it.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._handlers: list[Callable[..., Any]] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        with self._lock:
            self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: Callable[..., Any]) -> bool:
        """Remove one registration of ``handler``. Returns False if it was not subscribed."""
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                return False
        return True

    def emit(self, *args: Any) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(*args)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def __contains__(self, handler: object) -> bool:
        with self._lock:
            return handler in self._handlers

    def __repr__(self) -> str:
        return f"Event({self.name!r}, handlers={len(self)})"


class CallbackBus:
    """Verbose and streaming emission points of one state or agent.

    A bus can be attached to a parent bus; while attached, everything emitted
    here is forwarded to the parent's events as well.
    """

    def __init__(self) -> None:
        self.verbose = Event("verbose")
        self.streaming = Event("streaming")
        self._parents: list[CallbackBus] = []
        self._lock = threading.Lock()

    def attach(self, parent: CallbackBus) -> None:
        with self._lock:
            if parent in self._parents:
                return
            self._parents.append(parent)
        self.verbose.subscribe(parent.verbose.emit)
        self.streaming.subscribe(parent.streaming.emit)

    def detach(self, parent: CallbackBus) -> None:
        with self._lock:
            if parent not in self._parents:
                return
            self._parents.remove(parent)
        self.verbose.unsubscribe(parent.verbose.emit)
        self.streaming.unsubscribe(parent.streaming.emit)

    def is_attached(self, parent: CallbackBus) -> bool:
        with self._lock:
            return parent in self._parents

    def emit_verbose(self, message: str) -> None:
        self.verbose.emit(message)

    def emit_streaming(self, delta: str) -> None:
        self.streaming.emit(delta)
