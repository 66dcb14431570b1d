"""Cooperative cancellation shared by state machines and conversation runs."""

from __future__ import annotations

import threading
from typing import Callable

from .errors import RunCancelled


class CancellationToken:
    """A one-way cancellation flag.

    A token created with a ``parent`` is cancelled as soon as the parent is.
    Cancelling a child never affects the parent. Nothing is interrupted
    forcibly: code holding the token checks it at its await points.
    """

    def __init__(self, parent: CancellationToken | None = None):
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()
        self.parent = parent
        if parent is not None:
            parent.add_callback(self.cancel)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def release(self) -> None:
        """Unlink from the parent so a finished child is not kept alive by it."""
        if self.parent is not None:
            self.parent.remove_callback(self.cancel)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RunCancelled()

    def child(self) -> CancellationToken:
        return CancellationToken(parent=self)
