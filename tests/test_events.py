"""Tests for events, the callback bus and cancellation tokens."""

import threading

import pytest

from agent_fsm.cancellation import CancellationToken
from agent_fsm.errors import RunCancelled
from agent_fsm.events import CallbackBus, Event


class TestEvent:
    def test_subscribe_and_emit_in_order(self):
        event = Event("test")
        calls = []
        event.subscribe(lambda x: calls.append(("first", x)))
        event.subscribe(lambda x: calls.append(("second", x)))
        event.emit(1)
        assert calls == [("first", 1), ("second", 1)]

    def test_unsubscribe(self):
        event = Event()
        calls = []
        handler = event.subscribe(calls.append)
        assert handler in event
        assert event.unsubscribe(handler)
        assert not event.unsubscribe(handler)
        event.emit("x")
        assert calls == []
        assert len(event) == 0

    def test_handler_may_unsubscribe_during_emit(self):
        event = Event()
        calls = []

        def once(value):
            calls.append(value)
            event.unsubscribe(once)

        event.subscribe(once)
        event.emit(1)
        event.emit(2)
        assert calls == [1]

    def test_concurrent_emitters(self):
        event = Event()
        received = []
        lock = threading.Lock()

        def handler(value):
            with lock:
                received.append(value)

        event.subscribe(handler)

        def emit_many(prefix):
            for i in range(200):
                event.emit((prefix, i))

        threads = [threading.Thread(target=emit_many, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(received) == 800
        # per-emitter order is preserved
        for prefix in "abcd":
            assert [i for p, i in received if p == prefix] == list(range(200))


class TestCallbackBus:
    def test_attach_forwards(self):
        parent = CallbackBus()
        child = CallbackBus()
        seen = []
        parent.verbose.subscribe(seen.append)
        parent.streaming.subscribe(lambda d: seen.append(f"delta:{d}"))

        child.attach(parent)
        child.emit_verbose("hello")
        child.emit_streaming("he")
        assert seen == ["hello", "delta:he"]
        assert child.is_attached(parent)

    def test_detach_stops_forwarding(self):
        parent = CallbackBus()
        child = CallbackBus()
        seen = []
        parent.verbose.subscribe(seen.append)
        child.attach(parent)
        child.detach(parent)
        child.emit_verbose("after")
        assert seen == []

    def test_attach_twice_forwards_once(self):
        parent = CallbackBus()
        child = CallbackBus()
        seen = []
        parent.verbose.subscribe(seen.append)
        child.attach(parent)
        child.attach(parent)
        child.emit_verbose("x")
        assert seen == ["x"]


class TestCancellationToken:
    def test_cancel_runs_callbacks_once(self):
        token = CancellationToken()
        calls = []
        token.add_callback(lambda: calls.append(1))
        token.cancel()
        token.cancel()
        assert token.cancelled
        assert calls == [1]

    def test_callback_added_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []
        token.add_callback(lambda: calls.append(1))
        assert calls == [1]

    def test_parent_cancels_child_not_reverse(self):
        parent = CancellationToken()
        child = parent.child()
        other = parent.child()
        child.cancel()
        assert not parent.cancelled
        parent.cancel()
        assert other.cancelled

    def test_release_unlinks_from_parent(self):
        parent = CancellationToken()
        child = parent.child()
        child.release()
        parent.cancel()
        assert not child.cancelled

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(RunCancelled):
            token.raise_if_cancelled()
