"""Tests for EventDispatcher."""

from __future__ import annotations

import logging

from control_link.events import ClientEvent, EventDispatcher


def test_emit_in_registration_order():
    """Test listeners run in the order they were added."""
    dispatcher = EventDispatcher()
    calls = []
    dispatcher.on(ClientEvent.CLOSE, lambda code, reason: calls.append(("a", code, reason)))
    dispatcher.on("close", lambda code, reason: calls.append(("b", code, reason)))

    delivered = dispatcher.emit(ClientEvent.CLOSE, 1000, "bye")

    assert delivered == 2
    assert calls == [("a", 1000, "bye"), ("b", 1000, "bye")]


def test_listener_exception_is_isolated(caplog):
    """Test a raising listener is logged and skipped."""
    dispatcher = EventDispatcher(name="test")
    calls = []

    def broken(*_args):
        raise RuntimeError("bad listener")

    dispatcher.on(ClientEvent.OPEN, broken)
    dispatcher.on(ClientEvent.OPEN, lambda: calls.append("ok"))

    with caplog.at_level(logging.ERROR):
        delivered = dispatcher.emit(ClientEvent.OPEN)

    assert delivered == 1
    assert calls == ["ok"]
    assert "bad listener" in caplog.text


def test_unsubscribe():
    """Test the returned remover and off() stop delivery."""
    dispatcher = EventDispatcher()
    calls = []
    listener = calls.append
    remove = dispatcher.on(ClientEvent.ERROR, listener)
    dispatcher.on(ClientEvent.ERROR, listener)

    remove()
    dispatcher.emit(ClientEvent.ERROR, "first")
    assert dispatcher.off(ClientEvent.ERROR, listener)
    assert not dispatcher.off(ClientEvent.ERROR, listener)
    dispatcher.emit(ClientEvent.ERROR, "second")

    assert calls == ["first"]


def test_listener_may_unsubscribe_during_emit():
    """Test removing a listener while emitting does not skip others."""
    dispatcher = EventDispatcher()
    calls = []
    removers = []

    def once(state):
        calls.append(("once", state))
        removers[0]()

    removers.append(dispatcher.on(ClientEvent.STATE_CHANGE, once))
    dispatcher.on(ClientEvent.STATE_CHANGE, lambda state: calls.append(("always", state)))

    dispatcher.emit(ClientEvent.STATE_CHANGE, "connected")
    dispatcher.emit(ClientEvent.STATE_CHANGE, "disconnected")

    assert calls == [
        ("once", "connected"),
        ("always", "connected"),
        ("always", "disconnected"),
    ]


def test_clear_and_count():
    """Test listener_count and clear()."""
    dispatcher = EventDispatcher()
    dispatcher.on(ClientEvent.MESSAGE, print)
    dispatcher.on(ClientEvent.OPEN, print)
    assert dispatcher.listener_count("message") == 1

    dispatcher.clear(ClientEvent.MESSAGE)
    assert dispatcher.listener_count(ClientEvent.MESSAGE) == 0
    assert dispatcher.listener_count(ClientEvent.OPEN) == 1

    dispatcher.clear()
    assert dispatcher.listener_count(ClientEvent.OPEN) == 0
