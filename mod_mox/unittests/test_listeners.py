"""Unit tests for :mod:`mod_mox.listeners`."""

from __future__ import annotations

import threading

import pytest

from mod_mox.errors import LifecycleError, SessionEndedError
from mod_mox.expectations import Handle, Return
from mod_mox.listeners import ListenerRegistry
from mod_mox.models import CallRecord, StrictLogEntry


def _entry(handle: Handle, *args: object) -> StrictLogEntry:
    return StrictLogEntry(handle, threading.current_thread(), args)


def test_record_strict_resolves_listeners() -> None:
    """Listeners of a handle receive the recorded caller and arguments."""
    registry = ListenerRegistry()
    handle = Handle(1)
    futures = [registry.add_listener(handle) for _ in range(2)]

    registry.record_strict(_entry(handle, "a"))

    expected = (True, threading.current_thread(), ("a",))
    assert [future.result(timeout=0) for future in futures] == [expected, expected]
    assert registry.lookup(handle) == _entry(handle, "a")


def test_listeners_of_other_handles_stay_pending() -> None:
    """Recording one handle does not touch the listeners of another."""
    registry = ListenerRegistry()
    future = registry.add_listener(Handle(2))

    registry.record_strict(_entry(Handle(1)))

    assert not future.done()


def test_withdrawn_listener_is_not_resolved() -> None:
    """A withdrawn listener is cancelled and forgotten."""
    registry = ListenerRegistry()
    handle = Handle(1)
    future = registry.add_listener(handle)

    registry.withdraw_listener(handle, future)
    registry.record_strict(_entry(handle))

    assert future.cancelled()


def test_logs_keep_chronological_order() -> None:
    """Both logs are returned as copies in insertion order."""
    registry = ListenerRegistry()
    records = [CallRecord("m", name, (), Return(None)) for name in ("a", "b")]
    for record in records:
        registry.record_call(record)
    registry.record_strict(_entry(Handle(2)))
    registry.record_strict(_entry(Handle(1)))

    assert registry.call_log() == records
    assert [entry.handle for entry in registry.strict_log()] == [Handle(2), Handle(1)]
    registry.call_log().clear()
    assert len(registry.call_log()) == 2


def test_single_all_waiter() -> None:
    """Only one ``await_expectations`` waiter may be pending."""
    registry = ListenerRegistry()
    future = registry.set_all_waiter()

    assert registry.has_all_waiter
    with pytest.raises(LifecycleError):
        registry.set_all_waiter()

    assert registry.complete_all_waiter()
    assert future.done()
    assert not registry.complete_all_waiter()


def test_withdrawn_all_waiter_can_be_replaced() -> None:
    """After a timeout a new waiter may register."""
    registry = ListenerRegistry()
    first = registry.set_all_waiter()

    registry.withdraw_all_waiter(first)

    assert not registry.has_all_waiter
    assert not registry.complete_all_waiter()
    second = registry.set_all_waiter()
    assert second is not first


def test_release_fails_every_waiter() -> None:
    """Releasing hands the error to each pending waiter."""
    registry = ListenerRegistry()
    listener = registry.add_listener(Handle(1))
    waiter = registry.set_all_waiter()
    error = SessionEndedError()

    registry.release(error)

    assert listener.exception(timeout=0) is error
    assert waiter.exception(timeout=0) is error
    assert not registry.has_all_waiter
