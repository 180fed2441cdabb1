"""Strict log, call log and pending waiters of a session.

The registry is not thread-safe on its own; :class:`~mod_mox.controller.ModMox`
only touches it while holding the session lock. Waiting happens on the
returned futures, outside the lock.
"""

from __future__ import annotations

import logging
import typing as t
from concurrent.futures import Future

from .errors import LifecycleError

if t.TYPE_CHECKING:  # pragma: no cover - used only for typing
    from .expectations import Handle
    from .models import AwaitResult, CallRecord, StrictLogEntry

logger = logging.getLogger(__name__)


class ListenerRegistry:
    """Record resolved invocations and notify processes awaiting them."""

    def __init__(self) -> None:
        self._strict_log: dict[Handle, StrictLogEntry] = {}
        self._call_log: list[CallRecord] = []
        self._listeners: dict[Handle, list[Future[AwaitResult]]] = {}
        self._all_waiter: Future[None] | None = None

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------
    def record_strict(self, entry: StrictLogEntry) -> None:
        """Log a consumed strict expectation and wake its listeners."""
        self._strict_log[entry.handle] = entry
        listeners = self._listeners.pop(entry.handle, [])
        result = entry.result()
        for future in listeners:
            if not future.done():
                future.set_result(result)
        if listeners:
            logger.debug("Notified %d listener(s) for %r", len(listeners), entry.handle)

    def record_call(self, record: CallRecord) -> None:
        """Append *record* to the call log."""
        self._call_log.append(record)

    def call_log(self) -> list[CallRecord]:
        """Return the call log in chronological order."""
        return list(self._call_log)

    def strict_log(self) -> list[StrictLogEntry]:
        """Return consumed strict expectations in consumption order."""
        return list(self._strict_log.values())

    def lookup(self, handle: Handle) -> StrictLogEntry | None:
        """Return the log entry for an already consumed *handle*."""
        return self._strict_log.get(handle)

    # ------------------------------------------------------------------
    # Waiters
    # ------------------------------------------------------------------
    def add_listener(self, handle: Handle) -> Future[AwaitResult]:
        """Register a waiter for the consumption of *handle*."""
        future: Future[AwaitResult] = Future()
        self._listeners.setdefault(handle, []).append(future)
        return future

    def withdraw_listener(self, handle: Handle, future: Future[AwaitResult]) -> None:
        """Forget *future*, e.g. after its waiter timed out."""
        future.cancel()
        listeners = self._listeners.get(handle)
        if listeners is None:
            return
        if future in listeners:
            listeners.remove(future)
        if not listeners:
            del self._listeners[handle]

    @property
    def has_all_waiter(self) -> bool:
        """Return ``True`` while an ``await_expectations`` call is pending."""
        return self._all_waiter is not None and not self._all_waiter.done()

    def set_all_waiter(self) -> Future[None]:
        """Register the single pending ``await_expectations`` waiter."""
        if self.has_all_waiter:
            msg = "await_expectations() is already pending for this session"
            raise LifecycleError(msg)
        self._all_waiter = Future()
        return self._all_waiter

    def withdraw_all_waiter(self, future: Future[None]) -> None:
        """Forget *future* if it is still the pending waiter."""
        future.cancel()
        if self._all_waiter is future:
            self._all_waiter = None

    def complete_all_waiter(self) -> bool:
        """Release the pending waiter; return ``True`` if there was one."""
        waiter, self._all_waiter = self._all_waiter, None
        if waiter is None or waiter.done():
            return False
        waiter.set_result(None)
        return True

    def release(self, error: BaseException) -> None:
        """Fail every pending waiter with *error*."""
        pending = [f for futures in self._listeners.values() for f in futures]
        self._listeners.clear()
        waiter, self._all_waiter = self._all_waiter, None
        if waiter is not None:
            pending.append(t.cast("Future[t.Any]", waiter))
        released = 0
        for future in pending:
            if not future.done():
                future.set_exception(error)
                released += 1
        if released:
            logger.debug("Released %d pending waiter(s): %s", released, error)
