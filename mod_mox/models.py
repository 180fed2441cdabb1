"""Records exchanged between interception code and a :class:`ModMox` session."""

from __future__ import annotations

import dataclasses as dc
import threading
import typing as t

if t.TYPE_CHECKING:  # pragma: no cover - used only for typing
    from .expectations import Answer, Handle

_REPR_FIELD_LIMIT: t.Final[int] = 256


def _shorten(text: str, limit: int = _REPR_FIELD_LIMIT) -> str:
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    return f"{text[: limit - 1]}…"


def format_call(module: str, function: str, args: t.Iterable[object]) -> str:
    """Return ``module.function(arg, ...)`` using the ``repr`` of each argument."""
    args_repr = ", ".join(_shorten(repr(arg)) for arg in args)
    return f"{module}.{function}({args_repr})"


@dc.dataclass(slots=True, frozen=True)
class Invocation:
    """A single intercepted call delivered to the session."""

    module: str
    function: str
    args: tuple[object, ...]
    caller: threading.Thread

    @property
    def arity(self) -> int:
        """Return the number of positional arguments."""
        return len(self.args)

    def describe(self) -> str:
        """Return a readable one-line description including the caller."""
        call = format_call(self.module, self.function, self.args)
        return f"{call} from {self.caller.name}"

    def __repr__(self) -> str:
        """Return a convenient debug representation."""
        return f"Invocation({self.describe()})"


@dc.dataclass(slots=True, frozen=True)
class CallRecord:
    """Call log entry for an invocation that was resolved successfully."""

    module: str
    function: str
    args: tuple[object, ...]
    answer: Answer


@dc.dataclass(slots=True, frozen=True)
class StrictLogEntry:
    """A consumed strict expectation with the call that consumed it."""

    handle: Handle
    caller: threading.Thread
    args: tuple[object, ...]

    def result(self) -> AwaitResult:
        """Return the value reported to ``await_invocation`` callers."""
        return AwaitResult(success=True, caller=self.caller, args=self.args)


class AwaitResult(t.NamedTuple):
    """Outcome of awaiting a strict expectation handle."""

    success: bool
    caller: threading.Thread
    args: tuple[object, ...]


__all__ = [
    "AwaitResult",
    "CallRecord",
    "Invocation",
    "StrictLogEntry",
    "format_call",
]
