"""Expectations, answers and the argument matching algorithm."""

from __future__ import annotations

import dataclasses as dc
import itertools
import typing as t

from .comparators import CALLER
from .errors import ModMoxError
from .models import format_call

if t.TYPE_CHECKING:  # pragma: no cover - used only for typing
    import threading

    from .models import Invocation

OK: t.Final[str] = "ok"

_handle_ids = itertools.count(1)


@dc.dataclass(slots=True, frozen=True)
class Handle:
    """Opaque identifier returned by ``strict()`` and accepted by ``await``."""

    id: int

    @classmethod
    def allocate(cls) -> Handle:
        """Return a handle that has never been issued before in this process."""
        return cls(next(_handle_ids))

    def __repr__(self) -> str:
        """Return a debug representation."""
        return f"Handle({self.id})"


class Answer(t.Protocol):
    """Response policy applied when an expectation matches a call."""

    def respond(self, args: list[object]) -> object:
        """Produce the value returned to the caller."""
        ...


@dc.dataclass(slots=True, frozen=True)
class Return:
    """Answer returning a fixed ``value``."""

    value: object

    def respond(self, args: list[object]) -> object:
        """Return the configured value."""
        return self.value


@dc.dataclass(slots=True, frozen=True)
class Function:
    """Answer computed by applying ``func`` to the actual argument list.

    The function runs in the thread that made the intercepted call, so it may
    inspect ``threading.current_thread()`` and anything it raises reaches the
    code under test.
    """

    func: t.Callable[[list[object]], object]

    def respond(self, args: list[object]) -> object:
        """Return ``func(args)``."""
        return self.func(args)


OK_ANSWER: t.Final[Return] = Return(OK)


def is_answer(value: object) -> bool:
    """Return ``True`` if *value* can be used as an expectation answer."""
    return isinstance(value, Return | Function) or callable(
        getattr(value, "respond", None)
    )


def is_predicate(spec: object) -> bool:
    """Return ``True`` if *spec* is matched by calling it.

    Classes are callable but are compared as literal values.
    """
    return callable(spec) and not isinstance(spec, type)


@dc.dataclass(slots=True, frozen=True)
class ArgumentMismatch:
    """First argument position at which a call fails a specification."""

    position: int
    expected: object
    actual: object


def _matches(spec: object, actual: object, caller: threading.Thread) -> bool:
    try:
        if spec is CALLER:
            return actual is caller
        if is_predicate(spec):
            return bool(t.cast("t.Callable[[object], object]", spec)(actual))
        return bool(actual == spec)
    except ModMoxError:
        raise
    except Exception:  # noqa: BLE001 - a raising matcher is a non-match
        return False


def match_arguments(
    specs: t.Sequence[object],
    actual: t.Sequence[object],
    caller: threading.Thread,
) -> ArgumentMismatch | None:
    """Match *actual* against *specs* left to right.

    Returns ``None`` when every position matches, otherwise the first failing
    position (1-based). Both sequences must have the same length.
    """
    for position, (spec, value) in enumerate(zip(specs, actual, strict=True), 1):
        if not _matches(spec, value, caller):
            return ArgumentMismatch(position, spec, value)
    return None


@dc.dataclass(slots=True)
class Expectation:
    """A programmed call contract for ``module.function``."""

    module: str
    function: str
    args: tuple[object, ...]
    answer: Answer = OK_ANSWER
    handle: Handle | None = None

    @property
    def strict(self) -> bool:
        """Return ``True`` for ordered, exactly-once expectations."""
        return self.handle is not None

    @property
    def arity(self) -> int:
        """Return the number of arguments the expectation accepts."""
        return len(self.args)

    def targets(self, invocation: Invocation) -> bool:
        """Return ``True`` if *invocation* calls this module, function and arity."""
        return (
            invocation.module == self.module
            and invocation.function == self.function
            and invocation.arity == self.arity
        )

    def explain_mismatch(self, invocation: Invocation) -> ArgumentMismatch | None:
        """Return the first argument mismatch for a targeted *invocation*."""
        return match_arguments(self.args, invocation.args, invocation.caller)

    def matches(self, invocation: Invocation) -> bool:
        """Return ``True`` if *invocation* satisfies this expectation."""
        return self.targets(invocation) and self.explain_mismatch(invocation) is None

    def describe(self) -> str:
        """Return a human readable representation."""
        text = format_call(self.module, self.function, self.args)
        if self.handle is not None:
            text = f"{text} [{self.handle!r}]"
        return text


__all__ = [
    "OK",
    "OK_ANSWER",
    "Answer",
    "ArgumentMismatch",
    "Expectation",
    "Function",
    "Handle",
    "Return",
    "is_answer",
    "is_predicate",
    "match_arguments",
]
