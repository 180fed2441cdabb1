"""Unit tests for :mod:`mod_mox.expectations`."""

from __future__ import annotations

import threading

import pytest

from mod_mox.comparators import ANY, CALLER
from mod_mox.expectations import (
    OK,
    OK_ANSWER,
    Expectation,
    Function,
    Handle,
    Return,
    is_answer,
    match_arguments,
)
from mod_mox.models import Invocation


def _call(function: str, *args: object, module: str = "m") -> Invocation:
    return Invocation(module, function, args, threading.current_thread())


def test_handles_are_unique() -> None:
    """Every allocated handle differs from all previous ones."""
    handles = {Handle.allocate() for _ in range(100)}
    assert len(handles) == 100


def test_handle_repr() -> None:
    """Handles show their number."""
    assert repr(Handle(7)) == "Handle(7)"


def test_answers() -> None:
    """``Return`` ignores the arguments; ``Function`` receives them as a list."""
    assert Return(3).respond([1]) == 3
    assert Function(lambda args: list(reversed(args))).respond([1, 2]) == [2, 1]
    assert OK_ANSWER.respond([]) == OK == "ok"


def test_is_answer_accepts_duck_typed_answers() -> None:
    """Objects with a ``respond`` method are valid answers."""

    class Constant:
        def respond(self, args: list[object]) -> object:
            return 1

    assert is_answer(Constant())
    assert not is_answer(lambda args: 1)
    assert not is_answer("ok")


def test_match_arguments_reports_first_failure() -> None:
    """Matching stops at the leftmost non-matching position."""
    me = threading.current_thread()

    mismatch = match_arguments((1, 2, 3), (1, 0, 0), me)

    assert mismatch is not None
    assert (mismatch.position, mismatch.expected, mismatch.actual) == (2, 2, 0)


def test_match_arguments_requires_equal_length() -> None:
    """Callers must check the arity before matching."""
    with pytest.raises(ValueError, match="zip"):
        match_arguments((1,), (1, 2), threading.current_thread())


def test_empty_specification_matches_empty_call() -> None:
    """A function without arguments matches a call without arguments."""
    assert match_arguments((), (), threading.current_thread()) is None


def test_equality_errors_are_mismatches() -> None:
    """Values whose ``==`` raises never match."""

    class Hostile:
        def __eq__(self, other: object) -> bool:
            raise RuntimeError("no comparisons")

        __hash__ = object.__hash__

    mismatch = match_arguments((1,), (Hostile(),), threading.current_thread())

    assert mismatch is not None
    assert mismatch.position == 1


def test_caller_compares_against_the_invocation_thread() -> None:
    """CALLER is resolved against the thread recorded in the invocation."""
    other = threading.Thread(name="other")
    expectation = Expectation("m", "f", (CALLER,))

    assert expectation.matches(Invocation("m", "f", (other,), other))
    assert not expectation.matches(_call("f", other))


def test_caller_ignores_argument_equality() -> None:
    """CALLER compares thread identity and never calls ``__eq__``."""

    class Hostile:
        def __eq__(self, other: object) -> bool:
            raise RuntimeError("no comparisons")

        __hash__ = object.__hash__

    mismatch = match_arguments((CALLER,), (Hostile(),), threading.current_thread())

    assert mismatch is not None
    assert mismatch.position == 1


def test_expectation_targets_module_function_and_arity() -> None:
    """Targeting ignores argument values."""
    expectation = Expectation("m", "f", (1, 2), handle=Handle(1))

    assert expectation.targets(_call("f", 8, 9))
    assert not expectation.targets(_call("f", 1))
    assert not expectation.targets(_call("g", 1, 2))
    assert not expectation.targets(_call("f", 1, 2, module="n"))


def test_expectation_matches() -> None:
    """A match needs a target hit and every argument accepted."""
    expectation = Expectation("m", "f", (ANY, 2))

    assert expectation.matches(_call("f", "x", 2))
    assert not expectation.matches(_call("f", "x", 3))
    assert not expectation.matches(_call("f", "x"))


def test_strict_and_stub_descriptions() -> None:
    """Strict expectations include their handle in descriptions."""
    strict = Expectation("m", "f", (1, "a"), handle=Handle(4))
    stub = Expectation("m", "g", (ANY,))

    assert strict.strict
    assert not stub.strict
    assert strict.describe() == "m.f(1, 'a') [Handle(4)]"
    assert stub.describe() == "m.g(Any())"
    assert stub.answer is OK_ANSWER
