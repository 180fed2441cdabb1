"""Failure message construction for :class:`~mod_mox.controller.ModMox`."""

from __future__ import annotations

import typing as t
from textwrap import indent

from .errors import (
    ArgumentMismatchError,
    UnexpectedInvocationError,
    UnfulfilledExpectationError,
)

if t.TYPE_CHECKING:  # pragma: no cover - used only for typing
    from .expectations import ArgumentMismatch, Expectation
    from .models import Invocation


def _numbered(entries: t.Sequence[str], *, start: int = 1) -> str:
    if not entries:
        return "(none)"
    lines: list[str] = []
    for index, entry in enumerate(entries, start=start):
        entry_lines = entry.splitlines() or [""]
        lines.append(f"{index}. {entry_lines[0]}")
        lines.extend(f"   {extra}" for extra in entry_lines[1:])
    return "\n".join(lines)


def _format_sections(title: str, sections: list[tuple[str, str]]) -> str:
    parts = [title]
    for label, body in sections:
        if not body:
            continue
        parts.append("")
        parts.append(f"{label}:")
        parts.append(indent(body, "  "))
    return "\n".join(parts)


def argument_mismatch_error(
    expectation: Expectation,
    invocation: Invocation,
    mismatch: ArgumentMismatch,
) -> ArgumentMismatchError:
    """Build the error for a strict head called with a wrong argument."""
    reason = "\n".join(
        [
            f"argument {mismatch.position}",
            f"expected: {mismatch.expected!r}",
            f"actual: {mismatch.actual!r}",
        ]
    )
    msg = _format_sections(
        "Unexpected function parameter.",
        [
            ("Expected", expectation.describe()),
            ("Actual", invocation.describe()),
            ("Error in parameter", reason),
        ],
    )
    return ArgumentMismatchError(
        msg,
        position=mismatch.position,
        expected=mismatch.expected,
        actual=mismatch.actual,
        invocation=invocation,
        expectation=expectation,
    )


def unexpected_invocation_error(
    invocation: Invocation,
    expected: Expectation | None,
) -> UnexpectedInvocationError:
    """Build the error for a call that no expectation accepts."""
    msg = _format_sections(
        "Unexpected invocation.",
        [
            ("Actual", invocation.describe()),
            ("Expected", expected.describe() if expected is not None else ""),
        ],
    )
    return UnexpectedInvocationError(msg, invocation=invocation, expected=expected)


def unfulfilled_expectation_error(
    remaining: t.Sequence[Expectation],
) -> UnfulfilledExpectationError:
    """Build the error raised by ``verify()`` for missing invocations."""
    msg = _format_sections(
        "Invocations missing.",
        [("Remaining expectations", _numbered([exp.describe() for exp in remaining]))],
    )
    return UnfulfilledExpectationError(msg, remaining=remaining)


__all__ = [
    "argument_mismatch_error",
    "unexpected_invocation_error",
    "unfulfilled_expectation_error",
]
