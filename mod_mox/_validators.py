"""Shared validation helpers."""

from __future__ import annotations

import math
import types
import typing as t

from .expectations import is_answer


def validate_positive_finite_timeout(timeout: float) -> None:
    """Ensure *timeout* represents a usable await timeout value."""
    if isinstance(timeout, bool):
        msg = "timeout must be a real number"
        raise TypeError(msg)

    if not (timeout > 0 and math.isfinite(timeout)):
        msg = "timeout must be > 0 and finite"
        raise ValueError(msg)


def module_name(module: str | types.ModuleType) -> str:
    """Return the name of *module*, accepting a module object or a name."""
    if isinstance(module, types.ModuleType):
        return module.__name__
    if not isinstance(module, str):
        msg = f"module must be a str or module object, got {type(module).__name__}"
        raise TypeError(msg)
    if not module:
        msg = "module name must not be empty"
        raise ValueError(msg)
    return module


def validate_function_name(function: str) -> None:
    """Ensure *function* is a usable attribute name."""
    if not isinstance(function, str):
        msg = f"function must be a str, got {type(function).__name__}"
        raise TypeError(msg)
    if not function.isidentifier():
        msg = f"Invalid function name: {function!r}"
        raise ValueError(msg)


def argument_specs(args: t.Sequence[object]) -> tuple[object, ...]:
    """Return *args* as a tuple, rejecting anything but a list or tuple."""
    if not isinstance(args, list | tuple):
        msg = f"args must be a list or tuple, got {type(args).__name__}"
        raise TypeError(msg)
    return tuple(args)


def validate_answer(answer: object) -> None:
    """Ensure *answer* is a :class:`Return`, a :class:`Function` or alike."""
    if not is_answer(answer):
        msg = (
            "answer must be Return(value) or Function(func), "
            f"got {type(answer).__name__}"
        )
        raise TypeError(msg)
