"""Module whose functions are intercepted by the patching tests."""

from __future__ import annotations

CONSTANT = 42


def add(a: int, b: int) -> int:
    """Return the sum of *a* and *b*."""
    return a + b


def greet(name: str) -> str:
    """Return a greeting for *name*."""
    return f"hello {name}"


def shout(name: str) -> str:
    """Return an uppercase greeting, calling :func:`greet` via the module."""
    import mod_mox.unittests._targets as targets

    return targets.greet(name).upper()


class Greeter:
    """Classes are left alone by the patcher."""

    def greet(self) -> str:
        return "hi"
