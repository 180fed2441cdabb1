"""Comparator classes and sentinels used in argument specifications."""

from __future__ import annotations

import re
import typing as t


class Comparator(t.Protocol):
    """Callable returning ``True`` when a value matches."""

    def __call__(self, value: object) -> bool:
        """Return ``True`` if *value* satisfies the comparison."""
        ...


class Any:
    """Match any value."""

    def __call__(self, value: object) -> bool:
        """Return ``True`` for any input."""
        return True

    def __repr__(self) -> str:
        """Return a debug representation."""
        return "Any()"


class IsA:
    """Match instances of ``typ``."""

    def __init__(self, typ: type | tuple[type, ...]) -> None:
        self.typ = typ

    def __call__(self, value: object) -> bool:
        """Return ``True`` when ``value`` is an instance of ``typ``."""
        return isinstance(value, self.typ)

    def __repr__(self) -> str:
        """Return a debug representation."""
        if isinstance(self.typ, tuple):
            names = ", ".join(typ.__name__ for typ in self.typ)
            return f"IsA(({names}))"
        return f"IsA({self.typ.__name__})"


class Regex:
    """Match strings containing a match for ``pattern``."""

    def __init__(self, pattern: str) -> None:
        self._pattern = re.compile(pattern)

    def __call__(self, value: object) -> bool:
        """Return ``True`` if *value* is a string the regex matches."""
        return isinstance(value, str) and bool(self._pattern.search(value))

    def __repr__(self) -> str:
        """Return a debug representation."""
        return f"Regex({self._pattern.pattern!r})"


class Contains:
    """Match if ``item`` is found in *value*."""

    def __init__(self, item: object) -> None:
        self.item = item

    def __call__(self, value: t.Container[object]) -> bool:
        """Return ``True`` if ``item`` is in *value*."""
        return self.item in value

    def __repr__(self) -> str:
        """Return a debug representation."""
        return f"Contains({self.item!r})"


class StartsWith:
    """Match if *value* begins with ``prefix``."""

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix

    def __call__(self, value: object) -> bool:
        """Return ``True`` if *value* is a string starting with ``prefix``."""
        return isinstance(value, str) and value.startswith(self.prefix)

    def __repr__(self) -> str:
        """Return a debug representation."""
        return f"StartsWith({self.prefix!r})"


class Predicate:
    """Use a custom ``func`` to determine a match."""

    def __init__(self, func: t.Callable[[t.Any], object]) -> None:
        self.func = func

    def __call__(self, value: object) -> bool:
        """Return ``True`` if ``func(value)`` is truthy."""
        return bool(self.func(value))

    def __repr__(self) -> str:
        """Return a debug representation."""
        name = getattr(self.func, "__qualname__", None) or repr(self.func)
        return f"Predicate({name})"


class _CallerSentinel:
    """Argument specification matching the thread that makes the call."""

    _instance: t.ClassVar[_CallerSentinel | None] = None

    def __new__(cls) -> _CallerSentinel:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CALLER"

    def __reduce__(self) -> str:
        return "CALLER"


ANY: t.Final[Any] = Any()
CALLER: t.Final[_CallerSentinel] = _CallerSentinel()


__all__ = [
    "ANY",
    "CALLER",
    "Any",
    "Comparator",
    "Contains",
    "IsA",
    "Predicate",
    "Regex",
    "StartsWith",
]
