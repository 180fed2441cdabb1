"""Storage for strict expectations, stubs and blacklisted modules."""

from __future__ import annotations

import typing as t
from collections import deque

from .interception import InterceptionPlan

if t.TYPE_CHECKING:  # pragma: no cover - used only for typing
    from .expectations import Expectation, Handle
    from .models import Invocation


class ExpectationStore:
    """Hold the strict queue, the stub list and the blacklist of a session.

    Strict expectations are consumed front to back in the order ``strict()``
    was called. Stubs are searched in registration order so the first
    registered match wins.
    """

    def __init__(self) -> None:
        self._strict: deque[Expectation] = deque()
        self._stubs: list[Expectation] = []
        self._blacklist: list[str] = []

    def add_strict(self, expectation: Expectation) -> None:
        """Append *expectation* to the strict queue."""
        self._strict.append(expectation)

    def add_stub(self, expectation: Expectation) -> None:
        """Register *expectation* as a stub."""
        self._stubs.append(expectation)

    def add_blacklisted(self, module: str) -> None:
        """Forbid every call into *module*."""
        if module not in self._blacklist:
            self._blacklist.append(module)

    @property
    def head(self) -> Expectation | None:
        """Return the next strict expectation, if any."""
        return self._strict[0] if self._strict else None

    @property
    def is_drained(self) -> bool:
        """Return ``True`` once no strict expectation remains."""
        return not self._strict

    def pending(self) -> list[Expectation]:
        """Return the unconsumed strict expectations in queue order."""
        return list(self._strict)

    def pop_head(self) -> Expectation:
        """Remove and return the strict head."""
        return self._strict.popleft()

    def is_pending(self, handle: Handle) -> bool:
        """Return ``True`` if *handle* refers to a queued strict expectation."""
        return any(exp.handle == handle for exp in self._strict)

    def find_stub(self, invocation: Invocation) -> Expectation | None:
        """Return the first stub accepting *invocation*."""
        for stub in self._stubs:
            if stub.matches(invocation):
                return stub
        return None

    def plan(self) -> InterceptionPlan:
        """Describe the modules and functions that must be intercepted."""
        functions: dict[str, set[str]] = {}
        for exp in [*self._stubs, *self._strict]:
            functions.setdefault(exp.module, set()).add(exp.function)
        return InterceptionPlan(
            functions={mod: frozenset(names) for mod, names in functions.items()},
            blacklist=frozenset(self._blacklist),
        )
