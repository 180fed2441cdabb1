"""Exception hierarchy for :mod:`mod_mox`."""

from __future__ import annotations

import typing as t

if t.TYPE_CHECKING:  # pragma: no cover - used only for typing
    from .expectations import Expectation, Handle
    from .models import Invocation


class ModMoxError(Exception):
    """Base class for all errors raised by mod_mox."""


class LifecycleError(ModMoxError):
    """Raised when an operation is called in the wrong phase."""


class SessionEndedError(LifecycleError):
    """Raised when a session is used after it was verified or failed."""

    DEFAULT_MESSAGE = "The mock session has ended"

    def __init__(self, message: str = DEFAULT_MESSAGE) -> None:
        super().__init__(message)


class ModuleAlreadyMockedError(ModMoxError):
    """Raised by ``replay()`` when another session already mocks a module."""

    def __init__(self, module: str) -> None:
        super().__init__(f"Module {module!r} is already mocked by another session")
        self.module = module


class InvalidHandleError(ModMoxError):
    """Raised when awaiting a handle that the session never issued."""

    def __init__(self, handle: object) -> None:
        super().__init__(f"Invalid expectation handle: {handle!r}")
        self.handle = handle


class AwaitTimeoutError(ModMoxError, TimeoutError):
    """Raised when a blocking await does not complete in time."""


class UndefinedFunctionError(ModMoxError, AttributeError):
    """Raised when calling a function that an intercepted module does not offer."""

    def __init__(self, module: str, function: str) -> None:
        super().__init__(f"Undefined function {module}.{function}() while mocked")
        self.module = module
        self.function = function


class VerificationError(ModMoxError):
    """Base class for fatal expectation failures."""


class ArgumentMismatchError(VerificationError):
    """The strict head was called with an argument that does not match."""

    def __init__(
        self,
        message: str,
        *,
        position: int,
        expected: object,
        actual: object,
        invocation: Invocation,
        expectation: Expectation,
    ) -> None:
        super().__init__(message)
        self.position = position
        self.expected = expected
        self.actual = actual
        self.invocation = invocation
        self.expectation = expectation


class UnexpectedInvocationError(VerificationError):
    """A call matched neither the strict head nor any stub."""

    def __init__(
        self,
        message: str,
        *,
        invocation: Invocation,
        expected: Expectation | None = None,
    ) -> None:
        super().__init__(message)
        self.invocation = invocation
        self.expected = expected


class UnfulfilledExpectationError(VerificationError):
    """``verify()`` found strict expectations that were never called."""

    def __init__(self, message: str, *, remaining: t.Sequence[Expectation]) -> None:
        super().__init__(message)
        self.remaining = list(remaining)

    @property
    def handles(self) -> list[Handle | None]:
        """Return the handles of the unmet expectations in queue order."""
        return [exp.handle for exp in self.remaining]


__all__ = [
    "ArgumentMismatchError",
    "AwaitTimeoutError",
    "InvalidHandleError",
    "LifecycleError",
    "ModMoxError",
    "ModuleAlreadyMockedError",
    "SessionEndedError",
    "UndefinedFunctionError",
    "UnexpectedInvocationError",
    "UnfulfilledExpectationError",
    "VerificationError",
]
