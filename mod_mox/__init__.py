"""Strict and stub mocks for module functions, verified by replaying calls.

A :class:`ModMox` session is programmed with ordered ``strict`` expectations
and unordered ``stub`` expectations, switched to replay, and then checks every
intercepted call against them.
"""

from __future__ import annotations

from .comparators import ANY, CALLER, Any, Contains, IsA, Predicate, Regex, StartsWith
from .config import DEFAULT_AWAIT_TIMEOUT, MODMOX_AWAIT_TIMEOUT_ENV
from .controller import ModMox, Phase
from .errors import (
    ArgumentMismatchError,
    AwaitTimeoutError,
    InvalidHandleError,
    LifecycleError,
    ModMoxError,
    ModuleAlreadyMockedError,
    SessionEndedError,
    UndefinedFunctionError,
    UnexpectedInvocationError,
    UnfulfilledExpectationError,
    VerificationError,
)
from .expectations import OK, Answer, Expectation, Function, Handle, Return
from .interception import (
    MODULE_CLAIMS,
    InterceptionLayer,
    InterceptionPlan,
    ModuleClaims,
    ModulePatcher,
)
from .models import AwaitResult, CallRecord, Invocation

__all__ = [
    "ANY",
    "CALLER",
    "DEFAULT_AWAIT_TIMEOUT",
    "MODMOX_AWAIT_TIMEOUT_ENV",
    "MODULE_CLAIMS",
    "OK",
    "Answer",
    "Any",
    "ArgumentMismatchError",
    "AwaitResult",
    "AwaitTimeoutError",
    "CallRecord",
    "Contains",
    "Expectation",
    "Function",
    "Handle",
    "InterceptionLayer",
    "InterceptionPlan",
    "InvalidHandleError",
    "Invocation",
    "IsA",
    "LifecycleError",
    "ModMox",
    "ModMoxError",
    "ModuleAlreadyMockedError",
    "ModuleClaims",
    "ModulePatcher",
    "Phase",
    "Predicate",
    "Regex",
    "Return",
    "SessionEndedError",
    "StartsWith",
    "UndefinedFunctionError",
    "UnexpectedInvocationError",
    "UnfulfilledExpectationError",
    "VerificationError",
]
