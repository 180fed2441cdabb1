"""Routing of real module-level function calls into a :class:`ModMox` session.

The session only relies on the :class:`InterceptionLayer` protocol.
:class:`ModulePatcher` is the in-process implementation used by default: it
swaps module attributes for forwarding functions and restores them on
uninstall.
"""

from __future__ import annotations

import dataclasses as dc
import functools
import importlib
import inspect
import logging
import sys
import threading
import types
import typing as t

from .errors import ModuleAlreadyMockedError, UndefinedFunctionError

logger = logging.getLogger(__name__)

_MISSING = object()


class Deliverer(t.Protocol):
    """Session side of the interception boundary."""

    def invoke(self, module: str, function: str, *args: object) -> object:
        """Resolve a call and return the value for the caller."""
        ...


@dc.dataclass(slots=True, frozen=True)
class InterceptionPlan:
    """Modules to intercept and the functions each must forward."""

    functions: t.Mapping[str, frozenset[str]] = dc.field(default_factory=dict)
    blacklist: frozenset[str] = frozenset()

    @property
    def modules(self) -> list[str]:
        """Return every module name in the plan, sorted."""
        return sorted(set(self.functions) | self.blacklist)

    def functions_for(self, module: str) -> frozenset[str]:
        """Return the forwarded function names for *module*."""
        return self.functions.get(module, frozenset())


class InterceptionLayer(t.Protocol):
    """Collaborator installing and removing call interception."""

    def install(self, session: Deliverer, plan: InterceptionPlan) -> None:
        """Redirect calls described by *plan* to ``session.invoke``."""
        ...

    def uninstall(self, modules: t.Iterable[str]) -> None:
        """Restore the original behaviour of *modules*."""
        ...


class ModuleClaims:
    """Process-wide record of which session mocks which module."""

    def __init__(self) -> None:
        self._owners: dict[str, object] = {}
        self._lock = threading.Lock()

    def claim(self, owner: object, modules: t.Iterable[str]) -> None:
        """Reserve *modules* for *owner*, all or nothing."""
        names = list(modules)
        with self._lock:
            for name in names:
                current = self._owners.get(name)
                if current is not None and current is not owner:
                    raise ModuleAlreadyMockedError(name)
            for name in names:
                self._owners[name] = owner

    def release(self, owner: object) -> list[str]:
        """Free every module held by *owner* and return their names."""
        with self._lock:
            names = [name for name, held in self._owners.items() if held is owner]
            for name in names:
                del self._owners[name]
        return names

    def owner_of(self, module: str) -> object | None:
        """Return the session currently holding *module*."""
        with self._lock:
            return self._owners.get(module)

    def reset(self) -> None:
        """Forget every claim."""
        with self._lock:
            self._owners.clear()


MODULE_CLAIMS: t.Final[ModuleClaims] = ModuleClaims()


@dc.dataclass(slots=True)
class _PatchedModule:
    module: types.ModuleType
    created: bool
    originals: dict[str, object] = dc.field(default_factory=dict)


def _load_or_create(name: str) -> tuple[types.ModuleType, bool]:
    """Import *name*, creating an empty module when it does not exist."""
    try:
        return importlib.import_module(name), False
    except ModuleNotFoundError as exc:
        if exc.name != name:
            raise
    module = types.ModuleType(name)
    sys.modules[name] = module
    logger.debug("Created placeholder module %s", name)
    return module, True


def _make_forwarder(
    session: Deliverer, module: str, function: str, original: object
) -> t.Callable[..., object]:
    def forward(*args: object, **kwargs: object) -> object:
        if kwargs:
            names = ", ".join(sorted(kwargs))
            msg = (
                f"{module}.{function}() got keyword arguments ({names}); "
                "mod_mox forwards positional arguments only"
            )
            raise TypeError(msg)
        return session.invoke(module, function, *args)

    if inspect.isfunction(original):
        functools.update_wrapper(forward, original)
    else:
        forward.__name__ = forward.__qualname__ = function
        forward.__module__ = module
    return forward


def _make_undefined(
    module: str, function: str, original: object
) -> t.Callable[..., t.NoReturn]:
    def undefined(*args: object, **kwargs: object) -> t.NoReturn:
        raise UndefinedFunctionError(module, function)

    functools.update_wrapper(undefined, t.cast("t.Callable[..., object]", original))
    return undefined


def _own_functions(module: types.ModuleType) -> list[str]:
    """Return names of plain functions defined in *module* itself."""
    return [
        name
        for name, value in vars(module).items()
        if inspect.isfunction(value)
        and value.__module__ == module.__name__
        and not name.startswith("__")
    ]


class ModulePatcher:
    """Intercept module-level functions by replacing module attributes.

    Every function named in the plan forwards to the session. Every other
    function defined in an intercepted module raises
    :class:`~mod_mox.errors.UndefinedFunctionError`, so a blacklisted module
    (one without expected functions) rejects all calls. Only attribute lookups
    through the module object are affected; names imported elsewhere with
    ``from module import func`` keep pointing at the original. Forwarders
    accept positional arguments only; keyword arguments raise ``TypeError``.
    """

    def __init__(self) -> None:
        self._patched: dict[str, _PatchedModule] = {}

    @property
    def installed(self) -> list[str]:
        """Return the names of the currently patched modules."""
        return list(self._patched)

    def install(self, session: Deliverer, plan: InterceptionPlan) -> None:
        """Patch every module in *plan*; roll back on failure."""
        try:
            for name in plan.modules:
                self._patch(session, name, plan.functions_for(name))
        except BaseException:
            self.uninstall(list(self._patched))
            raise

    def _patch(self, session: Deliverer, name: str, expected: frozenset[str]) -> None:
        if name in self._patched:
            msg = f"Module {name!r} is already patched"
            raise RuntimeError(msg)
        module, created = _load_or_create(name)
        record = _PatchedModule(module=module, created=created)
        self._patched[name] = record
        for function in _own_functions(module):
            if function in expected:
                continue
            original = getattr(module, function)
            record.originals[function] = original
            setattr(module, function, _make_undefined(name, function, original))
        for function in sorted(expected):
            original = vars(module).get(function, _MISSING)
            record.originals[function] = original
            forwarder = _make_forwarder(session, name, function, original)
            setattr(module, function, forwarder)
        logger.debug(
            "Intercepting %s (forwarding: %s)", name, ", ".join(sorted(expected)) or "-"
        )

    def uninstall(self, modules: t.Iterable[str]) -> None:
        """Restore the attributes of *modules* saved by :meth:`install`."""
        for name in modules:
            record = self._patched.pop(name, None)
            if record is None:
                continue
            for function, original in record.originals.items():
                if original is _MISSING:
                    if hasattr(record.module, function):
                        delattr(record.module, function)
                else:
                    setattr(record.module, function, original)
            if record.created and sys.modules.get(name) is record.module:
                del sys.modules[name]
            logger.debug("Restored %s", name)


__all__ = [
    "MODULE_CLAIMS",
    "Deliverer",
    "InterceptionLayer",
    "InterceptionPlan",
    "ModuleClaims",
    "ModulePatcher",
]
