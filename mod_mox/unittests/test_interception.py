"""Tests for :mod:`mod_mox.interception`."""

from __future__ import annotations

import sys
import threading
import typing as t

import pytest

from mod_mox import ANY, Function, ModMox, Phase, Return, interception
from mod_mox.errors import (
    ArgumentMismatchError,
    ModuleAlreadyMockedError,
    UndefinedFunctionError,
)
from mod_mox.interception import InterceptionPlan, ModuleClaims, ModulePatcher
from mod_mox.unittests import _targets
from mod_mox.unittests._helpers import start_thread

PLACEHOLDER = "mod_mox_placeholder_service"


class EchoSession:
    """Minimal deliverer echoing what it receives."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, tuple[object, ...]]] = []

    def invoke(self, module: str, function: str, *args: object) -> object:
        self.calls.append((module, function, args))
        return ("echo", function, args)


@pytest.fixture
def patcher() -> t.Generator[ModulePatcher, None, None]:
    """Provide a patcher that is always rolled back."""
    layer = ModulePatcher()
    yield layer
    layer.uninstall(layer.installed)


def test_plan_lists_every_module() -> None:
    """Blacklisted modules are part of the plan without functions."""
    plan = InterceptionPlan(
        functions={"b": frozenset({"f"}), "a": frozenset({"g"})},
        blacklist=frozenset({"c", "a"}),
    )

    assert plan.modules == ["a", "b", "c"]
    assert plan.functions_for("c") == frozenset()
    assert plan.functions_for("b") == frozenset({"f"})


def test_patcher_forwards_expected_functions(patcher: ModulePatcher) -> None:
    """Expected functions forward to the session with their arguments."""
    session = EchoSession()
    plan = InterceptionPlan(functions={_targets.__name__: frozenset({"add"})})

    patcher.install(session, plan)

    assert _targets.add(1, 2) == ("echo", "add", (1, 2))
    assert session.calls == [(_targets.__name__, "add", (1, 2))]
    assert _targets.add.__name__ == "add"
    assert patcher.installed == [_targets.__name__]


def test_forwarder_rejects_keyword_arguments(patcher: ModulePatcher) -> None:
    """Keyword arguments are refused before reaching the session."""
    session = EchoSession()
    plan = InterceptionPlan(functions={_targets.__name__: frozenset({"add"})})
    patcher.install(session, plan)

    with pytest.raises(TypeError, match="positional arguments only"):
        _targets.add(1, b=2)

    assert session.calls == []


def test_patcher_rejects_other_functions(patcher: ModulePatcher) -> None:
    """Functions of an intercepted module without expectations are undefined."""
    plan = InterceptionPlan(functions={_targets.__name__: frozenset({"add"})})
    patcher.install(EchoSession(), plan)

    with pytest.raises(UndefinedFunctionError) as excinfo:
        _targets.greet("bob")

    assert excinfo.value.function == "greet"
    assert excinfo.value.module == _targets.__name__
    assert isinstance(excinfo.value, AttributeError)
    assert _targets.CONSTANT == 42
    assert _targets.Greeter().greet() == "hi"


def test_patcher_restores_originals(patcher: ModulePatcher) -> None:
    """Uninstall puts back every replaced attribute."""
    originals = {name: getattr(_targets, name) for name in ("add", "greet", "shout")}
    patcher.install(
        EchoSession(),
        InterceptionPlan(functions={_targets.__name__: frozenset({"greet"})}),
    )

    patcher.uninstall([_targets.__name__])

    for name, original in originals.items():
        assert getattr(_targets, name) is original
    assert _targets.shout("ann") == "HELLO ANN"
    assert patcher.installed == []


def test_patcher_adds_and_removes_missing_functions(patcher: ModulePatcher) -> None:
    """Functions that do not exist yet are added only while installed."""
    plan = InterceptionPlan(functions={_targets.__name__: frozenset({"fetch"})})
    patcher.install(EchoSession(), plan)

    fetch = _targets.fetch  # type: ignore[attr-defined]
    assert fetch("k") == ("echo", "fetch", ("k",))

    patcher.uninstall([_targets.__name__])
    assert not hasattr(_targets, "fetch")


def test_patcher_creates_placeholder_modules(patcher: ModulePatcher) -> None:
    """Modules that cannot be imported are created for the session."""
    assert PLACEHOLDER not in sys.modules
    patcher.install(
        EchoSession(), InterceptionPlan(functions={PLACEHOLDER: frozenset({"lookup"})})
    )

    module = sys.modules[PLACEHOLDER]
    assert module.lookup(1) == ("echo", "lookup", (1,))

    patcher.uninstall([PLACEHOLDER])
    assert PLACEHOLDER not in sys.modules


def test_blacklisted_module_rejects_every_function(patcher: ModulePatcher) -> None:
    """A module without expected functions refuses all of them."""
    patcher.install(
        EchoSession(), InterceptionPlan(blacklist=frozenset({_targets.__name__}))
    )

    for name in ("add", "greet", "shout"):
        with pytest.raises(UndefinedFunctionError):
            getattr(_targets, name)()


def test_install_rolls_back_on_error(
    patcher: ModulePatcher, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A failure part way through leaves no module patched."""
    original_add = _targets.add
    real_load = interception._load_or_create

    def load(name: str) -> tuple[t.Any, bool]:
        if name == "zzz_broken":
            raise ImportError(name)
        return real_load(name)

    monkeypatch.setattr(interception, "_load_or_create", load)
    plan = InterceptionPlan(
        functions={_targets.__name__: frozenset({"add"}), "zzz_broken": frozenset()}
    )

    with pytest.raises(ImportError):
        patcher.install(EchoSession(), plan)

    assert _targets.add is original_add
    assert patcher.installed == []


def test_claims_are_all_or_nothing() -> None:
    """A rejected claim reserves none of the requested modules."""
    claims = ModuleClaims()
    first, second = object(), object()
    claims.claim(first, ["x"])

    with pytest.raises(ModuleAlreadyMockedError):
        claims.claim(second, ["y", "x"])

    assert claims.owner_of("y") is None
    assert claims.owner_of("x") is first
    claims.claim(first, ["x", "z"])
    assert sorted(claims.release(first)) == ["x", "z"]
    assert claims.owner_of("x") is None


def test_session_intercepts_real_calls() -> None:
    """A session with the default patcher answers calls made through the module."""
    with ModMox() as mox:
        mox.strict(_targets, "greet", ["bob"], Return("hi bob"))
        mox.stub(_targets, "add", [ANY, ANY], Function(lambda args: "added"))
        mox.replay()

        assert _targets.add(1, 2) == "added"
        assert _targets.greet("bob") == "hi bob"

    assert mox.phase is Phase.VERIFIED
    assert _targets.greet("bob") == "hello bob"
    assert _targets.add(1, 2) == 3


def test_session_failure_restores_module_at_once() -> None:
    """A fatal call removes interception before the error reaches the caller."""
    mox = ModMox()
    mox.strict(_targets, "greet", ["bob"])
    mox.replay()

    with pytest.raises(ArgumentMismatchError):
        _targets.greet("eve")

    assert mox.phase is Phase.FAILED
    assert _targets.greet("eve") == "hello eve"


def test_blacklisted_module_through_session() -> None:
    """nothing() makes every function of the module undefined."""
    mox = ModMox()
    mox.nothing(_targets)
    mox.replay()
    try:
        with pytest.raises(UndefinedFunctionError):
            _targets.add(1, 2)
        assert mox.phase is Phase.NO_EXPECTATIONS
    finally:
        mox.verify()

    assert _targets.add(1, 2) == 3


def test_answer_runs_in_thread_calling_the_module() -> None:
    """Function answers observe the thread that called the real function."""
    mox = ModMox()
    mox.strict(
        _targets, "add", [1, 2], Function(lambda args: threading.current_thread().name)
    )
    mox.replay()

    call = start_thread(_targets.add, 1, 2, name="adder").join()

    assert call.result == "adder"
    mox.verify()


def test_placeholder_module_through_session() -> None:
    """Modules that are not installed can still be mocked."""
    mox = ModMox()
    mox.stub(PLACEHOLDER, "lookup", [ANY], Return(7))
    mox.replay()

    import mod_mox_placeholder_service  # type: ignore[import-not-found]

    assert mod_mox_placeholder_service.lookup("key") == 7
    mox.verify()
    assert PLACEHOLDER not in sys.modules


def test_two_sessions_cannot_patch_the_same_module() -> None:
    """The second replay fails while the first session is live."""
    first = ModMox()
    first.stub(_targets, "add", [ANY, ANY])
    first.replay()
    second = ModMox()
    second.stub(_targets, "greet", [ANY])
    try:
        with pytest.raises(ModuleAlreadyMockedError):
            second.replay()
        assert _targets.add(1, 1) == "ok"
    finally:
        first.verify()
    assert _targets.greet("x") == "hello x"
