"""Step definitions for ModMox behavioural tests."""
# pyright: reportMissingImports=false, reportUnknownMemberType=false

from __future__ import annotations

import importlib
import threading
import typing as t

from behave import given, then, when  # type: ignore[attr-defined]

from mod_mox import ANY, ModMox, Return, errors

if t.TYPE_CHECKING:
    from mod_mox.expectations import Handle


class BehaveContext(t.Protocol):
    """Behave step context with attributes used in tests."""

    mox: ModMox
    handles: list[Handle]
    result: object
    error: BaseException | None
    caller: threading.Thread | None

    def add_cleanup(self, func: t.Callable[[], object]) -> None: ...


def _split(target: str) -> tuple[str, str]:
    module, _, function = target.rpartition(".")
    return module, function


def _args(text: str) -> list[object]:
    items = [item.strip() for item in text.split(",") if item.strip()]
    return [int(item) if item.lstrip("-").isdigit() else item for item in items]


def _call(target: str, args: list[object]) -> tuple[object, Exception | None]:
    module_name, function = _split(target)
    try:
        module = importlib.import_module(module_name)
        return getattr(module, function)(*args), None
    except Exception as exc:  # noqa: BLE001 - asserted by later steps
        return None, exc


def _error_type(name: str) -> type[errors.ModMoxError]:
    error_type = getattr(errors, name)
    assert issubclass(error_type, errors.ModMoxError)  # noqa: S101
    return error_type


@given("a ModMox session")
def step_create_session(context: BehaveContext) -> None:
    """Create a :class:`ModMox` session for the scenario."""
    context.mox = ModMox(await_timeout=2.0)
    context.handles = []
    context.add_cleanup(context.mox.close)


@given('a strict expectation for "{target}" with arguments "{args}"')
def step_strict(context: BehaveContext, target: str, args: str) -> None:
    """Program a strict expectation answering ``ok``."""
    module, function = _split(target)
    context.handles.append(context.mox.strict(module, function, _args(args)))


@given(
    'a strict expectation returning "{value}" for "{target}" with arguments "{args}"'
)
def step_strict_returning(
    context: BehaveContext, value: str, target: str, args: str
) -> None:
    """Program a strict expectation with a fixed return value."""
    module, function = _split(target)
    handle = context.mox.strict(module, function, _args(args), Return(value))
    context.handles.append(handle)


@given('a stub returning "{value}" for "{target}" accepting any argument')
def step_stub(context: BehaveContext, value: str, target: str) -> None:
    """Program a one-argument stub."""
    module, function = _split(target)
    context.mox.stub(module, function, [ANY], Return(value))


@when("the session is replayed")
def step_replay(context: BehaveContext) -> None:
    """Install interception."""
    context.mox.replay()


@when('"{target}" is called with "{args}"')
def step_call(context: BehaveContext, target: str, args: str) -> None:
    """Call the intercepted function from the step thread."""
    context.caller = threading.current_thread()
    context.result, context.error = _call(target, _args(args))


@when('"{target}" is called with "{args}" from a worker thread')
def step_call_from_worker(context: BehaveContext, target: str, args: str) -> None:
    """Call the intercepted function from another thread."""
    outcome: list[tuple[object, Exception | None]] = []
    worker = threading.Thread(
        target=lambda: outcome.append(_call(target, _args(args))),
        name="behave-worker",
    )
    worker.start()
    worker.join(5.0)
    assert outcome, "worker did not finish"  # noqa: S101
    context.caller = worker
    context.result, context.error = outcome[0]


@then('the call returns "{value}"')
def step_check_result(context: BehaveContext, value: str) -> None:
    """The most recent call returned *value*."""
    assert context.error is None, context.error  # noqa: S101
    assert context.result == value  # noqa: S101


@then('the call fails with "{error}"')
def step_check_error(context: BehaveContext, error: str) -> None:
    """The most recent call raised *error*."""
    assert isinstance(context.error, _error_type(error))  # noqa: S101


@then('the session phase is "{phase}"')
def step_check_phase(context: BehaveContext, phase: str) -> None:
    """The session is in *phase*."""
    assert context.mox.phase.value == phase  # noqa: S101


@then("the call log has {count:d} entries")
def step_check_call_log(context: BehaveContext, count: int) -> None:
    """Exactly *count* calls were resolved."""
    assert len(context.mox.call_log()) == count  # noqa: S101


@then("verification succeeds")
def step_verify(context: BehaveContext) -> None:
    """verify() passes."""
    context.mox.verify()
    assert context.mox.phase.value == "VERIFIED"  # noqa: S101


@then('verification fails with "{error}"')
def step_verify_fails(context: BehaveContext, error: str) -> None:
    """verify() raises *error*."""
    try:
        context.mox.verify()
    except _error_type(error):
        return
    msg = f"verify() did not raise {error}"
    raise AssertionError(msg)


@then("awaiting the strict expectation reports the worker thread")
def step_await(context: BehaveContext) -> None:
    """The awaited handle reports the thread that made the call."""
    result = context.mox.await_invocation(context.handles[-1])
    assert result.success  # noqa: S101
    assert result.caller is context.caller  # noqa: S101
    assert result.caller.name == "behave-worker"  # noqa: S101
