"""Pytest plugin providing the ``mod_mox`` fixture."""

from __future__ import annotations

import logging
import typing as t

import pytest

from .controller import ModMox, Phase

logger = logging.getLogger(__name__)


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register command-line and ini options for the plugin."""
    group = parser.getgroup("mod_mox")
    group.addoption(
        "--mod-mox-auto-verify",
        action="store_true",
        dest="mod_mox_auto_verify",
        default=None,
        help=(
            "Call verify() on the mod_mox fixture during teardown. "
            "Overrides the pytest.ini setting."
        ),
    )
    group.addoption(
        "--no-mod-mox-auto-verify",
        action="store_false",
        dest="mod_mox_auto_verify",
        default=None,
        help=(
            "Do not verify the mod_mox fixture during teardown. "
            "Overrides the pytest.ini setting."
        ),
    )
    parser.addini(
        "mod_mox_auto_verify",
        "Automatically call verify() on replayed mod_mox sessions at teardown.",
        type="bool",
        default=True,
    )
    parser.addini(
        "mod_mox_await_timeout",
        "Default timeout in seconds for await_invocation()/await_expectations().",
        default="",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register plugin-specific markers."""
    config.addinivalue_line(
        "markers",
        (
            "mod_mox(auto_verify: bool = True): override automatic verify() "
            "behaviour for a single test."
        ),
    )


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[t.Any]
) -> t.Generator[None, None, None]:
    """Attach each phase report to the item so teardown can see the outcome."""
    del call
    outcome = yield
    rep = outcome.get_result()
    setattr(item, f"rep_{rep.when}", rep)


def _auto_verify_enabled(request: pytest.FixtureRequest) -> bool:
    """Return whether the fixture should verify during teardown."""
    # Priority order: marker > CLI option > INI setting
    marker = request.node.get_closest_marker("mod_mox")
    if marker is not None and "auto_verify" in marker.kwargs:
        return bool(marker.kwargs["auto_verify"])

    config = request.config
    cli_value = config.getoption("mod_mox_auto_verify")
    if cli_value is not None:
        return bool(cli_value)

    return bool(config.getini("mod_mox_auto_verify"))


def _configured_timeout(config: pytest.Config) -> float | None:
    """Return the ini await timeout, or ``None`` to use the session default."""
    raw = str(config.getini("mod_mox_await_timeout")).strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError as exc:
        msg = f"mod_mox_await_timeout must be a number, got {raw!r}"
        raise pytest.UsageError(msg) from exc


@pytest.fixture
def mod_mox(request: pytest.FixtureRequest) -> t.Generator[ModMox, None, None]:
    """Provide a :class:`ModMox` session that is cleaned up after the test."""
    mox = ModMox(
        verify_on_exit=False,
        await_timeout=_configured_timeout(request.config),
    )
    auto_verify = _auto_verify_enabled(request)
    try:
        yield mox
    finally:
        _teardown_mod_mox(request.node, mox, auto_verify=auto_verify)


def _teardown_mod_mox(item: pytest.Item, mox: ModMox, *, auto_verify: bool) -> None:
    """Verify *mox* if requested, and always end the session.

    A verification error fails the test unless the test body already failed,
    in which case the original failure is left to speak for itself.
    """
    should_verify = auto_verify and (
        mox.phase.is_replay or mox.phase is Phase.FAILED
    )
    verify_error: Exception | None = None
    if should_verify:
        try:
            mox.verify()
        except Exception as err:
            logger.exception("Error during mod_mox verification")
            if not _call_stage_failed(item):
                verify_error = err
    try:
        mox.close()
    except Exception:
        logger.exception("Error during mod_mox fixture cleanup")
        pytest.fail("mod_mox fixture cleanup failed")
    if verify_error is not None:
        pytest.fail(f"{type(verify_error).__name__}: {verify_error}")


def _call_stage_failed(item: pytest.Item) -> bool:
    """Return ``True`` when the test body has already failed."""
    rep_call = getattr(item, "rep_call", None)
    return bool(rep_call and rep_call.failed)
