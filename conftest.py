"""Global test configuration and shared fixtures."""

from __future__ import annotations

import typing as t

import pytest

import mod_mox.interception

pytest_plugins = ("pytester", "mod_mox.pytest_plugin")


@pytest.fixture(autouse=True)
def reset_module_claims() -> t.Generator[None, None, None]:
    """Ensure no module stays claimed by a session from another test."""
    mod_mox.interception.MODULE_CLAIMS.reset()
    yield
    mod_mox.interception.MODULE_CLAIMS.reset()
