"""Environment-driven defaults for mod_mox sessions."""

from __future__ import annotations

import logging
import os
import typing as t

from ._validators import validate_positive_finite_timeout

logger = logging.getLogger(__name__)

MODMOX_AWAIT_TIMEOUT_ENV: t.Final[str] = "MODMOX_AWAIT_TIMEOUT"
DEFAULT_AWAIT_TIMEOUT: t.Final[float] = 5.0


def resolve_await_timeout(timeout: float | None = None) -> float:
    """Return the await timeout to use for a session.

    An explicit *timeout* wins. Otherwise ``MODMOX_AWAIT_TIMEOUT`` is read from
    the environment; unparsable or out-of-range values are ignored with a
    warning and :data:`DEFAULT_AWAIT_TIMEOUT` is used.
    """
    if timeout is not None:
        validate_positive_finite_timeout(timeout)
        return timeout

    raw = os.environ.get(MODMOX_AWAIT_TIMEOUT_ENV)
    if raw is None:
        return DEFAULT_AWAIT_TIMEOUT
    try:
        value = float(raw)
        validate_positive_finite_timeout(value)
    except ValueError:
        logger.warning(
            "Ignoring invalid %s=%r; using %.1fs",
            MODMOX_AWAIT_TIMEOUT_ENV,
            raw,
            DEFAULT_AWAIT_TIMEOUT,
        )
        return DEFAULT_AWAIT_TIMEOUT
    return value
