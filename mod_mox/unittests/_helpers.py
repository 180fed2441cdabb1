"""Shared helpers for the mod_mox unit tests."""

from __future__ import annotations

import dataclasses as dc
import threading
import time
import typing as t

if t.TYPE_CHECKING:  # pragma: no cover - typing only
    from mod_mox.interception import Deliverer, InterceptionPlan

JOIN_TIMEOUT: t.Final[float] = 5.0


class RecordingInterceptor:
    """Interception layer double capturing install/uninstall requests."""

    def __init__(self) -> None:
        self.installed: list[InterceptionPlan] = []
        self.uninstalled: list[list[str]] = []
        self.session: Deliverer | None = None

    def install(self, session: Deliverer, plan: InterceptionPlan) -> None:
        self.session = session
        self.installed.append(plan)

    def uninstall(self, modules: t.Iterable[str]) -> None:
        self.uninstalled.append(list(modules))

    @property
    def modules(self) -> list[str]:
        """Return the modules of the most recent install."""
        return self.installed[-1].modules if self.installed else []


@dc.dataclass(slots=True)
class ThreadCall:
    """Outcome of a callable executed in a helper thread."""

    thread: threading.Thread
    result: object = None
    error: BaseException | None = None

    def join(self, timeout: float = JOIN_TIMEOUT) -> ThreadCall:
        """Wait for the thread and fail loudly if it is still running."""
        self.thread.join(timeout)
        if self.thread.is_alive():
            msg = f"{self.thread.name} did not finish within {timeout}s"
            raise AssertionError(msg)
        return self

    @property
    def running(self) -> bool:
        """Return ``True`` while the thread has not finished."""
        return self.thread.is_alive()


def start_thread(
    func: t.Callable[..., object], *args: object, name: str = "worker"
) -> ThreadCall:
    """Run ``func(*args)`` in a daemon thread, capturing its outcome."""
    call: ThreadCall

    def target() -> None:
        try:
            call.result = func(*args)
        except BaseException as exc:  # noqa: BLE001 - reported to the test
            call.error = exc

    thread = threading.Thread(target=target, name=name, daemon=True)
    call = ThreadCall(thread)
    thread.start()
    return call


def wait_until(
    condition: t.Callable[[], bool], timeout: float = JOIN_TIMEOUT
) -> None:
    """Poll *condition* until it holds or *timeout* expires."""
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            msg = "condition not met before timeout"
            raise AssertionError(msg)
        time.sleep(0.005)
