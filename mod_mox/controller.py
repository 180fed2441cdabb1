"""ModMox session: the programming, replay and verify lifecycle."""

from __future__ import annotations

import concurrent.futures
import contextlib
import enum
import logging
import threading
import types  # noqa: TC003
import typing as t

from . import _validators
from .config import resolve_await_timeout
from .errors import (
    AwaitTimeoutError,
    InvalidHandleError,
    LifecycleError,
    ModMoxError,
    ModuleAlreadyMockedError,
    SessionEndedError,
)
from .expectations import OK_ANSWER, Expectation, Handle
from .interception import MODULE_CLAIMS, ModulePatcher
from .listeners import ListenerRegistry
from .models import CallRecord, Invocation, StrictLogEntry
from .reporting import (
    argument_mismatch_error,
    unexpected_invocation_error,
    unfulfilled_expectation_error,
)
from .store import ExpectationStore

if t.TYPE_CHECKING:
    from concurrent.futures import Future

    from .expectations import Answer
    from .interception import InterceptionLayer, ModuleClaims
    from .models import AwaitResult

logger = logging.getLogger(__name__)

R = t.TypeVar("R")


class Phase(enum.StrEnum):
    """Lifecycle phases for :class:`ModMox`."""

    PROGRAMMING = "PROGRAMMING"
    REPLAYING = "REPLAYING"
    NO_EXPECTATIONS = "NO_EXPECTATIONS"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"

    @property
    def is_replay(self) -> bool:
        """Return ``True`` while intercepted calls are being resolved."""
        return self in (Phase.REPLAYING, Phase.NO_EXPECTATIONS)

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` once the session has ended."""
        return self in (Phase.VERIFIED, Phase.FAILED)


FailureHook = t.Callable[[ModMoxError], None]


class ModMox:
    """Expectation engine verifying calls to mocked module functions.

    A session starts in :attr:`Phase.PROGRAMMING`, where :meth:`strict`,
    :meth:`stub` and :meth:`nothing` describe the expected calls. :meth:`replay`
    installs interception and from then on every intercepted call is resolved
    against the head of the strict queue, then against the stubs. The first
    call that fits neither ends the session in :attr:`Phase.FAILED`.
    :meth:`verify` or :meth:`await_expectations` finish the session.

    All state is guarded by one lock, so calls arriving from several threads
    are resolved one at a time in the order they acquire it.
    """

    def __init__(
        self,
        *,
        interceptor: InterceptionLayer | None = None,
        await_timeout: float | None = None,
        verify_on_exit: bool = True,
        on_failure: FailureHook | None = None,
        claims: ModuleClaims | None = None,
    ) -> None:
        """Create a new session in the programming phase.

        Parameters
        ----------
        interceptor:
            Interception layer redirecting real calls into :meth:`invoke`.
            Defaults to a fresh :class:`~mod_mox.interception.ModulePatcher`.
        await_timeout:
            Default timeout in seconds for :meth:`await_invocation` and
            :meth:`await_expectations`. When ``None`` the value of
            ``MODMOX_AWAIT_TIMEOUT`` is used, falling back to five seconds.
        verify_on_exit:
            When ``True`` (the default), leaving a ``with`` block calls
            :meth:`verify` for sessions that were replayed.
        on_failure:
            Called once with the error when the session fails. When omitted
            the failure is logged.
        claims:
            Registry of mocked modules; defaults to the process-wide one.
        """
        self.interceptor: InterceptionLayer = (
            interceptor if interceptor is not None else ModulePatcher()
        )
        self.await_timeout = resolve_await_timeout(await_timeout)
        self._verify_on_exit = verify_on_exit
        self._on_failure = on_failure
        self._claims = claims if claims is not None else MODULE_CLAIMS
        self._owner = threading.current_thread()
        self._lock = threading.Lock()
        self._holder: int | None = None
        self._phase = Phase.PROGRAMMING
        self._store = ExpectationStore()
        self._registry = ListenerRegistry()
        self._installed: list[str] = []
        self._failure: ModMoxError | None = None

    def __repr__(self) -> str:
        """Return a debug representation."""
        return f"<ModMox phase={self._phase.value} owner={self._owner.name!r}>"

    # ------------------------------------------------------------------
    # Lifecycle state
    # ------------------------------------------------------------------
    @property
    def phase(self) -> Phase:
        """Return the current lifecycle phase."""
        return self._phase

    @property
    def failure(self) -> ModMoxError | None:
        """Return the error that ended the session, if it failed."""
        return self._failure

    @property
    def owner(self) -> threading.Thread:
        """Return the thread that created the session."""
        return self._owner

    # ------------------------------------------------------------------
    # Context manager protocol
    # ------------------------------------------------------------------
    def __enter__(self) -> ModMox:
        """Enter the context; the session is used as-is."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        """Exit the context, optionally verifying, and always end the session."""
        try:
            self._handle_auto_verify(exc_type)
        finally:
            self.close()

    def _handle_auto_verify(self, exc_type: type[BaseException] | None) -> None:
        """Invoke :meth:`verify` when leaving a replayed session."""
        phase = self._phase
        if not self._verify_on_exit or not (phase.is_replay or phase is Phase.FAILED):
            return
        try:
            self.verify()
        except ModMoxError:
            if exc_type is None:
                raise
            logger.debug("Verification failed while another exception propagates")

    # ------------------------------------------------------------------
    # Programming phase
    # ------------------------------------------------------------------
    def strict(
        self,
        module: str | types.ModuleType,
        function: str,
        args: t.Sequence[object],
        answer: Answer = OK_ANSWER,
    ) -> Handle:
        """Expect ``module.function(*args)`` as the next call in order.

        Each element of *args* is a literal compared with ``==``, a predicate
        called with the actual argument, or :data:`~mod_mox.comparators.CALLER`.
        *answer* is :class:`~mod_mox.expectations.Return` or
        :class:`~mod_mox.expectations.Function`; by default the call returns
        ``"ok"``. The returned handle can be passed to :meth:`await_invocation`.
        """
        expectation = self._build(module, function, args, answer, Handle.allocate())
        with self._guard():
            self._require_phase(Phase.PROGRAMMING, "strict")
            self._store.add_strict(expectation)
        logger.debug("Programmed strict %s", expectation.describe())
        return t.cast("Handle", expectation.handle)

    def stub(
        self,
        module: str | types.ModuleType,
        function: str,
        args: t.Sequence[object],
        answer: Answer = OK_ANSWER,
    ) -> None:
        """Allow ``module.function(*args)`` any number of times, in any order."""
        expectation = self._build(module, function, args, answer, None)
        with self._guard():
            self._require_phase(Phase.PROGRAMMING, "stub")
            self._store.add_stub(expectation)
        logger.debug("Programmed stub %s", expectation.describe())

    def nothing(self, module: str | types.ModuleType) -> None:
        """Forbid every call to functions of *module*."""
        name = _validators.module_name(module)
        with self._guard():
            self._require_phase(Phase.PROGRAMMING, "nothing")
            self._store.add_blacklisted(name)
        logger.debug("Blacklisted module %s", name)

    def replay(self) -> None:
        """Install interception and start resolving calls.

        Raises
        ------
        ModuleAlreadyMockedError
            When another live session already mocks one of the modules. The
            session is failed and nothing is installed.
        """
        with self._guard():
            self._require_phase(Phase.PROGRAMMING, "replay")
            failure, install_error = self._install()
        if failure is not None:
            self._report_failure(failure)
            raise install_error if install_error is not None else failure

    @staticmethod
    def _build(
        module: str | types.ModuleType,
        function: str,
        args: t.Sequence[object],
        answer: Answer,
        handle: Handle | None,
    ) -> Expectation:
        name = _validators.module_name(module)
        _validators.validate_function_name(function)
        specs = _validators.argument_specs(args)
        _validators.validate_answer(answer)
        return Expectation(name, function, specs, answer, handle)

    def _install(self) -> tuple[ModMoxError | None, BaseException | None]:
        """Claim and patch the planned modules.

        Returns the session failure, if any, and the interceptor's own error
        when patching raised.
        """
        plan = self._store.plan()
        try:
            self._claims.claim(self, plan.modules)
        except ModuleAlreadyMockedError as err:
            self._end(Phase.FAILED, err)
            return err, None
        try:
            self.interceptor.install(self, plan)
        except BaseException as err:  # noqa: BLE001 - re-raised by replay()
            failure = SessionEndedError(f"replay() failed: {err!r}")
            self._end(Phase.FAILED, failure)
            return failure, err
        self._installed = plan.modules
        drained = self._store.is_drained
        self._phase = Phase.NO_EXPECTATIONS if drained else Phase.REPLAYING
        logger.debug("Entered %s (modules: %s)", self._phase, ", ".join(plan.modules))
        return None, None

    # ------------------------------------------------------------------
    # Replay phase
    # ------------------------------------------------------------------
    def deliver(
        self,
        module: str | types.ModuleType,
        function: str,
        args: t.Sequence[object],
        caller: threading.Thread | None = None,
    ) -> Answer:
        """Resolve an intercepted call and return the matching answer.

        Raises
        ------
        ArgumentMismatchError
            The strict head was called with a non-matching argument.
        UnexpectedInvocationError
            Neither the strict head nor any stub accepts the call.

        Both end the session in :attr:`Phase.FAILED`.

        A predicate or argument ``repr`` that calls back into the session gets
        :class:`~mod_mox.errors.LifecycleError` instead of blocking, and the
        outer call propagates it without changing the phase.
        """
        invocation = Invocation(
            module=_validators.module_name(module),
            function=function,
            args=tuple(args),
            caller=caller if caller is not None else threading.current_thread(),
        )
        with self._guard():
            answer, failure = self._resolve(invocation)
        if failure is not None:
            self._report_failure(failure)
            raise failure
        return t.cast("Answer", answer)

    def invoke(self, module: str, function: str, *args: object) -> object:
        """Deliver a call from the current thread and evaluate the answer here."""
        answer = self.deliver(module, function, args)
        return answer.respond(list(args))

    def _resolve(
        self, invocation: Invocation
    ) -> tuple[Answer | None, ModMoxError | None]:
        phase = self._phase
        if phase is Phase.PROGRAMMING:
            msg = f"{invocation.describe()} delivered before replay()"
            raise LifecycleError(msg)
        if phase.is_terminal:
            raise SessionEndedError

        head = self._store.head
        if phase is Phase.REPLAYING and head is not None and head.targets(invocation):
            mismatch = head.explain_mismatch(invocation)
            if mismatch is None:
                return self._consume(invocation), None
            error = argument_mismatch_error(head, invocation, mismatch)
            self._end(Phase.FAILED, error)
            return None, error

        stub = self._store.find_stub(invocation)
        if stub is not None:
            self._log_call(invocation, stub.answer)
            logger.debug("Stub answered %s", invocation.describe())
            return stub.answer, None

        expected = head if phase is Phase.REPLAYING else None
        error = unexpected_invocation_error(invocation, expected)
        self._end(Phase.FAILED, error)
        return None, error

    def _consume(self, invocation: Invocation) -> Answer:
        expectation = self._store.pop_head()
        handle = t.cast("Handle", expectation.handle)
        self._registry.record_strict(
            StrictLogEntry(handle, invocation.caller, invocation.args)
        )
        self._log_call(invocation, expectation.answer)
        logger.debug("Strict %r consumed by %s", handle, invocation.describe())
        if self._store.is_drained:
            if self._registry.complete_all_waiter():
                self._end(Phase.VERIFIED, None)
            else:
                self._phase = Phase.NO_EXPECTATIONS
        return expectation.answer

    def _log_call(self, invocation: Invocation, answer: Answer) -> None:
        self._registry.record_call(
            CallRecord(invocation.module, invocation.function, invocation.args, answer)
        )

    # ------------------------------------------------------------------
    # Awaiting and inspection
    # ------------------------------------------------------------------
    def await_invocation(
        self, handle: Handle, timeout: float | None = None
    ) -> AwaitResult:
        """Block until the strict expectation *handle* has been called.

        Returns immediately when the call already happened. Unknown handles
        raise :class:`~mod_mox.errors.InvalidHandleError` in every phase.
        """
        limit = self._timeout_limit(timeout)
        with self._guard():
            entry = self._registry.lookup(handle)
            if entry is not None:
                return entry.result()
            if not self._store.is_pending(handle):
                raise InvalidHandleError(handle)
            if self._failure is not None:
                raise self._failure
            future = self._registry.add_listener(handle)
        return self._wait(
            future,
            limit,
            withdraw=lambda: self._registry.withdraw_listener(handle, future),
            description=repr(handle),
        )

    def await_expectations(self, timeout: float | None = None) -> None:
        """Block until every strict expectation was called, then end the session.

        Only one caller may wait at a time; a second concurrent call raises
        :class:`~mod_mox.errors.LifecycleError`.
        """
        limit = self._timeout_limit(timeout)
        with self._guard():
            phase = self._phase
            if phase is Phase.VERIFIED:
                return
            if self._failure is not None:
                raise self._failure
            self._require_replay("await_expectations")
            if phase is Phase.NO_EXPECTATIONS:
                self._end(Phase.VERIFIED, None)
                return
            future = self._registry.set_all_waiter()
        self._wait(
            future,
            limit,
            withdraw=lambda: self._registry.withdraw_all_waiter(future),
            description="all strict expectations",
        )

    def verify(self) -> None:
        """Finish the session, failing if strict expectations remain.

        Raises
        ------
        UnfulfilledExpectationError
            Listing the unconsumed strict expectations in queue order.
        ModMoxError
            The recorded failure, if the session already failed.
        """
        with self._guard():
            if self._failure is not None:
                raise self._failure
            self._require_replay("verify")
            if self._store.is_drained:
                self._end(Phase.VERIFIED, None)
                return
            error = unfulfilled_expectation_error(self._store.pending())
            self._end(Phase.FAILED, error)
        self._report_failure(error)
        raise error

    def call_log(self) -> list[CallRecord]:
        """Return every resolved invocation in chronological order."""
        with self._guard():
            return self._registry.call_log()

    def close(self) -> None:
        """End the session without verifying it; a no-op once ended.

        Interception is removed and pending waiters are released with
        :class:`~mod_mox.errors.SessionEndedError`.
        """
        with self._guard():
            if self._phase.is_terminal:
                return
            self._end(
                Phase.FAILED, SessionEndedError("Session closed before verification")
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @contextlib.contextmanager
    def _guard(self) -> t.Iterator[None]:
        """Hold the session lock, refusing re-entry from the holding thread.

        Predicates and argument reprs run under the lock, so a matcher that
        calls back into the session would otherwise block forever.
        """
        ident = threading.get_ident()
        if self._holder == ident:
            msg = "re-entrant call into the session while matching arguments"
            raise LifecycleError(msg)
        with self._lock:
            self._holder = ident
            try:
                yield
            finally:
                self._holder = None

    def _wait(
        self,
        future: Future[R],
        limit: float,
        *,
        withdraw: t.Callable[[], None],
        description: str,
    ) -> R:
        try:
            return future.result(timeout=limit)
        except concurrent.futures.TimeoutError:
            with self._guard():
                if not future.done():
                    withdraw()
            if future.done() and not future.cancelled():
                return future.result()
        msg = f"Timed out after {limit}s waiting for {description}"
        raise AwaitTimeoutError(msg)

    def _timeout_limit(self, timeout: float | None) -> float:
        if timeout is None:
            return self.await_timeout
        _validators.validate_positive_finite_timeout(timeout)
        return timeout

    def _require_phase(self, expected: Phase, action: str) -> None:
        """Ensure we're in ``expected`` phase before executing ``action``."""
        if self._phase is expected:
            return
        if self._phase.is_terminal:
            raise SessionEndedError
        msg = (
            f"Cannot call {action}(): not in '{expected.name.lower()}' phase "
            f"(current phase: {self._phase.name.lower()})"
        )
        raise LifecycleError(msg)

    def _require_replay(self, action: str) -> None:
        """Ensure replay() was called and the session is still running."""
        if self._phase.is_replay:
            return
        if self._phase.is_terminal:
            raise SessionEndedError
        msg = (
            f"Cannot call {action}(): replay() has not been called "
            f"(current phase: {self._phase.name.lower()})"
        )
        raise LifecycleError(msg)

    def _end(self, phase: Phase, failure: ModMoxError | None) -> None:
        """Move to a terminal *phase*, release waiters and remove interception."""
        self._phase = phase
        self._failure = failure
        self._registry.release(failure if failure is not None else SessionEndedError())
        modules, self._installed = self._installed, []
        if modules:
            try:
                self.interceptor.uninstall(modules)
            except Exception:
                logger.exception("Failed to remove interception for %s", modules)
        self._claims.release(self)
        logger.debug("Session ended in %s", phase)

    def _report_failure(self, error: ModMoxError) -> None:
        """Hand *error* to the failure hook, or log it."""
        if self._on_failure is None:
            logger.error(
                "Mock session owned by %s failed: %s", self._owner.name, error
            )
            return
        try:
            self._on_failure(error)
        except Exception:
            logger.exception("on_failure hook raised")


__all__ = ["ModMox", "Phase"]
