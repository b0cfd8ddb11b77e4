from contextlib import contextmanager
from typing import Any, Iterator

from selenium.common.exceptions import (
    JavascriptException,
    StaleElementReferenceException,
    WebDriverException,
)

from .errors import PreconditionViolation
from .field_handles import FieldHandle
from .guards import GuardRegistry
from .instrumentation import Cat
from .retry import Converged, poll_until
from .session import FillSession
from .types import (
    ConvergenceResult,
    EVENT_SEQUENCES,
    EventKind,
    EventOrigin,
    FieldKind,
    FieldState,
    SyntheticEvent,
)
from . import scripts
from .. import config

QUIET_FLAG = "quiet"

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def normalize_target(kind: FieldKind, value: Any) -> Any:
    """
    Bring a caller value into the shape the field reports back.
    Boolean fields compare as bool, everything else as str.
    """
    if kind == FieldKind.BOOLEAN:
        if isinstance(value, bool):
            return value
        s = str(value).strip().lower()
        if s in _TRUE_STRINGS:
            return True
        if s in _FALSE_STRINGS:
            return False
        raise PreconditionViolation(f"Not a boolean value: {value!r}")
    if value is None:
        raise PreconditionViolation("Target value is None")
    return str(value)


class StateInjectionEngine:
    """
    Commit values into framework-controlled fields.

    One attempt = native write -> shadow spoof -> ordered synthetic events ->
    settle -> re-read. Attempts repeat with a fixed backoff until the field
    reports the target or the budget runs out. Non-convergence is returned,
    never raised.
    """

    def __init__(self, session: FillSession, guards: GuardRegistry):
        self.session = session
        self.guards = guards

    def _inject_ctx(self, field: FieldHandle, *, attempt: int | None = None, **extra: Any) -> dict[str, Any]:
        ctx: dict[str, Any] = {"fld": field.label, "kind": field.kind.value}
        if attempt is not None:
            ctx["a"] = attempt
        ctx.update(extra)
        return ctx

    # -------- element seams --------
    def run_on(self, field: FieldHandle, script: str, *args: Any) -> Any:
        try:
            return self.session.run_script(script, field.element, *args)
        except StaleElementReferenceException as e:
            raise PreconditionViolation(f"Field {field.label!r} is no longer attached") from e

    def read_state(self, field: FieldHandle) -> FieldState:
        state = self.run_on(field, scripts.READ_STATE) or {}
        if not state.get("connected", False):
            raise PreconditionViolation(f"Field {field.label!r} is detached from the document")
        return {
            "value": state.get("value"),
            "checked": bool(state.get("checked", False)),
            "attr": state.get("attr"),
            "connected": True,
        }

    def observed_value(self, field: FieldHandle, state: FieldState | None = None) -> Any:
        state = state or self.read_state(field)
        if field.kind == FieldKind.BOOLEAN:
            return state["checked"]
        return state["value"] if state["value"] is not None else ""

    def write_native(self, field: FieldHandle, value: Any) -> str:
        """Write below the framework's interception layer; returns 'native' or 'assign'."""
        prop = "checked" if field.kind == FieldKind.BOOLEAN else "value"
        method = self.run_on(field, scripts.SET_NATIVE_VALUE, value, prop)
        self.session.emit_trace(Cat.INJECT, f"write via {method}", **self._inject_ctx(field))
        return method

    def spoof_shadow(self, field: FieldHandle, previous: Any) -> bool:
        """Best effort: a field without a tracker is not an error."""
        if isinstance(previous, bool):
            previous = "true" if previous else "false"
        try:
            return bool(self.run_on(field, scripts.SPOOF_TRACKER, "" if previous is None else str(previous)))
        except JavascriptException as e:
            self.session.emit_diag(Cat.INJECT, f"Shadow spoof failed: {e}", **self._inject_ctx(field))
            return False

    def fire_event(self, field: FieldHandle, event: SyntheticEvent) -> None:
        self.run_on(
            field,
            scripts.DISPATCH_EVENT,
            event.kind.value,
            event.origin.value,
            event.bubbles,
            event.cancelable,
        )

    def fire_sequence(
        self,
        field: FieldHandle,
        kinds: tuple[EventKind, ...],
        *,
        origin: EventOrigin,
        yield_s: float,
    ) -> None:
        for kind in kinds:
            self.fire_event(field, SyntheticEvent(kind=kind, origin=origin))
            self.session.sleep(yield_s)

    def _page_quiet(self, script: str, *args: Any) -> None:
        try:
            self.session.run_script(script, *args)
        except WebDriverException as e:
            self.session.emit_diag(Cat.GUARD, f"Page quiet flag update failed: {e}")

    @contextmanager
    def quiet_scope(self, quiet: bool) -> Iterator[None]:
        """
        Raise the quiet flag (Python side and page side) for the body plus
        QUIET_COOLDOWN_S. Released on every exit path.
        """
        if not quiet:
            yield
            return
        with self.guards.suppressing(QUIET_FLAG, cooldown_s=config.QUIET_COOLDOWN_S):
            self._page_quiet(scripts.ENTER_QUIET)
            try:
                yield
            finally:
                self._page_quiet(scripts.LEAVE_QUIET, int(config.QUIET_COOLDOWN_S * 1000))

    # -------- protocol --------
    def _write_and_dispatch(self, field: FieldHandle, target: Any, origin: EventOrigin) -> None:
        previous = self.observed_value(field)
        self.write_native(field, target)
        # shadow must hold the pre-change value before the first event fires
        self.spoof_shadow(field, previous)
        self.session.sleep(config.INJECT_EVENT_YIELD_S)
        self.fire_sequence(field, EVENT_SEQUENCES[field.kind], origin=origin, yield_s=config.INJECT_EVENT_YIELD_S)

    def inject(
        self,
        field: FieldHandle | None,
        target_value: Any,
        *,
        max_attempts: int | None = None,
        quiet: bool = False,
    ) -> ConvergenceResult:
        if field is None:
            raise PreconditionViolation("No field handle to inject into")
        target = normalize_target(field.kind, target_value)
        attempts = max_attempts if max_attempts is not None else config.INJECT_MAX_ATTEMPTS
        if attempts < 1:
            raise PreconditionViolation(f"max_attempts must be >= 1 (got {attempts})")

        self.read_state(field)  # attached check before any mutation
        origin = EventOrigin.PROGRAMMATIC if quiet else EventOrigin.USER
        attempt_no = 0

        def _one_attempt() -> Any:
            nonlocal attempt_no
            attempt_no += 1
            ctx = self._inject_ctx(field, attempt=attempt_no, quiet=quiet or None)
            self.session.counters.inc("inject.attempts")
            self.session.emit_diag(Cat.INJECT, f"Injecting {target!r}", **ctx)

            with self.quiet_scope(quiet):
                self._write_and_dispatch(field, target, origin)
                self.session.sleep(config.INJECT_SETTLE_S)
                return self.observed_value(field)

        outcome = poll_until(
            _one_attempt,
            accept=lambda observed: observed == target,
            attempts=attempts,
            backoff_s=config.INJECT_BACKOFF_S,
            sleep=self.session.sleep,
        )

        ctx = self._inject_ctx(field, attempt=outcome.attempts)
        if isinstance(outcome, Converged):
            self.session.counters.inc("inject.committed")
            self.session.emit_diag(Cat.INJECT, f"Committed {target!r}", **ctx)
            return ConvergenceResult(committed=True, observed_value=outcome.value, attempts_used=outcome.attempts)

        self.session.counters.inc("inject.not_converged")
        self.session.emit_signal(
            Cat.INJECT,
            f"Field did not converge to {target!r} (observed {outcome.last!r})",
            level="warning",
            **ctx,
        )
        return ConvergenceResult(committed=False, observed_value=outcome.last, attempts_used=outcome.attempts)
