import re
from datetime import date
from typing import Any

from selenium.common.exceptions import JavascriptException

from .errors import PreconditionViolation
from .field_handles import FieldHandle
from .injection import StateInjectionEngine
from .instrumentation import Cat
from .types import EventKind, EventOrigin, FieldKind
from . import scripts
from .. import config

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_iso_date(iso_date: Any) -> date:
    """Strict YYYY-MM-DD; anything else (including 2023-02-30) is a precondition violation."""
    if not isinstance(iso_date, str) or not ISO_DATE_RE.match(iso_date):
        raise PreconditionViolation(f"Not a YYYY-MM-DD date: {iso_date!r}")
    try:
        return date.fromisoformat(iso_date)
    except ValueError as e:
        raise PreconditionViolation(f"Not a calendar date: {iso_date!r}") from e


def format_display_date(d: date) -> str:
    return d.strftime(config.DATE_DISPLAY_FORMAT)


class DerivedFieldAdapter:
    """
    Commit ISO dates into framework date fields (structured value + rendered
    DD.MM.YYYY mirror).

    Never focuses, clicks or scrolls the field: the viewport stays put.
    """

    def __init__(self, engine: StateInjectionEngine):
        self.engine = engine
        self.session = engine.session

    def _date_ctx(self, field: FieldHandle, **extra: Any) -> dict[str, Any]:
        ctx: dict[str, Any] = {"fld": field.label, "kind": "date"}
        ctx.update(extra)
        return ctx

    def current_value(self, field: FieldHandle) -> str:
        return self.engine.read_state(field)["value"] or ""

    def inject_structured_date(self, field: FieldHandle | None, iso_date: str, *, quiet: bool = False) -> bool:
        try:
            return self._inject(field, iso_date, quiet=quiet)
        except PreconditionViolation as e:
            label = field.label if field is not None else "<missing>"
            self.session.emit_signal(
                Cat.DATE,
                f"Date injection rejected: {e}",
                level="warning",
                fld=label,
                kind="date",
            )
            return False

    def _inject(self, field: FieldHandle | None, iso_date: str, *, quiet: bool) -> bool:
        target = parse_iso_date(iso_date)
        if field is None:
            raise PreconditionViolation("No field handle to inject into")
        if field.kind == FieldKind.BOOLEAN:
            raise PreconditionViolation(f"Field {field.label!r} is boolean, not a date field")

        engine = self.engine
        sleep = self.session.sleep
        ctx = self._date_ctx(field, target=iso_date)

        # 1) idempotent short-circuit
        previous = self.current_value(field)
        if previous == iso_date:
            self.session.emit_diag(Cat.DATE, "Date already set; nothing to do.", **ctx)
            return True

        origin = EventOrigin.PROGRAMMATIC if quiet else EventOrigin.USER
        with engine.quiet_scope(quiet):
            self._write_date(field, target, previous, origin)

            # 6) display mirror; the framework may repaint it after its own pass
            display = format_display_date(target)
            mirrored = self._set_mirror(field, display)
            for delay in config.DATE_MIRROR_REAPPLY_DELAYS_S:
                sleep(delay)
                mirrored = self._set_mirror(field, display) or mirrored
            if not mirrored:
                self.session.emit_diag(Cat.DATE, "No display mirror found near field.", **ctx)

        # 7) verify
        state = engine.read_state(field)
        ok = self._matches(iso_date, state["value"], state["attr"])
        if ok:
            self.session.counters.inc("date.committed")
            self.session.emit_diag(Cat.DATE, "Date committed.", **ctx)
        else:
            self.session.counters.inc("date.not_converged")
            self.session.emit_signal(
                Cat.DATE,
                f"Date did not stick (value={state['value']!r}, attr={state['attr']!r})",
                level="warning",
                **ctx,
            )
        return ok

    def _write_date(self, field: FieldHandle, target: date, previous: str, origin: EventOrigin) -> None:
        engine = self.engine
        iso_date = target.isoformat()

        # 2) a static value attribute can shadow the live property
        engine.run_on(field, scripts.REMOVE_VALUE_ATTR)

        # 3+4) structured assignment at mid-day, then force the exact string on drift
        try:
            written = engine.run_on(
                field,
                scripts.SET_VALUE_AS_DATE,
                target.year,
                target.month,
                target.day,
                config.DATE_MIDDAY_HOUR,
            )
        except JavascriptException as e:
            self.session.emit_diag(Cat.DATE, f"valueAsDate unavailable: {e}", **self._date_ctx(field))
            written = None
        if written != iso_date:
            self.session.emit_diag(
                Cat.DATE,
                f"Structured write drifted to {written!r}; forcing string.",
                **self._date_ctx(field, target=iso_date),
            )
            engine.write_native(field, iso_date)

        # 5) attribute back, shadow spoof, events
        engine.run_on(field, scripts.SET_VALUE_ATTR, iso_date)
        engine.spoof_shadow(field, previous)
        engine.fire_sequence(
            field,
            (EventKind.INPUT, EventKind.CHANGE),
            origin=origin,
            yield_s=config.DATE_EVENT_YIELD_S,
        )
        engine.fire_sequence(field, (EventKind.BLUR,), origin=origin, yield_s=0)

    def _set_mirror(self, field: FieldHandle, text: str) -> bool:
        sels = config.SELECTORS["date"]
        return bool(self.engine.run_on(field, scripts.SET_MIRROR_TEXT, sels["mirror_container"], sels["mirror_text"], text))

    def _matches(self, iso_date: str, value: str | None, attr: str | None) -> bool:
        if value == iso_date or attr == iso_date:
            return True
        if config.DATE_LENIENT_MATCH:
            year = iso_date[:4]
            return any(year in (v or "") for v in (value, attr))
        return False
