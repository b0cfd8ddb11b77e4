from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from .date_adapter import DerivedFieldAdapter, parse_iso_date
from .errors import PreconditionViolation
from .field_handles import FieldHandle
from .guards import GuardRegistry
from .instrumentation import Cat
from .. import config

TERM_YEARS = 16


def term_end(start: date, years: int = TERM_YEARS) -> date:
    """
    Last day of a term of `years` starting on `start`: the day before the
    anniversary. A 29 February start always has its anniversary on 1 March,
    so its term ends on the last day of February of the closing year.
    """
    if start.month == 2 and start.day == 29:
        anniversary = date(start.year + years, 3, 1)
    else:
        anniversary = start.replace(year=start.year + years)
    return anniversary - timedelta(days=1)


def derive_dependent_date(source_iso_date: str) -> str:
    start = parse_iso_date(source_iso_date)
    try:
        return term_end(start).isoformat()
    except (ValueError, OverflowError) as e:
        raise PreconditionViolation(f"no term end for {source_iso_date!r}: {e}") from e


class CascadeController:
    """
    Keeps a dependent date field in step with a source date field.

    One CooldownLock per (source, dependent) pair: held while the dependent
    write runs and for CASCADE_COOLDOWN_S afterwards, so the dependent field's
    own change notifications cannot start another cascade.
    """

    def __init__(
        self,
        adapter: DerivedFieldAdapter,
        guards: GuardRegistry,
        dependent: FieldHandle,
        *,
        source_name: str | None = None,
    ):
        self.adapter = adapter
        self.session = adapter.session
        self.guards = guards
        self.dependent = dependent
        self.relationship = f"cascade:{source_name or 'source'}->{dependent.label}"

    def _cascade_ctx(self, **extra: Any) -> dict[str, Any]:
        ctx: dict[str, Any] = {"fld": self.dependent.label, "rel": self.relationship}
        ctx.update(extra)
        return ctx

    @property
    def locked(self) -> bool:
        return self.guards.lock(self.relationship).held

    def propagate(self, source_iso_date: str) -> bool:
        try:
            derived = derive_dependent_date(source_iso_date)
        except PreconditionViolation as e:
            self.session.emit_signal(Cat.CASCADE, f"Cascade skipped: {e}", level="warning", **self._cascade_ctx())
            return False

        ctx = self._cascade_ctx(src=source_iso_date, derived=derived)
        with self.guards.holding(self.relationship, cooldown_s=config.CASCADE_COOLDOWN_S) as acquired:
            if not acquired:
                self.session.counters.inc("cascade.rejected")
                self.session.emit_diag(Cat.CASCADE, "Cascade already in flight; ignoring.", **ctx)
                return False

            try:
                current = self.adapter.current_value(self.dependent)
            except PreconditionViolation as e:
                self.session.emit_signal(Cat.CASCADE, f"Dependent field unusable: {e}", level="warning", **ctx)
                return False

            if current == derived:
                self.session.emit_diag(Cat.CASCADE, "Dependent already up to date.", **ctx)
                return True

            self.session.counters.inc("cascade.writes")
            ok = self.adapter.inject_structured_date(self.dependent, derived, quiet=True)
            self.session.emit_signal(
                Cat.CASCADE,
                f"Dependent set to {derived}" if ok else f"Dependent did not accept {derived}",
                level="info" if ok else "warning",
                **ctx,
            )
            return ok
