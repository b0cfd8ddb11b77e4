from __future__ import annotations

from typing import Any, Iterable

from selenium.common.exceptions import WebDriverException

from .cascade import CascadeController
from .date_adapter import ISO_DATE_RE
from .field_handles import FieldHandle
from .instrumentation import Cat
from .session import FillSession
from .types import ChangeRecord, EventOrigin
from . import scripts


def user_changes(records: Iterable[ChangeRecord]) -> list[ChangeRecord]:
    """Drop everything this package wrote itself."""
    return [r for r in records if r.origin == EventOrigin.USER]


def _to_record(raw: dict[str, Any]) -> ChangeRecord:
    try:
        origin = EventOrigin(raw.get("origin") or EventOrigin.USER.value)
    except ValueError:
        origin = EventOrigin.USER
    return ChangeRecord(
        value=str(raw.get("value") or ""),
        origin=origin,
        source=str(raw.get("source") or "unknown"),
    )


class ChangeWatcher:
    """
    Watches one source field for settled user edits and forwards them to a
    CascadeController.

    The page side records input/change events and value-attribute mutations,
    each tagged with its origin; poll() drains that queue and keeps only
    user-originated values.
    """

    def __init__(self, session: FillSession, field: FieldHandle, key: str | None = None):
        self.session = session
        self.field = field
        self.key = key or f"watch:{field.label}"
        self._last_forwarded: str | None = None
        self._pending: str | None = None

    def install(self) -> bool:
        try:
            fresh = self.session.run_script(scripts.INSTALL_CHANGE_WATCHER, self.field.element, self.key)
        except WebDriverException as e:
            self.session.emit_signal(Cat.WATCH, f"Could not install watcher: {e}", level="warning", fld=self.field.label)
            return False
        self.session.emit_diag(Cat.WATCH, "Watcher installed." if fresh else "Watcher already present.", fld=self.field.label)
        return True

    def drain(self) -> list[ChangeRecord]:
        raw = self.session.run_script(scripts.DRAIN_CHANGES, self.key) or []
        records = [_to_record(r) for r in raw]
        if records:
            self.session.emit_diag(
                Cat.WATCH,
                f"Drained {len(records)} change record(s).",
                key="WATCH.drain",
                fld=self.field.label,
            )
        return records

    def poll(self, controller: CascadeController) -> int:
        """
        Forward the latest settled user value to `controller.propagate`.

        While the cascade is still locked the value is held back and retried
        on a later poll. Returns how many propagations ran (0 or 1).
        """
        for rec in user_changes(self.drain()):
            value = rec.value
            if not ISO_DATE_RE.match(value):
                continue
            self._pending = None if value == self._last_forwarded else value

        if self._pending is None:
            return 0
        if controller.locked:
            self.session.counters.inc("watch.deferred")
            self.session.emit_diag(Cat.WATCH, "Cascade busy; deferring edit.", fld=self.field.label, value=self._pending)
            return 0

        value, self._pending = self._pending, None
        self._last_forwarded = value
        controller.propagate(value)
        return 1
