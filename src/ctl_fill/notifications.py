from __future__ import annotations

from typing import Protocol

from .instrumentation import Cat
from .session import FillSession


class Notifier(Protocol):
    def notify(self, message: str, severity: str = "warning") -> None: ...


class LogNotifier:
    """Routes user-facing warnings into the session's signal log."""

    def __init__(self, session: FillSession):
        self.session = session

    def notify(self, message: str, severity: str = "warning") -> None:
        self.session.counters.inc(f"notify.{severity}")
        self.session.emit_signal(Cat.NOTIFY, message, level=severity)
