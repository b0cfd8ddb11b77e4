# src/ctl_fill/context.py
from dataclasses import dataclass
import logging

from .session import FillSession
from .guards import GuardRegistry
from .injection import StateInjectionEngine
from .date_adapter import DerivedFieldAdapter
from .locator import FieldLocator
from .selection import SelectionSequencer
from .notifications import Notifier, LogNotifier
from .plan_reader import PlanReader

@dataclass
class FillContext:
    logger: logging.Logger
    session: FillSession
    guards: GuardRegistry
    engine: StateInjectionEngine
    dates: DerivedFieldAdapter
    locator: FieldLocator
    selection: SelectionSequencer
    notifier: Notifier
    reader: PlanReader


def build_context(session: FillSession, *, notifier: Notifier | None = None) -> FillContext:
    """Wire the shared components ONCE per session."""
    guards = GuardRegistry(clock=session.clock)
    engine = StateInjectionEngine(session, guards)
    locator = FieldLocator(session)
    return FillContext(
        logger=session.logger,
        session=session,
        guards=guards,
        engine=engine,
        dates=DerivedFieldAdapter(engine),
        locator=locator,
        selection=SelectionSequencer(engine, locator, guards),
        notifier=notifier or LogNotifier(session),
        reader=PlanReader(session.logger),
    )
