"""Pytest configuration and shared fixtures."""
import logging

import pytest

from src import config
from src.ctl_fill.context import build_context
from src.ctl_fill.session import FillSession

from fake_page import FakeClock, FakePage


class RecordingNotifier:
    """Collects notifications instead of logging them."""

    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def notify(self, message: str, severity: str = "warning") -> None:
        self.messages.append((severity, message))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def page(clock):
    return FakePage(clock)


@pytest.fixture
def session(page, clock, monkeypatch):
    """Session on the fake page with every log path switched on."""
    monkeypatch.setattr(config, "LOG_MODE", "trace")
    logger = logging.getLogger("ctl_fill.tests")
    return FillSession(logger, driver=page, sleep=clock.sleep, clock=clock.now)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ctx(session, notifier):
    return build_context(session, notifier=notifier)


@pytest.fixture
def engine(ctx):
    return ctx.engine


@pytest.fixture
def dates(ctx):
    return ctx.dates


@pytest.fixture
def guards(ctx):
    return ctx.guards


@pytest.fixture
def locator(ctx):
    return ctx.locator
