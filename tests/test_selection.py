"""Tests for the picker reveal-and-choose sequence."""
import pytest
from selenium.common.exceptions import JavascriptException, StaleElementReferenceException

from src.ctl_fill import scripts
from src.ctl_fill.types import SelectionStatus

from fake_page import FakeElement, build_picker

OPTIONS = ["Соответствует", "Не соответствует", "Частично соответствует"]


@pytest.fixture
def selection(ctx):
    return ctx.selection


def test_chooses_exact_option_and_fills_revealed_input(page, selection):
    target = FakeElement("remarks")
    container, panel, _, options = build_picker(page, target=target, options=OPTIONS)

    res = selection.select_and_fill(container, "Не соответствует", "remarks", "Seal missing")

    assert res.ok
    assert res.convergence.committed
    assert page.chosen == "Не соответствует"
    assert target.state_value == "Seal missing"
    assert page.clicks == ["display", "Не соответствует"]


def test_match_is_exact_not_substring(page, selection):
    target = FakeElement("remarks")
    container, *_ = build_picker(page, target=target, options=["Не соответствует", "Соответствует"])

    res = selection.select_and_fill(container, "Соответствует", "remarks", "ok")

    assert res.ok
    assert page.chosen == "Соответствует"


def test_unlisted_option_clicks_nothing(page, selection):
    target = FakeElement("remarks")
    container, *_ = build_picker(page, target=target, options=OPTIONS)

    res = selection.select_and_fill(container, "Не проверялось", "remarks", "x")

    assert res.status == SelectionStatus.INTERACTION_NOT_FOUND
    assert page.chosen is None
    assert page.clicks == ["display"]
    assert target.state_value == ""
    assert "not offered" in res.detail


def test_ambiguous_option_is_not_guessed(page, selection):
    target = FakeElement("remarks")
    container, *_ = build_picker(page, target=target, options=["Да", " Да "])

    res = selection.select_and_fill(container, "Да", "remarks", "x")

    assert res.status == SelectionStatus.INTERACTION_NOT_FOUND
    assert page.chosen is None


def test_intermediate_panel_is_dismissed(page, selection):
    target = FakeElement("remarks")
    container, _, popover, _ = build_picker(page, target=target, options=OPTIONS, intermediate=True)

    res = selection.select_and_fill(container, "Не соответствует", "remarks", "x")

    assert res.ok
    assert page.outside_clicks == ["popover"]
    assert not popover.displayed


def test_guard_installed_for_sequence_and_removed(page, selection):
    target = FakeElement("remarks")
    container, *_ = build_picker(page, target=target, options=OPTIONS)
    seen_during = []
    target.on_event = lambda kind: seen_during.append(dict(page.guards))

    selection.select_and_fill(container, "Не соответствует", "remarks", "x")

    assert seen_during and all(container in g.values() for g in seen_during)
    assert page.guards == {}
    assert [h[0] for h in page.guard_history] == ["install", "remove"]


def test_guard_removed_after_failure(page, selection):
    container, *_ = build_picker(page, target=FakeElement("remarks"), options=OPTIONS)

    selection.select_and_fill(container, "nope", "remarks", "x")

    assert page.guards == {}


def test_visible_target_skips_picker(page, selection):
    target = page.add(FakeElement("remarks"))
    container = FakeElement(tag="div", text="container")

    res = selection.select_and_fill(container, "Не соответствует", "remarks", "x")

    assert res.ok
    assert page.clicks == []


def test_panel_never_opening_is_not_found(page, selection, clock):
    target = FakeElement("remarks")
    container, panel, _, _ = build_picker(page, target=target, options=OPTIONS)
    panel.displayed = False
    container.children[next(iter(container.children))][0].on_click = None

    res = selection.select_and_fill(container, "Не соответствует", "remarks", "x")

    assert res.status == SelectionStatus.INTERACTION_NOT_FOUND
    assert "option panel" in res.detail


def test_concurrent_selection_on_same_target_is_rejected(page, selection, guards):
    container, *_ = build_picker(page, target=FakeElement("remarks"), options=OPTIONS)

    with guards.holding("select:remarks", cooldown_s=0):
        res = selection.select_and_fill(container, "Не соответствует", "remarks", "x")

    assert res.status == SelectionStatus.REENTRANCY_REJECTED
    assert page.clicks == []


def test_selection_writes_are_quiet_by_default(page, selection):
    target = FakeElement("remarks")
    container, *_ = build_picker(page, target=target, options=OPTIONS)

    selection.select_and_fill(container, "Не соответствует", "remarks", "x")

    assert {e.origin for e in page.entries("event")} == {"programmatic"}


class _VanishingOption(FakeElement):
    """An option that re-renders out from under every read."""

    @property
    def text(self):
        raise StaleElementReferenceException("option re-rendered")

    @text.setter
    def text(self, value):
        pass


def test_stale_option_is_skipped_when_reporting_choices(page, selection):
    target = FakeElement("remarks")
    container, panel, _, options = build_picker(page, target=target, options=OPTIONS)
    options.append(_VanishingOption(tag="div"))

    res = selection.select_and_fill(container, "Не проверялось", "remarks", "x")

    assert res.status == SelectionStatus.INTERACTION_NOT_FOUND
    assert "Соответствует" in res.detail


def test_stale_option_does_not_block_a_real_match(page, selection):
    target = FakeElement("remarks")
    container, panel, _, options = build_picker(page, target=target, options=OPTIONS)
    options.insert(0, _VanishingOption(tag="div"))

    res = selection.select_and_fill(container, "Соответствует", "remarks", "x")

    assert res.ok
    assert page.chosen == "Соответствует"


def test_no_guard_means_no_selection(page, selection, monkeypatch):
    target = FakeElement("remarks")
    container, *_ = build_picker(page, target=target, options=OPTIONS)

    def _refuse(*args):
        raise JavascriptException("guard blocked by CSP")

    monkeypatch.setitem(page._handlers, scripts.INSTALL_SELECTION_GUARD, _refuse)

    res = selection.select_and_fill(container, "Не соответствует", "remarks", "x")

    assert res.status == SelectionStatus.PRECONDITION
    assert page.clicks == []
    assert page.guard_history == []
    assert target.state_value == ""
