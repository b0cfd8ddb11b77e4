"""Tests for structured date injection."""
import pytest

from src import config
from src.ctl_fill.date_adapter import format_display_date, parse_iso_date
from src.ctl_fill.errors import PreconditionViolation
from src.ctl_fill.field_handles import FieldHandle
from src.ctl_fill.types import FieldKind

from fake_page import FakeElement


def _date_field(page, name="issue_date", **kw):
    mirror = kw.pop("mirror", None)
    el = page.add(FakeElement(name, type="date", mirror=mirror, **kw))
    return el, FieldHandle(element=el, kind=FieldKind.STRUCTURED, name=name)


def test_commits_date_and_mirror(page, dates):
    mirror = FakeElement(tag="span", text="")
    el, field = _date_field(page, mirror=mirror)

    assert dates.inject_structured_date(field, "2016-05-08")

    assert el.state_value == "2016-05-08"
    assert el.attr == "2016-05-08"
    assert mirror.text == "08.05.2016"
    assert dates.current_value(field) == "2016-05-08"


def test_timezone_drift_is_forced_back_to_exact_string(page, dates):
    el, field = _date_field(page, date_drift_days=-1)

    assert dates.inject_structured_date(field, "2024-02-29")

    writes = [e.detail for e in page.entries("write")]
    assert writes == ["2024-02-28", "2024-02-29"]
    assert el.state_value == "2024-02-29"


def test_events_and_spoof_order(page, dates):
    el, field = _date_field(page, value="2001-01-01")

    dates.inject_structured_date(field, "2016-05-08")

    assert page.entries("spoof")[0].detail == "2001-01-01"
    assert [e.detail for e in page.entries("event")] == ["input", "change", "blur"]
    assert page.entries("attr")[0].seq < page.entries("event")[0].seq


def test_already_set_date_is_untouched(page, dates):
    el, field = _date_field(page, value="2016-05-08")

    assert dates.inject_structured_date(field, "2016-05-08")
    assert page.log == []


@pytest.mark.parametrize("bad", ["2016-5-8", "08.05.2016", "2023-02-30", "", None])
def test_malformed_date_leaves_field_alone(page, dates, bad):
    el, field = _date_field(page, value="2001-01-01")

    assert dates.inject_structured_date(field, bad) is False
    assert page.log == []
    assert el.value == "2001-01-01"


def test_boolean_or_missing_field_is_rejected(page, dates):
    cb = page.add(FakeElement("approved", type="checkbox"))
    assert not dates.inject_structured_date(FieldHandle(cb, FieldKind.BOOLEAN, "approved"), "2016-05-08")
    assert not dates.inject_structured_date(None, "2016-05-08")
    assert page.log == []


def test_mirror_survives_a_delayed_framework_repaint(page, dates, clock):
    mirror = FakeElement(tag="span", text="")
    el, field = _date_field(page, mirror=mirror)

    def _repaint_later(kind):
        if kind == "change":
            clock.schedule(0.2, lambda: setattr(mirror, "text", "stale"))

    el.on_event = _repaint_later

    assert dates.inject_structured_date(field, "2016-05-08")
    assert mirror.text == "08.05.2016"


def test_quiet_date_write_is_programmatic(page, dates):
    el, field = _date_field(page)

    dates.inject_structured_date(field, "2032-05-07", quiet=True)

    assert {e.origin for e in page.entries("event")} == {"programmatic"}
    assert all(e.quiet for e in page.entries("attr"))


def test_rejected_date_fails_strictly(page, dates):
    el, field = _date_field(page, value="2001-01-01", reject_first=1)

    assert dates.inject_structured_date(field, "2001-06-01") is False
    assert dates.session.counters.get("date.not_converged") == 1


def test_lenient_match_accepts_same_year(page, dates, monkeypatch):
    monkeypatch.setattr(config, "DATE_LENIENT_MATCH", True)
    assert dates._matches("2016-05-08", "08.05.2016", None)
    monkeypatch.setattr(config, "DATE_LENIENT_MATCH", False)
    assert not dates._matches("2016-05-08", "08.05.2016", None)


def test_text_input_without_value_as_date(page, dates):
    el = page.add(FakeElement("issued_text", type="text"))
    field = FieldHandle(el, FieldKind.TEXT, "issued_text")

    assert dates.inject_structured_date(field, "2016-05-08")
    assert el.state_value == "2016-05-08"


def test_parse_and_format_helpers():
    d = parse_iso_date("2008-02-29")
    assert format_display_date(d) == "29.02.2008"
    with pytest.raises(PreconditionViolation):
        parse_iso_date("2009-02-29")
