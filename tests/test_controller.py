"""End-to-end runs of fill plans against the fake page."""
import json

import pytest

from src import config
from src.ctl_fill.controller import FillController

from fake_page import FakeElement, build_picker


@pytest.fixture
def controller(ctx):
    return FillController(ctx)


@pytest.fixture
def form(page):
    """A protocol form: text, checkbox, two dates and a verdict picker."""
    els = {
        "inspector": page.add(FakeElement("inspector")),
        "approved": page.add(FakeElement("approved", type="checkbox")),
        "issue_date": page.add(FakeElement("issue_date", type="date")),
        "valid_until": page.add(FakeElement("valid_until", type="date")),
        "remarks": FakeElement("remarks"),
    }
    container, *_ = build_picker(page, target=els["remarks"], options=["Соответствует", "Не соответствует"])
    page.register("#verdict", container)
    return els


def _plan(ctx, steps, **extra):
    data = {"steps": steps, "cascades": [{"source": "issue_date", "dependent": "valid_until"}]}
    data.update(extra)
    return ctx.reader.from_dict(data)


def test_runs_every_step_and_cascades(page, ctx, controller, form, notifier):
    plan = _plan(ctx, [
        {"field": "inspector", "value": "Ivanova A. P."},
        {"field": "approved", "kind": "boolean", "value": True},
        {"field": "issue_date", "kind": "date", "value": "2016-05-08"},
        {"field": "remarks", "kind": "select", "container": "#verdict",
         "option": "Не соответствует", "value": "Seal missing"},
    ], url="http://localhost/protocol")

    failures = controller.run(plan)

    assert failures == []
    assert notifier.messages == []
    assert page.opened == ["http://localhost/protocol"]
    assert form["inspector"].state_value == "Ivanova A. P."
    assert form["approved"].state_checked is True
    assert form["issue_date"].state_value == "2016-05-08"
    assert form["valid_until"].state_value == "2032-05-07"
    assert form["remarks"].state_value == "Seal missing"


def test_failures_are_recorded_and_notified(ctx, controller, form, notifier):
    form["inspector"].reject_remaining = 10
    plan = _plan(ctx, [
        {"field": "inspector", "value": "X", "max_attempts": 2},
        {"field": "missing_field", "value": "Y"},
        {"field": "remarks", "kind": "select", "container": "#verdict", "option": "Нет такого", "value": "Z"},
        {"field": "approved", "kind": "boolean", "value": True},
    ])

    failures = controller.run(plan)

    assert [(f["field"], f["kind"]) for f in failures] == [
        ("inspector", "convergence"),
        ("missing_field", "precondition"),
        ("remarks", "interaction_not_found"),
    ]
    assert failures[0]["attempts"] == 2
    assert failures[0]["step_index"] == 0
    # the run keeps going after failures
    assert form["approved"].state_checked is True
    assert [sev for sev, _ in notifier.messages] == ["warning", "warning"]


def test_malformed_date_step_does_not_cascade(ctx, controller, form):
    plan = _plan(ctx, [{"field": "issue_date", "kind": "date", "value": "08.05.2016"}])

    failures = controller.run(plan)

    assert [f["kind"] for f in failures] == ["precondition"]
    assert form["valid_until"].state_value == ""


def test_missing_dependent_is_a_cascade_failure(page, ctx, controller, form):
    page.elements.remove(form["valid_until"])
    plan = _plan(ctx, [{"field": "issue_date", "kind": "date", "value": "2016-05-08"}])

    failures = controller.run(plan)

    assert failures[0]["step_kind"] == "cascade"
    assert failures[0]["field"] == "valid_until"


def test_watch_window_forwards_user_edits(page, ctx, controller, form, clock):
    def _user_types_later():
        page.user_edit(form["issue_date"], "2008-02-29")

    clock.schedule(1.0, _user_types_later)
    plan = _plan(ctx, [], watch_seconds=3)

    failures = controller.run(plan)

    assert failures == []
    assert form["valid_until"].state_value == "2024-02-29"


def test_control_process_writes_run_artifacts(tmp_path, monkeypatch, ctx, controller, form):
    monkeypatch.chdir(tmp_path)
    plan_path = tmp_path / "plan.json"
    plan_path.write_text(json.dumps({
        "steps": [{"field": "missing", "value": "x"}],
    }), encoding="utf-8")

    failures = controller.control_process(plan_path)

    run_dirs = list((tmp_path / "runs").iterdir())
    assert len(run_dirs) == 1
    saved = json.loads((run_dirs[0] / "failures.json").read_text(encoding="utf-8"))
    assert saved == failures
    assert (run_dirs[0] / "counters.json").is_file()
    for h in list(ctx.logger.handlers):
        if getattr(h, "name", "") == "run_file":
            h.close()
            ctx.logger.removeHandler(h)


def test_rejected_cascade_write_is_recorded_and_notified(page, ctx, controller, notifier):
    page.add(FakeElement("issue_date", type="date"))
    dep = page.add(FakeElement("valid_until", type="date", reject_first=50))
    plan = _plan(ctx, [{"field": "issue_date", "kind": "date", "value": "2016-05-08"}])

    failures = controller.run(plan)

    assert dep.state_value == ""
    assert [(f["field"], f["step_kind"], f["kind"]) for f in failures] == [
        ("valid_until", "cascade", "convergence"),
    ]
    assert len(notifier.messages) == 1
    assert "valid_until" in notifier.messages[0][1]


def test_page_opened_once(page, ctx, controller, form, monkeypatch):
    monkeypatch.setattr(config, "FILL_BASE_URL", "http://localhost/base")

    controller.run(_plan(ctx, [], url="http://localhost/protocol"))
    assert page.opened == ["http://localhost/protocol"]

    controller.run(_plan(ctx, []))
    assert page.opened == ["http://localhost/protocol", "http://localhost/base"]
