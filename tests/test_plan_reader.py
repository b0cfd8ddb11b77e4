"""Tests for reading YAML/JSON fill plans."""
import json
import logging

import pytest

from src.ctl_fill.plan_reader import PlanReader


@pytest.fixture
def reader():
    return PlanReader(logging.getLogger("ctl_fill.tests"))


def test_reads_yaml_plan_with_unquoted_date(tmp_path, reader):
    p = tmp_path / "plan.yml"
    p.write_text(
        "url: http://localhost/form\n"
        "watch_seconds: 5\n"
        "steps:\n"
        "  - {field: issue_date, kind: date, value: 2016-05-08}\n"
        "  - {field: approved, kind: boolean, value: true, max_attempts: 5}\n"
        "  - field: remarks\n"
        "    kind: select\n"
        "    container: '#verdict'\n"
        "    option: Не соответствует\n"
        "    value: Seal missing\n"
        "cascades:\n"
        "  - {source: issue_date, dependent: valid_until}\n",
        encoding="utf-8",
    )

    plan = reader.read_path(p)

    assert plan.url == "http://localhost/form"
    assert plan.watch_seconds == 5.0
    assert [s.kind for s in plan.steps] == ["date", "boolean", "select"]
    assert plan.steps[0].value == "2016-05-08"
    assert plan.steps[1].max_attempts == 5
    assert plan.steps[2].option == "Не соответствует"
    assert plan.cascades[0].dependent == "valid_until"
    assert plan.source_path == str(p)


def test_reads_json_plan(tmp_path, reader):
    p = tmp_path / "plan.json"
    p.write_text(json.dumps({"steps": [{"field": "inspector", "value": "A"}]}), encoding="utf-8")

    plan = reader.read_path(p)

    assert plan.url is None
    assert plan.steps[0].kind == "text"
    assert plan.cascades == []


@pytest.mark.parametrize(
    "data, msg",
    [
        ([], "mapping"),
        ({"steps": [{"kind": "text", "value": 1}]}, "no 'field'"),
        ({"steps": [{"field": "a", "kind": "radio", "value": 1}]}, "unknown kind"),
        ({"steps": [{"field": "a"}]}, "no 'value'"),
        ({"steps": [{"field": "a", "kind": "select", "value": 1}]}, "needs 'option'"),
        ({"cascades": [{"source": "a"}]}, "needs 'source'"),
    ],
)
def test_rejects_invalid_plans(reader, data, msg):
    with pytest.raises(ValueError, match=msg):
        reader.from_dict(data)


def test_missing_and_unsupported_files(tmp_path, reader):
    with pytest.raises(FileNotFoundError):
        reader.read_path(tmp_path / "nope.yml")
    p = tmp_path / "plan.txt"
    p.write_text("steps: []", encoding="utf-8")
    with pytest.raises(ValueError):
        reader.read_path(p)
