import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml

STEP_KINDS = ("text", "boolean", "date", "select")


@dataclass
class FillStep:
    field: str                         # logical identity: name attribute or label text
    kind: str                          # "text" | "boolean" | "date" | "select"
    value: Any
    option: Optional[str] = None       # select only: exact option text
    container: Optional[str] = None    # select only: CSS selector of the picker container
    quiet: Optional[bool] = None       # None -> kind default (select: True, others: False)
    max_attempts: Optional[int] = None


@dataclass
class CascadeRule:
    source: str
    dependent: str


@dataclass
class FillPlan:
    url: Optional[str] = None
    steps: List[FillStep] = field(default_factory=list)
    cascades: List[CascadeRule] = field(default_factory=list)
    watch_seconds: float = 0.0
    source_path: Optional[str] = None


class PlanReader:
    """
    Read a YAML/JSON fill plan into a FillPlan.

    This does NOT talk to Selenium – it only parses and validates plans.

    Shape:
        url: https://...
        watch_seconds: 30
        steps:
          - {field: issue_date, kind: date, value: "2016-05-08"}
          - {field: verdict, kind: select, container: "#verdict", option: "Не соответствует", value: "..."}
        cascades:
          - {source: issue_date, dependent: valid_until}
    """

    def __init__(self, logger):
        self.logger = logger

    # ---------- public API ----------

    def read_path(self, path: Union[str, Path]) -> FillPlan:
        p = Path(path)
        if not p.is_file():
            raise FileNotFoundError(f"Plan file not found: {p}")
        data = self._load_raw(p)
        plan = self.from_dict(data, source_path=str(p))
        if self.logger:
            self.logger.info(
                "Read plan %s: %d step(s), %d cascade(s)",
                p,
                len(plan.steps),
                len(plan.cascades),
            )
        return plan

    def from_dict(self, data: Any, *, source_path: Optional[str] = None) -> FillPlan:
        if not isinstance(data, dict):
            raise ValueError(f"Plan must be a mapping (got {type(data).__name__})")

        steps = [self._step_from_dict(raw, i) for i, raw in enumerate(data.get("steps") or [])]
        cascades = [self._cascade_from_dict(raw, i) for i, raw in enumerate(data.get("cascades") or [])]

        return FillPlan(
            url=data.get("url"),
            steps=steps,
            cascades=cascades,
            watch_seconds=float(data.get("watch_seconds") or 0.0),
            source_path=source_path,
        )

    # ---------- internal helpers ----------

    def _load_raw(self, file_path: Path) -> Any:
        suffix = file_path.suffix.lower()
        with file_path.open("r", encoding="utf-8") as f:
            if suffix in (".yml", ".yaml"):
                return yaml.safe_load(f)
            elif suffix == ".json":
                return json.load(f)
            else:
                raise ValueError(f"Unsupported plan file extension: {suffix}")

    def _step_from_dict(self, raw: Any, index: int) -> FillStep:
        if not isinstance(raw, dict):
            raise ValueError(f"steps[{index}] must be a mapping")
        name = raw.get("field")
        kind = str(raw.get("kind") or "text").lower()
        if not name:
            raise ValueError(f"steps[{index}] has no 'field'")
        if kind not in STEP_KINDS:
            raise ValueError(f"steps[{index}] has unknown kind {kind!r} (expected one of {STEP_KINDS})")
        if "value" not in raw:
            raise ValueError(f"steps[{index}] ({name}) has no 'value'")
        if kind == "select" and not (raw.get("option") and raw.get("container")):
            raise ValueError(f"steps[{index}] ({name}) is a select step and needs 'option' and 'container'")

        value = raw["value"]
        if kind == "date" and not isinstance(value, str):
            # YAML turns unquoted 2016-05-08 into a date object
            value = str(value)

        max_attempts = raw.get("max_attempts")
        return FillStep(
            field=str(name),
            kind=kind,
            value=value,
            option=raw.get("option"),
            container=raw.get("container"),
            quiet=raw.get("quiet"),
            max_attempts=int(max_attempts) if max_attempts is not None else None,
        )

    def _cascade_from_dict(self, raw: Any, index: int) -> CascadeRule:
        if not isinstance(raw, dict) or not raw.get("source") or not raw.get("dependent"):
            raise ValueError(f"cascades[{index}] needs 'source' and 'dependent'")
        return CascadeRule(source=str(raw["source"]), dependent=str(raw["dependent"]))
