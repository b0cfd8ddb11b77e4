from __future__ import annotations
from typing import Any
from .types import FailureRecord, FailureKind

# --- functions and defs ---
def make_failure_record(
    *,
    field: str,
    step_kind: str,

    kind: FailureKind = "unknown",
    reason: str | None = None,
    requested: Any = None,

    observed: Any = None,
    attempts: int | None = None,
    step_index: int | None = None,
) -> FailureRecord:
    rec: FailureRecord = {
        "field": field,
        "step_kind": step_kind,
        "kind": kind,
        "reason": reason,
        "requested": requested,
    }
    if observed is not None:
        rec["observed"] = observed
    if attempts is not None:
        rec["attempts"] = attempts
    if step_index is not None:
        rec["step_index"] = step_index
    return rec


def summarize_failures(failures: list[FailureRecord]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for f in failures:
        counts[f["kind"]] = counts.get(f["kind"], 0) + 1
    return counts
