from __future__ import annotations

from contextlib import contextmanager
from typing import Any
import time

from .instrumentation import Cat
from .session import FillSession

SLOW_PHASE_S = 60


def _counter_deltas(before: dict[str, int], after: dict[str, int]) -> str:
    moved = [(k, v - before.get(k, 0)) for k, v in after.items() if v != before.get(k, 0)]
    return ",".join(f"{k}+{d}" for k, d in sorted(moved))


@contextmanager
def phase_timer(
    session: FillSession | None,
    label: str,
    *,
    cat: Cat = Cat.PLAN,
    ctx: dict[str, Any] | None = None,
):
    """
    Bracket a fill phase with START/END signals. END carries the elapsed
    time and which counters moved during the phase.
    """
    if session is None:
        raise RuntimeError("phase_timer requires an active FillSession")
    merged_ctx: dict[str, Any] = {"a": label, **(ctx or {})}
    before = session.counters.snapshot()
    start = time.perf_counter()
    session.emit_signal(cat, f"START phase: {label}", **merged_ctx)
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        merged_ctx["counters"] = _counter_deltas(before, session.counters.snapshot()) or None
        # a fill phase this slow usually means a picker or cascade kept timing out
        level = "warning" if elapsed >= SLOW_PHASE_S else "info"
        session.emit_signal(cat, f"END phase: {label} ({elapsed:.2f} seconds)", level=level, **merged_ctx)
