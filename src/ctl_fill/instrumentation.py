from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable
import time


class LogMode(str, Enum):
    LIVE = "live"      # signals only
    DEBUG = "debug"    # + diagnostics (rate-limited)
    TRACE = "trace"    # + per-write/per-lookup traces


class Cat(str, Enum):
    STARTUP = "STARTUP"
    NAV = "NAV"
    PLAN = "PLAN"
    LOCATE = "LOCATE"
    INJECT = "INJECT"
    DATE = "DATE"
    CASCADE = "CASCADE"
    SELECT = "SELECT"
    GUARD = "GUARD"
    WATCH = "WATCH"
    NOTIFY = "NOTIFY"
    UISTATE = "UISTATE"


@dataclass(frozen=True)
class InstrumentPolicy:
    mode: LogMode = LogMode.LIVE

    # If True, include ctx keys in all emitted lines.
    include_ctx: bool = True

    # Rate limits for noisy events (key -> seconds).
    rate_limits_s: dict[str, float] = field(default_factory=dict)


@dataclass
class Counters:
    """Run-wide tallies (inject.attempts, cascade.rejected, notify.warning...)."""
    _c: Counter = field(default_factory=Counter)

    def inc(self, key: str, n: int = 1) -> None:
        self._c[key] += n

    def get(self, key: str) -> int:
        return self._c[key]

    def snapshot(self) -> dict[str, int]:
        return {k: v for k, v in sorted(self._c.items()) if v}


@dataclass
class RateLimiter:
    clock: Callable[[], float] = time.monotonic
    _last: dict[str, float] = field(default_factory=dict)

    def allow(self, key: str, every_s: float) -> bool:
        now = self.clock()
        last = self._last.get(key)
        if last is not None and now - last < every_s:
            return False
        self._last[key] = now
        return True


# fld/kind/rel/a lead every line so related entries line up when grepping
CTX_ORDER = ("fld", "kind", "rel", "a")


def format_ctx(**ctx: Any) -> str:
    known = [(k, ctx[k]) for k in CTX_ORDER if ctx.get(k) is not None]
    extras = sorted((k, v) for k, v in ctx.items() if k not in CTX_ORDER and v is not None)
    return " ".join(f"{k}={v}" for k, v in known + extras)
