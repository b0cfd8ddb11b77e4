from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union
import time

T = TypeVar("T")


@dataclass(frozen=True)
class Converged(Generic[T]):
    value: T
    attempts: int


@dataclass(frozen=True)
class TimedOut:
    attempts: int
    last: Any = None


PollResult = Union[Converged[T], TimedOut]


def poll_until(
    probe: Callable[[], T],
    *,
    accept: Callable[[T], bool] = bool,
    attempts: int,
    backoff_s: float,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """
    Call `probe` up to `attempts` times until `accept(result)` holds.

    Sleeps `backoff_s` between attempts (never after the last one).
    Returns Converged(value, attempts_used) or TimedOut(attempts, last_value).
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1 (got {attempts})")

    last: Any = None
    for attempt in range(1, attempts + 1):
        last = probe()
        if accept(last):
            return Converged(last, attempt)
        if attempt < attempts:
            sleep(backoff_s)
    return TimedOut(attempts, last)
