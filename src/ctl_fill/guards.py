from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator
import time


@dataclass
class CooldownLock:
    """
    Re-entrancy guard for one relationship (a cascade, a picker sequence...).

    Held from try_acquire() until `cooldown_s` after release(); the deferred
    release is a deadline on the clock, so there is no timer to cancel and
    nothing is left behind when the caller goes away.
    """
    key: str
    clock: Callable[[], float] = time.monotonic
    _owned: bool = False
    _held_until: float = 0.0

    @property
    def held(self) -> bool:
        return self._owned or self.clock() < self._held_until

    def try_acquire(self) -> bool:
        if self.held:
            return False
        self._owned = True
        return True

    def release(self, cooldown_s: float = 0.0) -> None:
        self._owned = False
        self._held_until = max(self._held_until, self.clock() + max(cooldown_s, 0.0))


@dataclass
class SuppressionFlag:
    """
    Raised while any holder is active and for a cooldown after the last one
    leaves. Unlike CooldownLock it never refuses a holder.
    """
    key: str
    clock: Callable[[], float] = time.monotonic
    _depth: int = 0
    _raised_until: float = 0.0

    @property
    def raised(self) -> bool:
        return self._depth > 0 or self.clock() < self._raised_until

    def enter(self) -> None:
        self._depth += 1

    def leave(self, cooldown_s: float = 0.0) -> None:
        self._depth = max(self._depth - 1, 0)
        self._raised_until = max(self._raised_until, self.clock() + max(cooldown_s, 0.0))


@dataclass
class GuardRegistry:
    """Owns every guard for one fill session, keyed by relationship identity."""
    clock: Callable[[], float] = time.monotonic
    _locks: dict[str, CooldownLock] = field(default_factory=dict)
    _flags: dict[str, SuppressionFlag] = field(default_factory=dict)

    def lock(self, key: str) -> CooldownLock:
        lk = self._locks.get(key)
        if lk is None:
            lk = CooldownLock(key, clock=self.clock)
            self._locks[key] = lk
        return lk

    def flag(self, key: str) -> SuppressionFlag:
        fl = self._flags.get(key)
        if fl is None:
            fl = SuppressionFlag(key, clock=self.clock)
            self._flags[key] = fl
        return fl

    def is_suppressed(self, key: str) -> bool:
        fl = self._flags.get(key)
        return bool(fl and fl.raised)

    @contextmanager
    def holding(self, key: str, *, cooldown_s: float) -> Iterator[bool]:
        """
        Yield True when the lock was acquired, False when it was already held.
        An acquired lock is released (with cooldown) on every exit path.
        """
        lk = self.lock(key)
        if not lk.try_acquire():
            yield False
            return
        try:
            yield True
        finally:
            lk.release(cooldown_s)

    @contextmanager
    def suppressing(self, key: str, *, cooldown_s: float) -> Iterator[SuppressionFlag]:
        fl = self.flag(key)
        fl.enter()
        try:
            yield fl
        finally:
            fl.leave(cooldown_s)
