from __future__ import annotations
from typing import TypedDict, NotRequired, Any, Literal
from enum import Enum
from dataclasses import dataclass


class FieldKind(str, Enum):
    TEXT = "text"
    STRUCTURED = "structured"
    BOOLEAN = "boolean"


class EventKind(str, Enum):
    INPUT = "input"
    CHANGE = "change"
    BLUR = "blur"
    CLICK = "click"


class EventOrigin(str, Enum):
    PROGRAMMATIC = "programmatic"
    USER = "user"


class SelectionStatus(str, Enum):
    OK = "ok"
    INTERACTION_NOT_FOUND = "interaction_not_found"
    REENTRANCY_REJECTED = "reentrancy_rejected"
    CONVERGENCE_FAILED = "convergence_failed"
    PRECONDITION = "precondition"


# Event order is part of the injection contract.
EVENT_SEQUENCES: dict[FieldKind, tuple[EventKind, ...]] = {
    FieldKind.BOOLEAN: (EventKind.CLICK, EventKind.INPUT, EventKind.CHANGE),
    FieldKind.TEXT: (EventKind.INPUT, EventKind.CHANGE, EventKind.BLUR),
    FieldKind.STRUCTURED: (EventKind.INPUT, EventKind.CHANGE, EventKind.BLUR),
}


#--- Dataclasses ---
@dataclass(frozen=True)
class SyntheticEvent:
    kind: EventKind
    origin: EventOrigin = EventOrigin.USER
    bubbles: bool = True
    cancelable: bool = True


@dataclass(frozen=True)
class ConvergenceResult:
    committed: bool
    observed_value: Any
    attempts_used: int


@dataclass(frozen=True)
class SelectionResult:
    status: SelectionStatus
    convergence: ConvergenceResult | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == SelectionStatus.OK


@dataclass(frozen=True)
class ChangeRecord:
    """One value change seen by the in-page watcher."""
    value: str
    origin: EventOrigin
    source: str  # "input" | "change" | "attribute"


# --- TypedDicts ---
class FieldState(TypedDict):
    value: str | None
    checked: bool
    attr: str | None
    connected: bool


FailureKind = Literal["precondition", "convergence", "reentrancy", "interaction_not_found", "unknown"]


class FailureRecord(TypedDict):
    field: str
    step_kind: str
    kind: FailureKind
    reason: str | None
    requested: Any
    observed: NotRequired[Any]
    attempts: NotRequired[int]
    step_index: NotRequired[int]
