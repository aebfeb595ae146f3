"""Execution log entry and dispatch state."""

from __future__ import annotations

import enum
from dataclasses import dataclass

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


class DispatchState(enum.Enum):
    PENDING = "pending"
    ATTEMPT = "attempt"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class ExecutionLogEntry:
    rule_id: int
    owner_id: int
    status: str
    trigger_payload: dict[str, object]
    attempt_count: int
    created_at: float
    action_result: dict[str, object] | None = None
    error_message: str | None = None


@dataclass
class DispatchOutcome:
    """Final result of one retry sequence."""

    state: DispatchState
    attempts: int = 0
    result: dict[str, object] | None = None
    last_error: str | None = None
