"""Bounded retry around action dispatch, with one execution log entry per run.

PENDING -> ATTEMPT (1..N) -> SUCCESS | EXHAUSTED. The first attempt runs
immediately; ``backoff_s[i]`` is the wait before attempt ``i + 2``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Mapping

from .dispatcher import ActionDispatcher
from .errors import PersistenceError
from .models.execution import (
    STATUS_FAILED,
    STATUS_SUCCESS,
    DispatchOutcome,
    DispatchState,
    ExecutionLogEntry,
)
from .models.rule import Rule
from .store import RuleRepository

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_S: tuple[float, ...] = (2.0, 4.0)
MAX_SNAPSHOT_CHARS = 8000
MAX_ERROR_CHARS = 1000


def snapshot_payload(payload: Mapping[str, Any], max_chars: int = MAX_SNAPSHOT_CHARS) -> dict[str, object]:
    """JSON-safe copy of the payload, dropping sample rows if it is too large."""
    snapshot = json.loads(json.dumps(dict(payload), default=str))
    if len(json.dumps(snapshot)) <= max_chars:
        return snapshot
    snapshot.pop("rows", None)
    if len(json.dumps(snapshot)) <= max_chars:
        return snapshot
    return {
        key: (value[:200] if isinstance(value, str) else value)
        for key, value in snapshot.items()
        if not isinstance(value, (dict, list))
    }


class RetryController:
    def __init__(
        self,
        dispatcher: ActionDispatcher,
        repository: RuleRepository,
        backoff_s: tuple[float, ...] = DEFAULT_BACKOFF_S,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.dispatcher = dispatcher
        self.repository = repository
        self.backoff_s = tuple(backoff_s)
        self.max_attempts = len(self.backoff_s) + 1
        self._sleep = sleep
        self._clock = clock

    async def attempt_all(self, rule: Rule, payload: Mapping[str, Any]) -> DispatchOutcome:
        outcome = DispatchOutcome(state=DispatchState.PENDING)
        while outcome.attempts < self.max_attempts:
            if outcome.attempts > 0:
                await self._sleep(self.backoff_s[outcome.attempts - 1])
            outcome.state = DispatchState.ATTEMPT
            outcome.attempts += 1
            try:
                outcome.result = await self.dispatcher.dispatch(rule, payload)
            except Exception as exc:
                outcome.last_error = (str(exc) or type(exc).__name__)[:MAX_ERROR_CHARS]
                logger.warning(
                    "Rule %s attempt %d/%d failed: %s",
                    rule.id,
                    outcome.attempts,
                    self.max_attempts,
                    outcome.last_error,
                )
                continue
            outcome.state = DispatchState.SUCCESS
            return outcome
        outcome.state = DispatchState.EXHAUSTED
        return outcome

    async def run(self, rule: Rule, payload: Mapping[str, Any]) -> DispatchOutcome:
        """Dispatch with retries, then record the outcome. Never raises.

        Repository writes run on a worker thread so a slow store never
        stalls the event loop.
        """
        outcome = await self.attempt_all(rule, payload)
        now = self._clock()
        snapshot = snapshot_payload(payload)

        if outcome.state is DispatchState.SUCCESS:
            entry = ExecutionLogEntry(
                rule_id=rule.id,
                owner_id=rule.owner_id,
                status=STATUS_SUCCESS,
                trigger_payload=snapshot,
                attempt_count=outcome.attempts,
                created_at=now,
                action_result=outcome.result,
            )
            await asyncio.to_thread(self._record, entry)
            await asyncio.to_thread(self._mark_triggered, rule, now)
            logger.info(
                "Rule %r (id=%s) fired via %s after %d attempt(s)",
                rule.name,
                rule.id,
                rule.action_kind,
                outcome.attempts,
            )
            return outcome

        entry = ExecutionLogEntry(
            rule_id=rule.id,
            owner_id=rule.owner_id,
            status=STATUS_FAILED,
            trigger_payload=snapshot,
            attempt_count=outcome.attempts,
            created_at=now,
            error_message=outcome.last_error,
        )
        await asyncio.to_thread(self._record, entry)
        logger.error(
            "Rule %r (id=%s) failed after %d attempts: %s",
            rule.name,
            rule.id,
            outcome.attempts,
            outcome.last_error,
        )
        return outcome

    def _record(self, entry: ExecutionLogEntry) -> None:
        try:
            self.repository.append_execution_log(entry)
        except Exception:
            logger.exception("Failed to write execution log for rule %s", entry.rule_id)

    def _mark_triggered(self, rule: Rule, when: float) -> None:
        try:
            self.repository.mark_last_triggered(rule.id, when)
        except PersistenceError as exc:
            logger.error("Failed to update last_triggered for rule %s: %s", rule.id, exc)
        except Exception:
            logger.exception("Failed to update last_triggered for rule %s", rule.id)
