"""Per-rule debounce state shared by the tick loops and the event callback."""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, Iterable

from .models.execution import ExecutionLogEntry

logger = logging.getLogger(__name__)


class DedupTracker:
    """Thread-safe ``rule id -> last fired`` map.

    Memory only. Losing it on restart risks one early re-fire per rule, which
    :meth:`rebuild` narrows by replaying the execution log.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = Lock()
        self._last_fired: dict[object, float] = {}
        self._slots: dict[object, object] = {}

    def last_fired(self, rule_id: object) -> float | None:
        with self._lock:
            return self._last_fired.get(rule_id)

    def is_suppressed(
        self, rule_id: object, min_interval_s: float, now: float | None = None
    ) -> bool:
        now = self._clock() if now is None else now
        with self._lock:
            last = self._last_fired.get(rule_id)
        return last is not None and (now - last) < min_interval_s

    def try_acquire(
        self, rule_id: object, min_interval_s: float, now: float | None = None
    ) -> bool:
        """Check the window and record a firing in one step.

        Returns False when the rule fired less than ``min_interval_s`` ago.
        """
        now = self._clock() if now is None else now
        with self._lock:
            last = self._last_fired.get(rule_id)
            if last is not None and (now - last) < min_interval_s:
                return False
            self._last_fired[rule_id] = now
            return True

    def try_acquire_slot(
        self,
        rule_id: object,
        slot: object,
        min_interval_s: float,
        now: float | None = None,
    ) -> bool:
        """Fire at most once per ``slot`` (e.g. a cron minute).

        Until a slot has been recorded for the rule, as after a rebuild, the
        plain ``min_interval_s`` window applies.
        """
        now = self._clock() if now is None else now
        with self._lock:
            if rule_id in self._slots:
                if self._slots[rule_id] == slot:
                    return False
            else:
                last = self._last_fired.get(rule_id)
                if last is not None and (now - last) < min_interval_s:
                    return False
            self._slots[rule_id] = slot
            self._last_fired[rule_id] = now
            return True

    def forget(self, rule_id: object) -> None:
        with self._lock:
            self._last_fired.pop(rule_id, None)
            self._slots.pop(rule_id, None)

    def rebuild(self, entries: Iterable[ExecutionLogEntry]) -> int:
        """Seed from execution history, keeping the latest entry per rule."""
        latest: dict[object, float] = {}
        for entry in entries:
            prev = latest.get(entry.rule_id)
            if prev is None or entry.created_at > prev:
                latest[entry.rule_id] = entry.created_at
        with self._lock:
            for rule_id, ts in latest.items():
                current = self._last_fired.get(rule_id)
                if current is None or ts > current:
                    self._last_fired[rule_id] = ts
        logger.info("Rebuilt debounce state for %d rule(s)", len(latest))
        return len(latest)

    def snapshot(self) -> dict[object, float]:
        with self._lock:
            return dict(self._last_fired)
