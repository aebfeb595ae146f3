"""Automation engine: tick loops, push-event hook and detached dispatch."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Mapping

from .dedup import DedupTracker
from .evaluator import evaluate_event, evaluate_metric_rules, evaluate_query
from .models.rule import DATA_QUERY, EVENT, METRIC_THRESHOLD, SCHEDULED, Rule
from .models.signals import SystemStats, UploadEvent
from .retry import RetryController
from .rules import describe_action, describe_trigger, min_interval_s
from .signals import MetricsProvider, QueryExecutor, UnavailableQueryExecutor
from .store import RuleRepository

logger = logging.getLogger(__name__)

_TASK_METRICS = "metrics_schedule"
_TASK_QUERIES = "data_query"


class AutomationEngine:
    """Evaluates active rules on fixed intervals and on pushed events.

    Every eligible rule is handed to the retry controller as its own task so
    a slow channel never holds up other rules or the next tick.
    """

    def __init__(
        self,
        repository: RuleRepository,
        retry: RetryController,
        metrics: MetricsProvider,
        query_executor: QueryExecutor | None = None,
        dedup: DedupTracker | None = None,
        tick_interval_s: float = 30.0,
        query_tick_interval_s: float = 30.0,
        metric_debounce_s: float = 300.0,
        schedule_debounce_s: float = 60.0,
        clock: Callable[[], float] = time.time,
        wall_clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.repository = repository
        self.retry = retry
        self.metrics = metrics
        self.query_executor = query_executor or UnavailableQueryExecutor()
        self.dedup = dedup or DedupTracker(clock=clock)
        self.tick_interval_s = tick_interval_s
        self.query_tick_interval_s = query_tick_interval_s
        self.metric_debounce_s = metric_debounce_s
        self.schedule_debounce_s = schedule_debounce_s
        self._clock = clock
        self._wall_clock = wall_clock
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: dict[str, asyncio.Task] = {}
        self._inflight: set[asyncio.Task] = set()

    # lifecycle

    def start(self) -> None:
        """Start both tick loops on the running event loop (idempotent)."""
        self._loop = asyncio.get_running_loop()
        if not self._tasks:
            self.rebuild_dedup()
        self._ensure_loop(_TASK_METRICS, self.tick_interval_s, self.tick_metrics)
        self._ensure_loop(_TASK_QUERIES, self.query_tick_interval_s, self.tick_queries)

    async def stop(self) -> None:
        """Stop ticking, then let in-flight dispatches run to completion."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.wait_idle()

    def rebuild_dedup(self) -> None:
        try:
            entries = self.repository.list_execution_logs()
        except Exception:
            logger.exception("Could not read execution log; debounce state starts empty")
            return
        self.dedup.rebuild(entries)

    async def wait_idle(self) -> None:
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def _ensure_loop(
        self, name: str, interval_s: float, tick: Callable[[], Any]
    ) -> None:
        task = self._tasks.get(name)
        if isinstance(task, asyncio.Task) and not task.done():
            return
        self._tasks[name] = asyncio.create_task(self._tick_loop(name, interval_s, tick))

    async def _tick_loop(
        self, name: str, interval_s: float, tick: Callable[[], Any]
    ) -> None:
        logger.info("Starting %s loop (interval=%ss)", name, interval_s)
        while True:
            try:
                start = time.monotonic()
                await tick()
                elapsed = time.monotonic() - start
                await asyncio.sleep(max(0.0, interval_s - elapsed))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s loop error", name)
                await asyncio.sleep(interval_s)

    # ticks

    def _active_rules(self, kinds: list[str], owner_id: object | None = None) -> list[Rule]:
        rules = self.repository.list_active_rules(kinds, owner_id=owner_id)
        return [r for r in rules if r.is_runnable and r.trigger_kind in kinds]

    def _fetch_stats(self) -> SystemStats | None:
        try:
            return self.metrics.get_system_stats()
        except Exception as exc:
            logger.warning("Stats unavailable, skipping metric rules this tick: %s", exc)
            return None

    async def tick_metrics(self) -> int:
        """One pass over metric-threshold and scheduled rules."""
        try:
            rules = self._active_rules([METRIC_THRESHOLD, SCHEDULED])
        except Exception:
            logger.exception("Failed to load metric/schedule rules")
            return 0
        if not rules:
            return 0

        stats = None
        if any(r.trigger_kind == METRIC_THRESHOLD for r in rules):
            stats = await asyncio.to_thread(self._fetch_stats)

        now = self._clock()
        when = self._wall_clock()
        # Scheduled rules fire once per matching cron minute
        minute = when.replace(second=0, microsecond=0)
        scheduled = 0
        for rule, payload in evaluate_metric_rules(rules, stats, when):
            slot = minute if rule.trigger_kind == SCHEDULED else None
            if self._acquire(rule, now, slot) and self._schedule(rule, payload):
                scheduled += 1
        return scheduled

    async def tick_queries(self) -> int:
        """One pass over data-query rules; each query failure skips only its rule."""
        try:
            rules = self._active_rules([DATA_QUERY])
        except Exception:
            logger.exception("Failed to load data-query rules")
            return 0

        scheduled = 0
        for rule in rules:
            if self.dedup.is_suppressed(rule.id, self._interval(rule), self._clock()):
                continue
            try:
                payload = await evaluate_query(rule, self.query_executor, self._wall_clock())
            except Exception as exc:
                logger.error("Data-query rule %s failed: %s", rule.id, exc)
                continue
            if payload is None:
                continue
            if self._acquire(rule, self._clock()) and self._schedule(rule, payload):
                scheduled += 1
        return scheduled

    def on_event(self, event: UploadEvent) -> int:
        """Push-event hook for the host; returns the number of rules scheduled.

        Safe to call from any thread. Only evaluation and scheduling happen
        on the caller's stack; delivery runs on the engine's event loop.
        """
        if self._dispatch_loop() is None:
            logger.error("Dropping %s event: engine is not running", event.event_type)
            return 0
        try:
            rules = self._active_rules([EVENT], owner_id=event.owner_id)
        except Exception:
            logger.exception("Failed to load event rules for owner %s", event.owner_id)
            return 0

        scheduled = 0
        when = self._wall_clock()
        for rule in rules:
            payload = evaluate_event(rule, event, when)
            if payload is None:
                continue
            if self._acquire(rule, self._clock()) and self._schedule(rule, payload):
                scheduled += 1
        return scheduled

    # dispatch

    def _interval(self, rule: Rule) -> float:
        return min_interval_s(rule, self.metric_debounce_s, self.schedule_debounce_s)

    def _acquire(self, rule: Rule, now: float, slot: object | None = None) -> bool:
        interval = self._interval(rule)
        if slot is not None:
            acquired = self.dedup.try_acquire_slot(rule.id, slot, interval, now)
        else:
            acquired = self.dedup.try_acquire(rule.id, interval, now)
        if acquired:
            return True
        logger.debug("Rule %s suppressed by debounce window", rule.id)
        return False

    def _dispatch_loop(self) -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return self._loop if self._loop and self._loop.is_running() else None

    def _schedule(self, rule: Rule, payload: Mapping[str, Any]) -> bool:
        loop = self._dispatch_loop()
        if loop is None:
            logger.error("Cannot dispatch rule %s: no running event loop", rule.id)
            self.dedup.forget(rule.id)
            return False
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._spawn(rule, payload)
        else:
            loop.call_soon_threadsafe(self._spawn, rule, payload)
        return True

    def _spawn(self, rule: Rule, payload: Mapping[str, Any]) -> None:
        logger.info(
            "Rule %r (id=%s) matched: %s -> %s",
            rule.name,
            rule.id,
            describe_trigger(rule.trigger),
            describe_action(rule.action),
        )
        task = asyncio.create_task(self.retry.run(rule, dict(payload)))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
