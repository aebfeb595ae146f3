"""Trigger evaluation: decide which rules hold right now and build payloads.

Evaluation never dispatches. It yields ``(rule, payload)`` pairs that the
engine passes through the debounce tracker before scheduling delivery.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from . import cron
from .models.rule import (
    DataQueryTrigger,
    EventTrigger,
    MetricThresholdTrigger,
    Rule,
    ScheduledTrigger,
)
from .models.signals import QueryResult, SystemStats, UploadEvent
from .rules import RESOURCE_DEFS
from .signals import QueryExecutor

logger = logging.getLogger(__name__)

MAX_SAMPLE_ROWS = 10

Payload = dict[str, Any]


def iso_timestamp(when: datetime) -> str:
    if when.tzinfo is None:
        when = when.astimezone()
    return when.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def metric_value(stats: SystemStats, resource: str) -> float:
    if resource == "storage":
        return stats.storage_used_percent
    if resource == "cpu":
        return stats.cpu_percent
    raise ValueError(f"Unknown metric resource: {resource}")


def evaluate_metric(
    rule: Rule, stats: SystemStats, when: datetime
) -> Payload | None:
    trigger = rule.trigger
    if not isinstance(trigger, MetricThresholdTrigger):
        return None
    value = metric_value(stats, trigger.resource)
    if value < trigger.threshold:
        return None
    definition = RESOURCE_DEFS[trigger.resource]
    return {
        definition.payload_key: value,
        "threshold": trigger.threshold,
        "timestamp": iso_timestamp(when),
    }


def evaluate_schedule(rule: Rule, when: datetime) -> Payload | None:
    """``when`` is local wall-clock time; cron fields are matched against it."""
    trigger = rule.trigger
    if not isinstance(trigger, ScheduledTrigger):
        return None
    if not cron.is_due(trigger.cron, when):
        return None
    ts = iso_timestamp(when)
    return {"scheduled_at": ts, "timestamp": ts}


def _row_as_dict(row: Any, columns: list[str]) -> Any:
    if isinstance(row, Mapping) or not columns:
        return row
    if isinstance(row, (list, tuple)):
        return dict(zip(columns, row))
    return row


def build_query_payload(result: QueryResult, when: datetime) -> Payload | None:
    """Rows may be mappings or sequences aligned with ``result.columns``."""
    columns = list(result.columns or [])
    rows = [_row_as_dict(row, columns) for row in result.rows or []]
    if not rows:
        return None
    payload: Payload = {
        "row_count": len(rows),
        "rows": rows[:MAX_SAMPLE_ROWS],
        "timestamp": iso_timestamp(when),
    }
    # First row's columns become top-level template fields
    first = rows[0]
    if isinstance(first, Mapping):
        payload.update(first)
    return payload


async def evaluate_query(
    rule: Rule, executor: QueryExecutor, when: datetime
) -> Payload | None:
    """Run the rule's query; raises whatever the executor raises."""
    trigger = rule.trigger
    if not isinstance(trigger, DataQueryTrigger):
        return None
    if not trigger.source_id or not trigger.query.strip():
        logger.debug("Rule %s has no query source or SQL; skipping", rule.id)
        return None
    result = await executor.execute_query(trigger.source_id, trigger.query)
    return build_query_payload(result, when)


def file_extension(file_name: str) -> str:
    if "." not in (file_name or ""):
        return ""
    return file_name.rsplit(".", 1)[-1].lower()


def evaluate_event(rule: Rule, event: UploadEvent, when: datetime) -> Payload | None:
    trigger = rule.trigger
    if not isinstance(trigger, EventTrigger):
        return None
    if trigger.event_type != event.event_type:
        return None
    ext = file_extension(event.file_name)
    if trigger.file_types and ext not in trigger.file_types:
        return None
    size = max(0, int(event.file_size_bytes or 0))
    if size < trigger.min_size_mb * 1024 * 1024:
        return None
    ts = iso_timestamp(when)
    return {
        "file_name": event.file_name,
        "file_type": ext,
        "file_size_bytes": size,
        "file_size_mb": f"{size / 1024 / 1024:.2f}",
        "upload_time": ts,
        "file_url": event.file_url or "",
        "timestamp": ts,
    }


def evaluate_metric_rules(
    rules: Iterable[Rule], stats: SystemStats | None, when: datetime
) -> list[tuple[Rule, Payload]]:
    """Metric and schedule rules for one tick.

    ``stats`` is fetched once per tick by the caller; None means the fetch
    failed and metric rules sit this tick out while schedules still run.
    """
    matched: list[tuple[Rule, Payload]] = []
    for rule in rules:
        if isinstance(rule.trigger, MetricThresholdTrigger):
            if stats is None:
                continue
            payload = evaluate_metric(rule, stats, when)
        elif isinstance(rule.trigger, ScheduledTrigger):
            payload = evaluate_schedule(rule, when)
        else:
            continue
        if payload is not None:
            matched.append((rule, payload))
    return matched
