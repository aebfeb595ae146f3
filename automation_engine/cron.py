"""Minute-granularity cron matching.

Supports the common subset of the 5-field grammar: ``*``, comma lists,
``a-b`` ranges and ``*/n`` / ``a-b/n`` steps. A 6-field expression with a
leading seconds field is accepted by dropping that field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CronField:
    name: str
    low: int
    high: int


FIELDS: tuple[CronField, ...] = (
    CronField("minute", 0, 59),
    CronField("hour", 0, 23),
    CronField("day_of_month", 1, 31),
    CronField("month", 1, 12),
    CronField("day_of_week", 0, 7),
)


class CronError(ValueError):
    """The cron expression cannot be parsed."""


def split_expression(expr: str) -> list[str]:
    parts = (expr or "").split()
    if len(parts) == 6:
        parts = parts[1:]
    if len(parts) != 5:
        raise CronError(f"Expected 5 or 6 fields, got {len(parts)}: {expr!r}")
    return parts


def _parse_int(raw: str, bounds: CronField) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise CronError(f"Invalid {bounds.name} value {raw!r}") from exc
    if value < bounds.low or value > bounds.high:
        raise CronError(f"{bounds.name} value {value} out of range")
    return value


def _segment_matches(segment: str, value: int, bounds: CronField) -> bool:
    if not segment:
        raise CronError(f"Empty {bounds.name} segment")
    base, _, step_raw = segment.partition("/")
    step = 1
    if step_raw:
        try:
            step = int(step_raw)
        except ValueError as exc:
            raise CronError(f"Invalid {bounds.name} step {step_raw!r}") from exc
        if step <= 0:
            raise CronError(f"{bounds.name} step must be positive")

    if base == "*":
        # Unanchored steps count from zero, so */2 on days means 2, 4, 6...
        return value % step == 0
    if "-" in base:
        lo_raw, _, hi_raw = base.partition("-")
        start, end = _parse_int(lo_raw, bounds), _parse_int(hi_raw, bounds)
        if start > end:
            raise CronError(f"Inverted {bounds.name} range {base!r}")
    else:
        start = _parse_int(base, bounds)
        end = bounds.high if step_raw else start

    if value < start or value > end:
        return False
    return (value - start) % step == 0


def field_matches(part: str, value: int, bounds: CronField) -> bool:
    if part == "*":
        return True
    return any(_segment_matches(seg, value, bounds) for seg in part.split(","))


def check_field(part: str, bounds: CronField) -> None:
    """Parse every segment of ``part``, raising CronError on the first bad one."""
    for seg in part.split(","):
        _segment_matches(seg, bounds.low, bounds)


def _cron_weekday(when: datetime) -> int:
    # Sunday is 0 in cron, Monday is 0 in Python
    return (when.weekday() + 1) % 7


def matches(expr: str, when: datetime) -> bool:
    """Return True if ``expr`` fires during the minute of ``when``.

    Raises:
        CronError: if the expression is malformed.
    """
    parts = split_expression(expr)
    for part, bounds in zip(parts, FIELDS):
        check_field(part, bounds)
    minute, hour, dom, month, dow = parts
    m_bounds, h_bounds, dom_bounds, mon_bounds, dow_bounds = FIELDS
    weekday = _cron_weekday(when)
    dow_ok = field_matches(dow, weekday, dow_bounds) or (
        weekday == 0 and field_matches(dow, 7, dow_bounds)
    )
    return (
        field_matches(minute, when.minute, m_bounds)
        and field_matches(hour, when.hour, h_bounds)
        and field_matches(dom, when.day, dom_bounds)
        and field_matches(month, when.month, mon_bounds)
        and dow_ok
    )


def is_due(expr: str, when: datetime) -> bool:
    """Like :func:`matches` but treats malformed expressions as never due."""
    try:
        return matches(expr, when)
    except CronError as exc:
        logger.warning("Ignoring invalid cron expression %r: %s", expr, exc)
        return False


def validate(expr: str) -> str | None:
    """Return an error message for ``expr`` or None when it parses."""
    try:
        for part, bounds in zip(split_expression(expr), FIELDS):
            check_field(part, bounds)
    except CronError as exc:
        return str(exc)
    return None
