"""Rule definitions: parsing stored rows, debounce windows and descriptions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from . import cron
from .models.rule import (
    CHAT_WEBHOOK,
    DASHBOARD_NOTIFICATION,
    DATA_QUERY,
    EMAIL,
    ENFORCEMENT_ACTIVE,
    EVENT,
    GENERIC_WEBHOOK,
    METRIC_THRESHOLD,
    SCHEDULED,
    Action,
    ChatWebhookAction,
    DashboardAction,
    DataQueryTrigger,
    EmailAction,
    EventTrigger,
    GenericWebhookAction,
    MetricThresholdTrigger,
    Rule,
    ScheduledTrigger,
    Trigger,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceDef:
    name: str
    label: str
    payload_key: str
    default_threshold: float


RESOURCE_DEFS: dict[str, ResourceDef] = {
    "storage": ResourceDef(
        name="storage",
        label="Storage usage",
        payload_key="storage_percent",
        default_threshold=90.0,
    ),
    "cpu": ResourceDef(
        name="cpu",
        label="CPU usage",
        payload_key="cpu_percent",
        default_threshold=80.0,
    ),
}

# Stored rows may still carry the flat trigger names.
TRIGGER_ALIASES: dict[str, tuple[str, str | None]] = {
    "storage_threshold": (METRIC_THRESHOLD, "storage"),
    "cpu_threshold": (METRIC_THRESHOLD, "cpu"),
    "file_upload": (EVENT, None),
    "database_query": (DATA_QUERY, None),
    "cron": (SCHEDULED, None),
}

ACTION_ALIASES: dict[str, str] = {
    "discord": CHAT_WEBHOOK,
    "chat": CHAT_WEBHOOK,
    "webhook": GENERIC_WEBHOOK,
    "dashboard_alert": DASHBOARD_NOTIFICATION,
    "dashboard": DASHBOARD_NOTIFICATION,
}

TRIGGER_KINDS = (METRIC_THRESHOLD, SCHEDULED, DATA_QUERY, EVENT)
ACTION_KINDS = (EMAIL, CHAT_WEBHOOK, GENERIC_WEBHOOK, DASHBOARD_NOTIFICATION)

DEFAULT_QUERY_DEBOUNCE_MINUTES = 5.0


class RuleFormatError(ValueError):
    """A stored rule row cannot be turned into a Rule."""


def normalize_trigger_kind(name: str) -> tuple[str, str | None] | None:
    key = (name or "").strip().lower()
    if not key:
        return None
    if key in TRIGGER_ALIASES:
        return TRIGGER_ALIASES[key]
    return (key, None) if key in TRIGGER_KINDS else None


def normalize_action_kind(name: str) -> str | None:
    key = (name or "").strip().lower()
    if not key:
        return None
    key = ACTION_ALIASES.get(key, key)
    return key if key in ACTION_KINDS else None


def _as_float(raw: object, default: float) -> float:
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _as_str(raw: object) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def _as_timestamp(raw: object) -> float | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.timestamp()
    if isinstance(raw, (int, float)):
        return float(raw)
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def _normalize_extensions(raw: object) -> tuple[str, ...]:
    if not raw:
        return ()
    if isinstance(raw, str):
        raw = raw.split(",")
    out: list[str] = []
    for item in raw:  # type: ignore[union-attr]
        ext = str(item or "").strip().lower().lstrip(".")
        if ext and ext not in out:
            out.append(ext)
    return tuple(out)


def parse_trigger(kind: str, cfg: Mapping[str, Any] | None) -> Trigger:
    normalized = normalize_trigger_kind(kind)
    if normalized is None:
        raise RuleFormatError(f"Unknown trigger type: {kind}")
    trigger_kind, resource = normalized
    cfg = cfg or {}

    if trigger_kind == METRIC_THRESHOLD:
        resource = resource or _as_str(cfg.get("resource")).lower()
        definition = RESOURCE_DEFS.get(resource)
        if definition is None:
            raise RuleFormatError(f"Unknown metric resource: {resource or 'n/a'}")
        threshold = _as_float(cfg.get("threshold"), definition.default_threshold)
        return MetricThresholdTrigger(resource=definition.name, threshold=threshold)
    if trigger_kind == SCHEDULED:
        expr = _as_str(cfg.get("cron"))
        problem = cron.validate(expr)
        if problem:
            logger.warning("Scheduled trigger will never fire: %s", problem)
        return ScheduledTrigger(cron=expr)
    if trigger_kind == DATA_QUERY:
        return DataQueryTrigger(
            source_id=_as_str(cfg.get("database_id") or cfg.get("source_id")),
            query=_as_str(cfg.get("query")),
            debounce_minutes=max(
                0.0,
                _as_float(cfg.get("debounce_minutes"), DEFAULT_QUERY_DEBOUNCE_MINUTES),
            ),
        )
    return EventTrigger(
        event_type=_as_str(cfg.get("event_type")) or "file_uploaded",
        file_types=_normalize_extensions(cfg.get("file_types")),
        min_size_mb=max(0.0, _as_float(cfg.get("min_size_mb"), 0.0)),
    )


def parse_action(kind: str, cfg: Mapping[str, Any] | None) -> Action:
    action_kind = normalize_action_kind(kind)
    if action_kind is None:
        raise RuleFormatError(f"Unknown action type: {kind}")
    cfg = cfg or {}

    if action_kind == EMAIL:
        return EmailAction(
            to=_as_str(cfg.get("to")),
            subject=str(cfg.get("subject") or ""),
            body=str(cfg.get("body") or ""),
            sender=_as_str(cfg.get("from") or cfg.get("sender")),
        )
    if action_kind == CHAT_WEBHOOK:
        return ChatWebhookAction(
            channel=_as_str(cfg.get("channel")),
            message=str(cfg.get("message") or ""),
            webhook_url=_as_str(cfg.get("webhook_url")),
        )
    if action_kind == GENERIC_WEBHOOK:
        return GenericWebhookAction(
            url=_as_str(cfg.get("url")),
            method=(_as_str(cfg.get("method")) or "POST").upper(),
            body=str(cfg.get("body") or ""),
        )
    return DashboardAction(
        title=str(cfg.get("title") or ""),
        message=str(cfg.get("message") or ""),
        severity=_as_str(cfg.get("severity")).lower() or "info",
    )


def rule_from_row(row: Mapping[str, Any]) -> Rule:
    """Build a Rule from a stored row (dict with snake_case columns)."""
    try:
        rule_id = row["id"]
        owner_id = row.get("owner_id", row.get("user_id"))
    except KeyError as exc:
        raise RuleFormatError(f"Rule row missing {exc}") from exc
    if owner_id is None:
        raise RuleFormatError(f"Rule {rule_id} has no owner")

    trigger_kind = row.get("trigger_kind") or row.get("trigger_type") or ""
    action_kind = row.get("action_kind") or row.get("action_type") or ""
    return Rule(
        id=rule_id,
        owner_id=owner_id,
        name=_as_str(row.get("name")) or f"Rule {rule_id}",
        description=row.get("description"),
        trigger=parse_trigger(trigger_kind, row.get("trigger_config")),
        action=parse_action(action_kind, row.get("action_config")),
        is_active=bool(row.get("is_active", False)),
        enforcement_status=_as_str(row.get("enforcement_status")) or ENFORCEMENT_ACTIVE,
        last_triggered_at=_as_timestamp(
            row.get("last_triggered_at", row.get("last_triggered"))
        ),
        created_at=_as_timestamp(row.get("created_at")) or 0.0,
    )


def trigger_to_config(trigger: Trigger) -> dict[str, object]:
    if isinstance(trigger, MetricThresholdTrigger):
        return {"resource": trigger.resource, "threshold": trigger.threshold}
    if isinstance(trigger, ScheduledTrigger):
        return {"cron": trigger.cron}
    if isinstance(trigger, DataQueryTrigger):
        return {
            "source_id": trigger.source_id,
            "query": trigger.query,
            "debounce_minutes": trigger.debounce_minutes,
        }
    if isinstance(trigger, EventTrigger):
        return {
            "event_type": trigger.event_type,
            "file_types": list(trigger.file_types),
            "min_size_mb": trigger.min_size_mb,
        }
    raise TypeError(f"Unsupported trigger: {trigger!r}")


def action_to_config(action: Action) -> dict[str, object]:
    if isinstance(action, EmailAction):
        return {
            "to": action.to,
            "subject": action.subject,
            "body": action.body,
            "from": action.sender,
        }
    if isinstance(action, ChatWebhookAction):
        return {
            "channel": action.channel,
            "message": action.message,
            "webhook_url": action.webhook_url,
        }
    if isinstance(action, GenericWebhookAction):
        return {"url": action.url, "method": action.method, "body": action.body}
    if isinstance(action, DashboardAction):
        return {
            "title": action.title,
            "message": action.message,
            "severity": action.severity,
        }
    raise TypeError(f"Unsupported action: {action!r}")


def rule_to_row(rule: Rule) -> dict[str, object]:
    return {
        "id": rule.id,
        "owner_id": rule.owner_id,
        "name": rule.name,
        "description": rule.description,
        "trigger_kind": rule.trigger_kind,
        "trigger_config": trigger_to_config(rule.trigger),
        "action_kind": rule.action_kind,
        "action_config": action_to_config(rule.action),
        "is_active": rule.is_active,
        "enforcement_status": rule.enforcement_status,
        "last_triggered_at": rule.last_triggered_at,
        "created_at": rule.created_at,
    }


def min_interval_s(
    rule: Rule, metric_debounce_s: float = 300.0, schedule_debounce_s: float = 60.0
) -> float:
    """Minimum seconds between two firings of the same rule."""
    trigger = rule.trigger
    if isinstance(trigger, ScheduledTrigger):
        return schedule_debounce_s
    if isinstance(trigger, DataQueryTrigger):
        return trigger.debounce_minutes * 60.0
    return metric_debounce_s


def _format_number(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def describe_trigger(trigger: Trigger) -> str:
    if isinstance(trigger, MetricThresholdTrigger):
        definition = RESOURCE_DEFS[trigger.resource]
        return f"{definition.label} exceeds {_format_number(trigger.threshold)}%"
    if isinstance(trigger, ScheduledTrigger):
        return f"Scheduled: {trigger.cron or '* * * * *'}"
    if isinstance(trigger, DataQueryTrigger):
        source = trigger.source_id
        target = f"database ({source[:8]}…)" if source else "database"
        return f"DB query on {target} returns rows"
    if isinstance(trigger, EventTrigger):
        types = ", ".join(trigger.file_types) if trigger.file_types else "any file"
        size = (
            f", at least {_format_number(trigger.min_size_mb)} MB"
            if trigger.min_size_mb
            else ""
        )
        return f"File uploaded ({types}{size})"
    raise TypeError(f"Unsupported trigger: {trigger!r}")


def describe_action(action: Action) -> str:
    if isinstance(action, EmailAction):
        return f"Email to {action.to or 'configured address'}"
    if isinstance(action, ChatWebhookAction):
        if action.channel:
            return f"Chat message to #{action.channel}"
        return "Chat message to webhook"
    if isinstance(action, GenericWebhookAction):
        return f"Webhook {action.method} to {action.url or 'configured URL'}"
    if isinstance(action, DashboardAction):
        return f"Dashboard alert: {action.title or 'Notification'}"
    raise TypeError(f"Unsupported action: {action!r}")
