"""Rule, trigger and action dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

METRIC_THRESHOLD = "metric_threshold"
SCHEDULED = "scheduled"
DATA_QUERY = "data_query"
EVENT = "event"

EMAIL = "email"
CHAT_WEBHOOK = "chat_webhook"
GENERIC_WEBHOOK = "generic_webhook"
DASHBOARD_NOTIFICATION = "dashboard_notification"

ENFORCEMENT_ACTIVE = "active"
DISABLED_DUE_TO_PLAN = "disabled_due_to_plan"
DISABLED_DUE_TO_BILLING = "disabled_due_to_billing"


@dataclass(frozen=True)
class MetricThresholdTrigger:
    resource: str  # storage, cpu
    threshold: float

    kind = METRIC_THRESHOLD


@dataclass(frozen=True)
class ScheduledTrigger:
    cron: str

    kind = SCHEDULED


@dataclass(frozen=True)
class DataQueryTrigger:
    source_id: str
    query: str
    debounce_minutes: float = 5.0

    kind = DATA_QUERY


@dataclass(frozen=True)
class EventTrigger:
    event_type: str = "file_uploaded"
    file_types: tuple[str, ...] = ()
    min_size_mb: float = 0.0

    kind = EVENT


Trigger = Union[MetricThresholdTrigger, ScheduledTrigger, DataQueryTrigger, EventTrigger]


@dataclass(frozen=True)
class EmailAction:
    to: str = ""
    subject: str = ""
    body: str = ""
    sender: str = ""

    kind = EMAIL


@dataclass(frozen=True)
class ChatWebhookAction:
    channel: str = ""
    message: str = ""
    webhook_url: str = ""

    kind = CHAT_WEBHOOK


@dataclass(frozen=True)
class GenericWebhookAction:
    url: str = ""
    method: str = "POST"
    body: str = ""

    kind = GENERIC_WEBHOOK


@dataclass(frozen=True)
class DashboardAction:
    title: str = ""
    message: str = ""
    severity: str = "info"

    kind = DASHBOARD_NOTIFICATION


Action = Union[EmailAction, ChatWebhookAction, GenericWebhookAction, DashboardAction]


@dataclass
class Rule:
    id: int
    owner_id: int
    name: str
    trigger: Trigger
    action: Action
    is_active: bool = False
    enforcement_status: str = ENFORCEMENT_ACTIVE
    last_triggered_at: float | None = None
    created_at: float = 0.0
    description: str | None = None

    @property
    def trigger_kind(self) -> str:
        return self.trigger.kind

    @property
    def action_kind(self) -> str:
        return self.action.kind

    @property
    def is_runnable(self) -> bool:
        """Enforcement overrides the stored flag."""
        return bool(self.is_active) and self.enforcement_status == ENFORCEMENT_ACTIVE
