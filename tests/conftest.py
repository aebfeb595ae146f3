"""Shared test fixtures and dummy classes."""

from __future__ import annotations

from datetime import datetime
from email.message import EmailMessage
from typing import Any

from automation_engine.channels import HttpResponse
from automation_engine.credentials import CredentialResolver, EmailCredentials
from automation_engine.errors import ChannelDeliveryError, SignalFetchError
from automation_engine.models.rule import (
    DashboardAction,
    MetricThresholdTrigger,
    Rule,
)
from automation_engine.models.signals import QueryResult, SystemStats
from automation_engine.signals import MetricsProvider, QueryExecutor


class DummyClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DummySleep:
    """Records backoff waits instead of sleeping."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class DummyMetrics(MetricsProvider):
    def __init__(self, cpu: float = 10.0, storage: float = 50.0, fail: bool = False) -> None:
        self.cpu = cpu
        self.storage = storage
        self.fail = fail
        self.calls = 0

    def get_system_stats(self) -> SystemStats:
        self.calls += 1
        if self.fail:
            raise SignalFetchError("metrics offline")
        return SystemStats(cpu_percent=self.cpu, storage_used_percent=self.storage)


class DummyQueryExecutor(QueryExecutor):
    """Returns canned results per source id; exceptions are raised."""

    def __init__(self, results: dict[str, Any] | None = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[str, str]] = []

    async def execute_query(self, source_id: str, sql: str) -> QueryResult:
        self.calls.append((source_id, sql))
        result = self.results.get(source_id, QueryResult())
        if isinstance(result, Exception):
            raise result
        return result


class DummyHttp:
    """Stand-in for WebhookClient."""

    def __init__(self, statuses: list[int] | None = None) -> None:
        self.statuses = list(statuses or [])
        self.requests: list[dict[str, Any]] = []

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: object | None = None,
        content: str | None = None,
    ) -> HttpResponse:
        self.requests.append(
            {"method": method, "url": url, "json": json, "content": content}
        )
        status = self.statuses.pop(0) if self.statuses else 200
        return HttpResponse(status_code=status, text="")


class DummyMailer:
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.sent: list[tuple[EmailCredentials, EmailMessage]] = []

    async def send(self, creds: EmailCredentials, message: EmailMessage) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise ChannelDeliveryError("smtp down")
        self.sent.append((creds, message))


class DummyCredentials(CredentialResolver):
    def __init__(
        self,
        email: str | None = "owner@example.com",
        chat_url: str | None = None,
        creds: EmailCredentials | None = None,
    ) -> None:
        self.email = email
        self.chat_url = chat_url
        self.creds = creds or EmailCredentials(
            host="smtp.example.com",
            port=587,
            user="bot@example.com",
            password="secret",
            sender="bot@example.com",
        )

    def resolve_email(self, owner_id: object) -> EmailCredentials | None:
        return self.creds

    def resolve_chat_endpoint(self, owner_id: object) -> str | None:
        return self.chat_url

    def owner_email(self, owner_id: object) -> str | None:
        return self.email


class DummyDispatcher:
    """Fails ``failures`` times, then succeeds."""

    def __init__(self, failures: int = 0, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or ChannelDeliveryError("HTTP 503")
        self.calls: list[tuple[Rule, dict[str, Any]]] = []

    async def dispatch(self, rule: Rule, payload: dict[str, Any]) -> dict[str, object]:
        self.calls.append((rule, dict(payload)))
        if self.failures < 0 or len(self.calls) <= self.failures:
            raise self.error
        return {"ok": True}


def make_rule(rule_id: int = 1, owner_id: int = 7, **overrides: Any) -> Rule:
    values: dict[str, Any] = {
        "id": rule_id,
        "owner_id": owner_id,
        "name": f"rule-{rule_id}",
        "trigger": MetricThresholdTrigger(resource="storage", threshold=90.0),
        "action": DashboardAction(title="Disk", message="{{storage_percent}}%"),
        "is_active": True,
        "created_at": float(rule_id),
    }
    values.update(overrides)
    return Rule(**values)


NOON = datetime(2026, 1, 5, 12, 0, 0)
