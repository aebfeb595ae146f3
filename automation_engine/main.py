"""Entrypoint for running the automation engine as a standalone process.

Wires the reference collaborators from configuration and ticks until
interrupted. Hosts embedding the engine call :func:`build_engine` instead.
"""

from __future__ import annotations

import asyncio
import logging

from . import config
from .credentials import ConnectedAppsCredentialResolver, CredentialResolver
from .dedup import DedupTracker
from .dispatcher import ActionDispatcher
from .engine import AutomationEngine
from .logger import setup_logging
from .retry import RetryController
from .signals import MetricsProvider, PsutilMetricsProvider, QueryExecutor
from .store import (
    InMemoryNotificationStore,
    JsonFileRuleStore,
    NotificationStore,
    RuleRepository,
)

logger = logging.getLogger(__name__)


def build_engine(
    repository: RuleRepository | None = None,
    credentials: CredentialResolver | None = None,
    notifications: NotificationStore | None = None,
    metrics: MetricsProvider | None = None,
    query_executor: QueryExecutor | None = None,
    settings: config.Settings | None = None,
) -> AutomationEngine:
    s = settings or config.settings
    if repository is None:
        store = JsonFileRuleStore(s.STATE_FILE)
        store.load()
        repository = store

    dispatcher = ActionDispatcher(
        credentials=credentials or ConnectedAppsCredentialResolver(),
        notifications=notifications or InMemoryNotificationStore(),
        timeout=s.CHANNEL_TIMEOUT_S,
    )
    retry = RetryController(dispatcher, repository, backoff_s=s.RETRY_BACKOFF_S)
    return AutomationEngine(
        repository=repository,
        retry=retry,
        metrics=metrics or PsutilMetricsProvider(s.STORAGE_PATH),
        query_executor=query_executor,
        dedup=DedupTracker(),
        tick_interval_s=s.TICK_INTERVAL_S,
        query_tick_interval_s=s.QUERY_TICK_INTERVAL_S,
        metric_debounce_s=s.METRIC_DEBOUNCE_S,
        schedule_debounce_s=s.SCHEDULE_DEBOUNCE_S,
    )


async def serve(engine: AutomationEngine) -> None:
    engine.start()
    try:
        await asyncio.Event().wait()
    finally:
        await engine.stop()


def run() -> None:
    setup_logging()
    logger.info("Starting automation_engine")
    engine = build_engine()
    try:
        asyncio.run(serve(engine))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    run()
