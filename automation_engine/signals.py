"""Signal sources consumed by the trigger evaluator.

The host supplies the query executor; metrics default to a psutil-backed
provider reading CPU load and the usage of one watched mount point.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import psutil

from .errors import SignalFetchError
from .models.signals import QueryResult, SystemStats

logger = logging.getLogger(__name__)


class MetricsProvider(ABC):
    """Best-effort, synchronous system metrics."""

    @abstractmethod
    def get_system_stats(self) -> SystemStats:
        raise NotImplementedError


class QueryExecutor(ABC):
    """Runs stored SQL against a named external data source."""

    @abstractmethod
    async def execute_query(self, source_id: str, sql: str) -> QueryResult:
        raise NotImplementedError


class PsutilMetricsProvider(MetricsProvider):
    def __init__(self, storage_path: str = "/") -> None:
        self.storage_path = storage_path
        # First non-blocking cpu_percent() call always returns 0.0
        try:
            psutil.cpu_percent(interval=None)
        except Exception:
            logger.debug("cpu_percent priming failed", exc_info=True)

    def get_system_stats(self) -> SystemStats:
        try:
            cpu_pct = float(psutil.cpu_percent(interval=None))
            disk = psutil.disk_usage(self.storage_path)
        except Exception as exc:
            raise SignalFetchError(f"System stats unavailable: {exc}") from exc
        return SystemStats(
            cpu_percent=round(cpu_pct, 1),
            storage_used_percent=round(float(disk.percent), 1),
        )


class UnavailableQueryExecutor(QueryExecutor):
    """Default when the host wires no data sources."""

    async def execute_query(self, source_id: str, sql: str) -> QueryResult:
        raise SignalFetchError(f"No query executor configured for source {source_id}")
