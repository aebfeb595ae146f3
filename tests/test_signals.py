from types import SimpleNamespace

import pytest

from automation_engine import signals
from automation_engine.errors import SignalFetchError


def test_psutil_provider_reads_cpu_and_disk(monkeypatch) -> None:
    seen: list[str] = []
    monkeypatch.setattr(signals.psutil, "cpu_percent", lambda interval=None: 12.34)

    def disk_usage(path: str):
        seen.append(path)
        return SimpleNamespace(percent=91.26)

    monkeypatch.setattr(signals.psutil, "disk_usage", disk_usage)

    stats = signals.PsutilMetricsProvider("/data").get_system_stats()

    assert stats.cpu_percent == 12.3
    assert stats.storage_used_percent == 91.3
    assert seen == ["/data"]


def test_psutil_failure_is_signal_error(monkeypatch) -> None:
    monkeypatch.setattr(signals.psutil, "cpu_percent", lambda interval=None: 1.0)

    def broken(path: str):
        raise FileNotFoundError(path)

    monkeypatch.setattr(signals.psutil, "disk_usage", broken)

    with pytest.raises(SignalFetchError):
        signals.PsutilMetricsProvider("/missing").get_system_stats()


@pytest.mark.asyncio
async def test_unavailable_executor_raises() -> None:
    with pytest.raises(SignalFetchError):
        await signals.UnavailableQueryExecutor().execute_query("db", "SELECT 1")
