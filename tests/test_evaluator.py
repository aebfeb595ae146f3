from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOON, DummyQueryExecutor, make_rule
from automation_engine import evaluator
from automation_engine.models.rule import (
    DataQueryTrigger,
    EventTrigger,
    MetricThresholdTrigger,
    ScheduledTrigger,
)
from automation_engine.models.signals import QueryResult, SystemStats, UploadEvent

UTC_NOON = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def test_iso_timestamp_is_utc() -> None:
    when = datetime(2026, 1, 5, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert evaluator.iso_timestamp(when) == "2026-01-05T12:00:00Z"


def test_metric_uses_greater_or_equal() -> None:
    rule = make_rule(1, trigger=MetricThresholdTrigger(resource="cpu", threshold=80))
    at = evaluator.evaluate_metric(rule, SystemStats(cpu_percent=80.0, storage_used_percent=1), UTC_NOON)
    below = evaluator.evaluate_metric(rule, SystemStats(cpu_percent=79.9, storage_used_percent=1), UTC_NOON)

    assert at == {"cpu_percent": 80.0, "threshold": 80, "timestamp": "2026-01-05T12:00:00Z"}
    assert below is None


def test_query_payload_shape() -> None:
    rows = [{"id": i, "status": "late"} for i in range(15)]

    payload = evaluator.build_query_payload(QueryResult(rows=rows), UTC_NOON)

    assert payload["row_count"] == 15
    assert len(payload["rows"]) == 10
    assert payload["id"] == 0
    assert payload["status"] == "late"
    assert payload["timestamp"] == "2026-01-05T12:00:00Z"


def test_query_payload_first_row_overrides_builtin_keys() -> None:
    payload = evaluator.build_query_payload(QueryResult(rows=[{"row_count": "x"}]), UTC_NOON)
    assert payload["row_count"] == "x"


def test_empty_query_result_does_not_trigger() -> None:
    assert evaluator.build_query_payload(QueryResult(), UTC_NOON) is None


@pytest.mark.asyncio
async def test_query_rule_without_sql_is_skipped() -> None:
    executor = DummyQueryExecutor()
    rule = make_rule(1, trigger=DataQueryTrigger(source_id="db", query="  "))

    assert await evaluator.evaluate_query(rule, executor, UTC_NOON) is None
    assert executor.calls == []


def test_event_payload() -> None:
    rule = make_rule(1, trigger=EventTrigger())
    event = UploadEvent(
        owner_id=7,
        file_name="photo.jpeg",
        file_size_bytes=1536 * 1024,
        file_url="https://files.local/photo.jpeg",
    )

    payload = evaluator.evaluate_event(rule, event, UTC_NOON)

    assert payload == {
        "file_name": "photo.jpeg",
        "file_type": "jpeg",
        "file_size_bytes": 1536 * 1024,
        "file_size_mb": "1.50",
        "upload_time": "2026-01-05T12:00:00Z",
        "file_url": "https://files.local/photo.jpeg",
        "timestamp": "2026-01-05T12:00:00Z",
    }


def test_event_type_mismatch() -> None:
    rule = make_rule(1, trigger=EventTrigger(event_type="file_deleted"))
    event = UploadEvent(owner_id=7, file_name="a", file_size_bytes=1)
    assert evaluator.evaluate_event(rule, event, UTC_NOON) is None


def test_file_extension() -> None:
    assert evaluator.file_extension("archive.tar.GZ") == "gz"
    assert evaluator.file_extension("README") == ""


def test_metric_rules_skip_without_stats() -> None:
    metric = make_rule(1)
    scheduled = make_rule(2, trigger=ScheduledTrigger(cron="0 12 * * *"))

    matched = evaluator.evaluate_metric_rules([metric, scheduled], None, NOON)

    assert [rule.id for rule, _ in matched] == [2]


def test_query_payload_zips_sequence_rows_with_columns() -> None:
    result = QueryResult(rows=[(3, "late"), (4, "ok")], columns=["id", "status"])

    payload = evaluator.build_query_payload(result, UTC_NOON)

    assert payload["id"] == 3
    assert payload["status"] == "late"
    assert payload["rows"] == [{"id": 3, "status": "late"}, {"id": 4, "status": "ok"}]


def test_query_payload_sequence_rows_without_columns() -> None:
    payload = evaluator.build_query_payload(QueryResult(rows=[(1, 2)]), UTC_NOON)

    assert payload["row_count"] == 1
    assert payload["rows"] == [(1, 2)]
