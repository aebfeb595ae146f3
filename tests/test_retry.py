import threading
from dataclasses import fields

import pytest

from conftest import DummyClock, DummyDispatcher, DummySleep, make_rule
from automation_engine.errors import ConfigurationError, PersistenceError
from automation_engine.models.execution import (
    STATUS_FAILED,
    STATUS_SUCCESS,
    DispatchOutcome,
    DispatchState,
)
from automation_engine.retry import RetryController, snapshot_payload
from automation_engine.store import InMemoryRuleStore


def _controller(dispatcher, store, sleep=None, clock=None, backoff=(2.0, 4.0)):
    return RetryController(
        dispatcher,
        store,
        backoff_s=backoff,
        sleep=sleep or DummySleep(),
        clock=clock or DummyClock(),
    )


@pytest.mark.asyncio
async def test_fail_fail_success_logs_one_success() -> None:
    store = InMemoryRuleStore([make_rule(1)])
    sleep = DummySleep()
    clock = DummyClock()
    controller = _controller(DummyDispatcher(failures=2), store, sleep, clock)

    outcome = await controller.run(store.get_rule(1), {"storage_percent": 95, "timestamp": "t"})

    assert outcome.state is DispatchState.SUCCESS
    assert outcome.attempts == 3
    assert sleep.calls == [2.0, 4.0]
    logs = store.list_execution_logs()
    assert len(logs) == 1
    assert logs[0].status == STATUS_SUCCESS
    assert logs[0].attempt_count == 3
    assert logs[0].action_result == {"ok": True}
    assert logs[0].error_message is None
    assert store.get_rule(1).last_triggered_at == clock.now


@pytest.mark.asyncio
async def test_always_failing_logs_one_failure() -> None:
    store = InMemoryRuleStore([make_rule(1)])
    dispatcher = DummyDispatcher(failures=-1)
    controller = _controller(dispatcher, store)

    outcome = await controller.run(store.get_rule(1), {"timestamp": "t"})

    assert outcome.state is DispatchState.EXHAUSTED
    assert len(dispatcher.calls) == 3
    assert outcome.last_error == "HTTP 503"
    logs = store.list_execution_logs()
    assert len(logs) == 1
    assert logs[0].status == STATUS_FAILED
    assert logs[0].attempt_count == 3
    assert logs[0].error_message == "HTTP 503"
    assert store.get_rule(1).last_triggered_at is None


@pytest.mark.asyncio
async def test_first_attempt_success_does_not_sleep() -> None:
    store = InMemoryRuleStore([make_rule(1)])
    sleep = DummySleep()
    controller = _controller(DummyDispatcher(), store, sleep)

    outcome = await controller.run(store.get_rule(1), {"timestamp": "t"})

    assert outcome.attempts == 1
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_configuration_errors_are_retried_like_any_failure() -> None:
    store = InMemoryRuleStore([make_rule(1)])
    dispatcher = DummyDispatcher(failures=-1, error=ConfigurationError("no URL"))
    controller = _controller(dispatcher, store)

    await controller.run(store.get_rule(1), {"timestamp": "t"})

    assert len(dispatcher.calls) == 3
    assert store.list_execution_logs()[0].error_message == "no URL"


@pytest.mark.asyncio
async def test_backoff_length_sets_attempt_budget() -> None:
    store = InMemoryRuleStore([make_rule(1)])
    dispatcher = DummyDispatcher(failures=-1)
    controller = _controller(dispatcher, store, backoff=(1.0,))

    outcome = await controller.run(store.get_rule(1), {"timestamp": "t"})

    assert controller.max_attempts == 2
    assert outcome.attempts == 2


class BrokenLogStore(InMemoryRuleStore):
    def append_execution_log(self, entry) -> None:
        raise PersistenceError("disk full")


@pytest.mark.asyncio
async def test_log_write_failure_does_not_raise() -> None:
    store = BrokenLogStore([make_rule(1)])
    clock = DummyClock()
    controller = _controller(DummyDispatcher(), store, clock=clock)

    outcome = await controller.run(store.get_rule(1), {"timestamp": "t"})

    assert outcome.state is DispatchState.SUCCESS
    assert store.get_rule(1).last_triggered_at == clock.now


@pytest.mark.asyncio
async def test_missing_rule_on_mark_does_not_raise() -> None:
    store = InMemoryRuleStore()
    controller = _controller(DummyDispatcher(), store)

    outcome = await controller.run(make_rule(99), {"timestamp": "t"})

    assert outcome.state is DispatchState.SUCCESS
    assert len(store.list_execution_logs()) == 1


def test_snapshot_drops_rows_when_too_large() -> None:
    payload = {"row_count": 500, "rows": [{"v": "x" * 100}] * 100, "timestamp": "t"}

    snapshot = snapshot_payload(payload, max_chars=1000)

    assert "rows" not in snapshot
    assert snapshot["row_count"] == 500


def test_snapshot_is_json_safe() -> None:
    snapshot = snapshot_payload({"when": object(), "n": 1})

    assert isinstance(snapshot["when"], str)
    assert snapshot["n"] == 1


class ThreadRecordingStore(InMemoryRuleStore):
    def __init__(self, rules) -> None:
        super().__init__(rules)
        self.write_threads: list[int] = []

    def append_execution_log(self, entry) -> None:
        self.write_threads.append(threading.get_ident())
        super().append_execution_log(entry)

    def mark_last_triggered(self, rule_id, when) -> None:
        self.write_threads.append(threading.get_ident())
        super().mark_last_triggered(rule_id, when)


@pytest.mark.asyncio
async def test_repository_writes_run_off_the_event_loop_thread() -> None:
    store = ThreadRecordingStore([make_rule(1)])
    controller = _controller(DummyDispatcher(), store)

    await controller.run(store.get_rule(1), {"timestamp": "t"})

    assert len(store.write_threads) == 2
    assert threading.get_ident() not in store.write_threads


def test_outcome_carries_only_what_the_log_records() -> None:
    assert [f.name for f in fields(DispatchOutcome)] == [
        "state",
        "attempts",
        "result",
        "last_error",
    ]
