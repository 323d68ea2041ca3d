"""Tests for concurrent execution and global event fan-out."""

import asyncio

import pytest
from conftest import not_ready, payload

from flinkduck.client import (
    EventKind,
    GatewayError,
    LifecycleType,
    Outcome,
    Phase,
    SessionCreationFailed,
    StatementEvent,
    StatementExecutionFailed,
)


async def wait_for(predicate, timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


def lifecycle(events):
    return [(e.lifecycle, e.statement_id) for e in events if e.kind == EventKind.LIFECYCLE]


class TestExecute:
    @pytest.mark.asyncio
    async def test_lifecycle_events_wrap_execution(self, gateway, coordinator) -> None:
        events = []
        coordinator.add_listener(events.append)
        gateway.default_script = [payload([("INSERT", [1, "a"])], next_token=None)]

        result = await coordinator.execute("SELECT 1", statement_id="s1")

        assert result.outcome == Outcome.COMPLETED
        assert lifecycle(events) == [
            (LifecycleType.STARTED, "s1"),
            (LifecycleType.COMPLETED, "s1"),
        ]
        assert events[0].detail["statement"] == "SELECT 1"
        assert events[-1].detail["outcome"] == "COMPLETED"
        assert any(e.kind == EventKind.STATE_SNAPSHOT for e in events)
        assert coordinator.active_count == 0

    @pytest.mark.asyncio
    async def test_failure_publishes_error_and_raises(self, gateway, coordinator) -> None:
        events = []
        coordinator.add_listener(events.append)
        gateway.submit_error = GatewayError("syntax error", status_code=400)

        with pytest.raises(StatementExecutionFailed):
            await coordinator.execute("SELEC 1", statement_id="bad")

        error_event = events[-1]
        assert error_event.lifecycle == LifecycleType.ERRORED
        assert error_event.detail["error"] == "syntax error"
        assert coordinator.get_statement("bad") is None

    @pytest.mark.asyncio
    async def test_running_statement_is_registered(self, gateway, coordinator) -> None:
        gateway.default_script = [not_ready(0)]
        task = asyncio.create_task(coordinator.execute("SELECT 1", statement_id="s1"))
        await wait_for(lambda: len(gateway.fetches) > 0)

        assert coordinator.has_running_statements
        assert set(coordinator.running_statements()) == {"s1"}
        assert coordinator.get_statement("s1").phase == Phase.RUNNING

        await coordinator.cancel("s1")
        await task
        assert coordinator.active_count == 0

    @pytest.mark.asyncio
    async def test_duplicate_active_id_rejected(self, gateway, coordinator) -> None:
        gateway.default_script = [not_ready(0)]
        first = asyncio.create_task(coordinator.execute("SELECT 1", statement_id="dup"))
        await wait_for(lambda: len(gateway.fetches) > 0)

        with pytest.raises(ValueError):
            await coordinator.execute("SELECT 2", statement_id="dup")

        assert len(gateway.submitted) == 1
        await coordinator.close_session()
        result = await first
        assert result.outcome == Outcome.CANCELLED
        assert coordinator.active_count == 0

    @pytest.mark.asyncio
    async def test_statement_id_reusable_after_completion(self, gateway, coordinator) -> None:
        await coordinator.execute("SELECT 1", statement_id="again")

        result = await coordinator.execute("SELECT 2", statement_id="again")

        assert result.outcome == Outcome.COMPLETED

    @pytest.mark.asyncio
    async def test_task_cancellation_publishes_cancelled(self, gateway, coordinator) -> None:
        events = []
        coordinator.add_listener(events.append)
        gateway.default_script = [not_ready(0)]
        task = asyncio.create_task(coordinator.execute("SELECT 1", statement_id="s1"))
        await wait_for(lambda: len(gateway.fetches) > 0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert lifecycle(events) == [
            (LifecycleType.STARTED, "s1"),
            (LifecycleType.CANCELLED, "s1"),
        ]
        assert coordinator.active_count == 0

    @pytest.mark.asyncio
    async def test_session_creation_failure_published(self, gateway, coordinator) -> None:
        events = []
        coordinator.add_listener(events.append)
        gateway.create_error = GatewayError("gateway down")

        with pytest.raises(SessionCreationFailed):
            await coordinator.execute("SELECT 1", statement_id="s1")

        assert events[-1].lifecycle == LifecycleType.ERRORED
        assert "gateway down" in events[-1].detail["error"]

    @pytest.mark.asyncio
    async def test_concurrent_statements_are_isolated(self, gateway, coordinator) -> None:
        gateway.scripts["A"] = [
            payload([("INSERT", [1, "a"])], next_token=1),
            payload([("INSERT", [2, "a"])], next_token=None, columns=None),
        ]
        gateway.scripts["B"] = [
            payload([("INSERT", [10, "b"])], next_token=1),
            not_ready(1),
            payload([("INSERT", [20, "b"])], next_token=None, columns=None),
        ]

        a, b = await asyncio.gather(
            coordinator.execute("A", statement_id="a"),
            coordinator.execute("B", statement_id="b"),
        )

        assert a.snapshot.rows == ((1, "a"), (2, "a"))
        assert b.snapshot.rows == ((10, "b"), (20, "b"))
        assert len({session for session, _ in gateway.submitted}) == 1
        assert gateway.create_calls == 1

    @pytest.mark.asyncio
    async def test_malformed_event_is_dropped(self, coordinator) -> None:
        events = []
        coordinator.add_listener(events.append)
        coordinator._publish(StatementEvent(kind=EventKind.LIFECYCLE, statement_id="x"))

        assert events == []


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_unknown_statement(self, coordinator) -> None:
        report = await coordinator.cancel("missing")

        assert not report.found
        assert not report.success

    @pytest.mark.asyncio
    async def test_cancel_keeps_partial_rows(self, gateway, coordinator) -> None:
        events = []
        coordinator.add_listener(events.append)
        gateway.default_script = [
            payload([("INSERT", [1, "a"])], next_token=1),
            not_ready(1),
        ]
        task = asyncio.create_task(coordinator.execute("SELECT 1", statement_id="s1"))
        await wait_for(lambda: len(gateway.fetches) >= 2)

        report = await coordinator.cancel("s1")
        result = await task

        assert report.found and report.success
        assert result.outcome == Outcome.CANCELLED
        assert result.snapshot.rows == ((1, "a"),)
        assert (LifecycleType.CANCELLED, "s1") in lifecycle(events)

    @pytest.mark.asyncio
    async def test_cancel_by_operation_handle(self, gateway, coordinator) -> None:
        gateway.default_script = [not_ready(0)]
        task = asyncio.create_task(coordinator.execute("SELECT 1", statement_id="s1"))
        await wait_for(lambda: len(gateway.fetches) > 0)

        report = await coordinator.cancel_operation("op-1")
        await task

        assert report is not None and report.statement_id == "s1"
        assert await coordinator.cancel_operation("op-unknown") is None

    @pytest.mark.asyncio
    async def test_cancel_all_reports_every_statement(self, gateway, coordinator) -> None:
        events = []
        coordinator.add_listener(events.append)
        gateway.default_script = [not_ready(0)]
        tasks = [
            asyncio.create_task(coordinator.execute("SELECT 1", statement_id=sid))
            for sid in ("s1", "s2")
        ]
        await wait_for(lambda: len(gateway.submitted) == 2)

        reports = await coordinator.cancel_all()
        results = await asyncio.gather(*tasks)

        assert {r.statement_id for r in reports} == {"s1", "s2"}
        assert all(r.success for r in reports)
        assert all(r.outcome == Outcome.CANCELLED for r in results)
        all_cancelled = [e for e in events if e.lifecycle == LifecycleType.ALL_CANCELLED]
        assert len(all_cancelled) == 1
        assert all_cancelled[0].detail["reports"] == reports
        assert coordinator.active_count == 0


class TestSessionPassthrough:
    @pytest.mark.asyncio
    async def test_close_session_cancels_statements_first(self, gateway, coordinator) -> None:
        gateway.default_script = [not_ready(0)]
        task = asyncio.create_task(coordinator.execute("SELECT 1", statement_id="s1"))
        await wait_for(lambda: len(gateway.fetches) > 0)

        await coordinator.close_session()
        result = await task

        assert result.outcome == Outcome.CANCELLED
        assert gateway.cancelled == ["op-1"]
        assert gateway.closed == ["session-1"]
        assert not coordinator.session_info.is_active

    @pytest.mark.asyncio
    async def test_refresh_session_replaces_handle(self, gateway, coordinator) -> None:
        first = await coordinator.get_session()

        second = await coordinator.refresh_session()

        assert first.handle != second.handle
        assert coordinator.session_info.handle == second.handle

    @pytest.mark.asyncio
    async def test_updated_properties_apply_to_next_session(self, gateway, coordinator) -> None:
        coordinator.update_session_properties({"parallelism.default": "4"})

        session = await coordinator.get_session()

        assert gateway.sessions[session.handle]["parallelism.default"] == "4"
        assert gateway.sessions[session.handle]["execution.runtime-mode"] == "streaming"

    @pytest.mark.asyncio
    async def test_async_context_manager_closes_session(self, gateway, coordinator) -> None:
        async with coordinator:
            await coordinator.execute("SELECT 1")

        assert gateway.closed == ["session-1"]
