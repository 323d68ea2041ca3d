"""End-to-end tests: the execution core driving the emulator in-process."""

from __future__ import annotations

import uuid

import httpx
import pytest

from flinkduck.client import (
    ExecutionCoordinator,
    GatewaySettings,
    LifecycleType,
    Outcome,
    StatementExecutionFailed,
    connect,
)
from flinkduck.client.arrow import to_arrow

try:
    from flinkduck.server import create_app

    HAS_SERVER_DEPS = True
except ImportError:
    HAS_SERVER_DEPS = False


pytestmark = pytest.mark.skipif(
    not HAS_SERVER_DEPS, reason="Server dependencies not installed"
)


def make_coordinator() -> ExecutionCoordinator:
    settings = GatewaySettings(
        url="http://flinkduck", poll_interval=0.01, sleep_slice=0.005, max_polls=500
    )
    return connect(settings, transport=httpx.ASGITransport(app=create_app()))


@pytest.mark.asyncio
async def test_create_insert_select() -> None:
    table = f"orders_{uuid.uuid4().hex[:8]}"
    async with make_coordinator() as coordinator:
        created = await coordinator.execute(f"CREATE TABLE {table} (id INT, name STRING)")
        assert created.outcome == Outcome.COMPLETED
        assert created.snapshot.rows == ()

        await coordinator.execute(f"INSERT INTO {table} VALUES (1, 'a'), (2, 'b')")
        result = await coordinator.execute(f"SELECT id, name FROM {table} ORDER BY id")

    assert result.outcome == Outcome.COMPLETED
    assert result.snapshot.rows == ((1, "a"), (2, "b"))
    assert [c.name for c in result.snapshot.columns] == ["id", "name"]
    assert result.snapshot.as_dicts() == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]

    table_out = to_arrow(result.snapshot)
    assert table_out.column("id").to_pylist() == [1, 2]


@pytest.mark.asyncio
async def test_failure_carries_root_cause() -> None:
    events = []
    async with make_coordinator() as coordinator:
        coordinator.add_listener(events.append)
        with pytest.raises(StatementExecutionFailed) as exc_info:
            await coordinator.execute("SELECT * FROM missing_orders", statement_id="bad")

    error = exc_info.value
    assert error.statement_id == "bad"
    assert error.operation_handle is not None
    assert "missing_orders" in error.message
    assert any(e.lifecycle == LifecycleType.ERRORED for e in events)


@pytest.mark.asyncio
async def test_session_properties_round_trip() -> None:
    async with make_coordinator() as coordinator:
        await coordinator.execute("SET 'pipeline.name' = 'orders'")
        result = await coordinator.execute("SET")

    assert ("pipeline.name", "orders") in result.snapshot.rows
    assert ("execution.runtime-mode", "streaming") in result.snapshot.rows
