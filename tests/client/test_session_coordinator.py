import asyncio

import pytest

from flinkduck.client import (
    GatewayError,
    SessionCoordinator,
    SessionCreationFailed,
    StatementExecutor,
)


@pytest.mark.asyncio
async def test_get_session_creates_once(gateway, sessions):
    """Concurrent callers share one lazily created session."""
    results = await asyncio.gather(*(sessions.get_session() for _ in range(5)))

    assert gateway.create_calls == 1
    assert len({s.handle for s in results}) == 1
    assert sessions.session_info.is_active


@pytest.mark.asyncio
async def test_expired_session_recreated_once(gateway, sessions):
    """Statements starting on an expired session share one replacement."""
    await sessions.get_session()
    gateway.sessions.clear()
    executors = [
        StatementExecutor(sessions, gateway, poll_interval=0.001, sleep_slice=0.001)
        for _ in range(3)
    ]

    await asyncio.gather(*(ex.execute(f"SELECT {i}") for i, ex in enumerate(executors)))

    assert gateway.create_calls == 2
    assert {handle for handle, _ in gateway.submitted} == {"session-2"}
    assert sessions.current.handle == "session-2"
    assert list(gateway.sessions) == ["session-2"]


@pytest.mark.asyncio
async def test_refresh_and_get_session_share_result(gateway, sessions):
    await sessions.get_session()

    refreshed, fetched = await asyncio.gather(
        sessions.refresh_session(), sessions.get_session()
    )

    assert fetched.handle == refreshed.handle == "session-2"
    assert gateway.create_calls == 2


@pytest.mark.asyncio
async def test_create_session_merges_properties(gateway, sessions):
    session = await sessions.create_session({"parallelism.default": "2"})

    assert session.properties == {
        "execution.runtime-mode": "streaming",
        "parallelism.default": "2",
    }
    assert gateway.sessions[session.handle] == session.properties


@pytest.mark.asyncio
async def test_create_session_failure(gateway, sessions):
    gateway.create_error = GatewayError("connection refused")

    with pytest.raises(SessionCreationFailed) as exc_info:
        await sessions.create_session()

    assert isinstance(exc_info.value.__cause__, GatewayError)
    assert sessions.current is None


@pytest.mark.asyncio
async def test_validate_session(gateway, sessions):
    assert not await sessions.validate_session()

    await sessions.get_session()
    assert await sessions.validate_session()

    gateway.sessions.clear()
    assert not await sessions.validate_session()
    assert sessions.current is None


@pytest.mark.asyncio
async def test_get_session_after_invalidate_creates_new(gateway, sessions):
    first = await sessions.get_session()
    sessions.invalidate()

    second = await sessions.get_session()

    assert first.handle != second.handle
    assert gateway.create_calls == 2


@pytest.mark.asyncio
async def test_close_session_absorbs_errors(gateway, sessions):
    await sessions.get_session()
    gateway.close_error = GatewayError("already gone", status_code=404)

    await sessions.close_session()

    assert sessions.current is None
    assert gateway.closed == ["session-1"]


@pytest.mark.asyncio
async def test_close_without_session_is_noop(gateway, sessions):
    await sessions.close_session()

    assert gateway.closed == []


@pytest.mark.asyncio
async def test_listeners_follow_session_changes(gateway):
    sessions = SessionCoordinator(gateway)
    seen = []
    sessions.add_listener(lambda info: seen.append(info.is_active))

    await sessions.get_session()
    await sessions.refresh_session()
    sessions.invalidate()

    assert seen == [True, False, True, False]


def test_session_info_without_session(sessions):
    info = sessions.session_info

    assert info.handle is None
    assert not info.is_active
    assert info.describe_age() == "No active session"
    assert info.properties == {"execution.runtime-mode": "streaming"}
