import asyncio
from typing import Any, Iterable, Sequence

import pytest

from flinkduck.client import (
    ChangeEvent,
    Column,
    ExecutionCoordinator,
    GatewayError,
    ResultKind,
    ResultPage,
    ResultType,
    SessionCoordinator,
)


def payload(
    rows: Iterable[tuple[str, Sequence[Any]]],
    next_token: int | None = 1,
    columns: Sequence[tuple[str, str]] | None = (("id", "INT"), ("name", "STRING")),
    result_kind: str = ResultKind.SUCCESS_WITH_CONTENT,
) -> ResultPage:
    """Build a PAYLOAD page from ``(kind, fields)`` pairs."""
    return ResultPage(
        result_type=ResultType.PAYLOAD,
        result_kind=result_kind,
        columns=tuple(Column(name, type_name) for name, type_name in columns) if columns else None,
        rows=tuple(ChangeEvent(kind, tuple(fields)) for kind, fields in rows),
        next_page_token=next_token,
    )


def not_ready(token: int = 0) -> ResultPage:
    return ResultPage(result_type=ResultType.NOT_READY, next_page_token=token)


def eos() -> ResultPage:
    return ResultPage(result_type=ResultType.EOS, result_kind=ResultKind.SUCCESS_WITH_CONTENT)


class FakeGateway:
    """In-memory gateway that replays scripted result pages.

    Each submitted statement gets a copy of ``scripts[statement]`` (or
    ``default_script``). Fetches consume the script; the last entry repeats
    forever. Exceptions in a script are raised from the fetch.
    """

    def __init__(self) -> None:
        self.scripts: dict[str, list[Any]] = {}
        self.default_script: list[Any] = [eos()]
        self.sessions: dict[str, dict[str, str]] = {}
        self.operations: dict[str, list[Any]] = {}
        self.submitted: list[tuple[str, str]] = []
        self.fetches: list[tuple[str, str, int]] = []
        self.cancelled: list[str] = []
        self.closed: list[str] = []
        self.create_calls = 0

        self.create_error: Exception | None = None
        self.validate_error: Exception | None = None
        self.submit_error: Exception | None = None
        self.close_error: Exception | None = None
        self.cancel_error: Exception | None = None

    async def create_session(self, properties: dict[str, str]) -> str:
        self.create_calls += 1
        await asyncio.sleep(0)
        if self.create_error is not None:
            raise self.create_error
        handle = f"session-{self.create_calls}"
        self.sessions[handle] = dict(properties)
        return handle

    async def get_session(self, session_handle: str) -> dict[str, Any]:
        if self.validate_error is not None:
            raise self.validate_error
        if session_handle not in self.sessions:
            raise GatewayError(
                f"Session '{session_handle}' does not exist.",
                status_code=404,
                endpoint=f"/v1/sessions/{session_handle}",
            )
        return {"properties": self.sessions[session_handle]}

    async def close_session(self, session_handle: str) -> dict[str, Any]:
        self.closed.append(session_handle)
        self.sessions.pop(session_handle, None)
        if self.close_error is not None:
            raise self.close_error
        return {"status": "CLOSED"}

    async def submit_statement(self, session_handle: str, statement: str) -> str:
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append((session_handle, statement))
        handle = f"op-{len(self.submitted)}"
        self.operations[handle] = list(self.scripts.get(statement, self.default_script))
        return handle

    async def get_operation_result(
        self, session_handle: str, operation_handle: str, token: int
    ) -> ResultPage:
        self.fetches.append((session_handle, operation_handle, token))
        await asyncio.sleep(0)
        pages = self.operations[operation_handle]
        item = pages.pop(0) if len(pages) > 1 else pages[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def cancel_operation(self, session_handle: str, operation_handle: str) -> dict[str, Any]:
        self.cancelled.append(operation_handle)
        if self.cancel_error is not None:
            raise self.cancel_error
        return {"status": "CANCELED"}


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sessions(gateway: FakeGateway) -> SessionCoordinator:
    return SessionCoordinator(gateway, {"execution.runtime-mode": "streaming"})


@pytest.fixture
def coordinator(gateway: FakeGateway, sessions: SessionCoordinator) -> ExecutionCoordinator:
    """Coordinator with short poll delays for fast tests."""
    return ExecutionCoordinator(
        gateway, sessions, poll_interval=0.01, sleep_slice=0.005, max_polls=200
    )
