"""Execution coordination across concurrently running statements.

The ``ExecutionCoordinator`` creates one ``StatementExecutor`` per statement,
keeps a registry of the active ones, re-publishes their events to global
listeners and makes sure no executor keeps polling a session that is being
closed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .executor import (
    DEFAULT_MAX_POLLS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SLEEP_SLICE,
    StatementExecutor,
    StatementListener,
    preview,
)
from .gateway import GatewayClient
from .session import SessionCoordinator, SessionListener
from .types import (
    CancelReport,
    EventKind,
    ExecutionResult,
    LifecycleType,
    Phase,
    Session,
    SessionInfo,
    StatementEvent,
    StatementSnapshot,
)

logger = logging.getLogger(__name__)

GlobalListener = Callable[[StatementEvent], None]


class ExecutionCoordinator:
    """Runs statements and fans their events out to global listeners.

    Args:
        gateway: Gateway client shared by all executors
        sessions: Session coordinator shared by all executors
        poll_interval: Passed to every executor
        sleep_slice: Passed to every executor
        max_polls: Passed to every executor
    """

    def __init__(
        self,
        gateway: GatewayClient,
        sessions: SessionCoordinator,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep_slice: float = DEFAULT_SLEEP_SLICE,
        max_polls: int = DEFAULT_MAX_POLLS,
    ) -> None:
        self._gateway = gateway
        self._sessions = sessions
        self._executor_options = {
            "poll_interval": poll_interval,
            "sleep_slice": sleep_slice,
            "max_polls": max_polls,
        }
        self._active: dict[str, StatementExecutor] = {}
        self._listeners: list[GlobalListener] = []

    # Global listeners

    def add_listener(self, listener: GlobalListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: GlobalListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, event: StatementEvent) -> None:
        if not self._is_well_formed(event):
            logger.warning(f"Dropping malformed event: {event!r}")
            return
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Error in global listener for event {event.kind.value}")

    @staticmethod
    def _is_well_formed(event: StatementEvent) -> bool:
        if event.kind == EventKind.LIFECYCLE:
            if event.lifecycle is None:
                return False
            return event.lifecycle == LifecycleType.ALL_CANCELLED or bool(event.statement_id)
        if event.kind == EventKind.STATE_SNAPSHOT:
            return event.snapshot is not None and event.snapshot.phase is not None
        if event.kind == EventKind.STATE_DELTA:
            return event.delta is not None
        return False

    # Statements

    async def execute(
        self, statement: str, statement_id: str | None = None
    ) -> ExecutionResult:
        """Run ``statement`` in a new executor and return its result.

        Failures are published as a ``statement_error`` lifecycle event and
        re-raised.

        Raises:
            ValueError: If ``statement_id`` belongs to an active statement
        """
        if statement_id is not None and statement_id in self._active:
            raise ValueError(f"Statement {statement_id} is already active")

        executor = StatementExecutor(
            self._sessions,
            self._gateway,
            statement_id=statement_id,
            **self._executor_options,
        )
        statement_id = executor.statement_id
        self._active[statement_id] = executor
        logger.info(f"Created statement executor: {statement_id}")

        def forward(event: StatementEvent) -> None:
            self._publish(event)
            if (
                event.snapshot is not None
                and event.snapshot.phase == Phase.STOPPED
                and self._active.get(statement_id) is executor
            ):
                del self._active[statement_id]
                logger.debug(f"Statement {statement_id} stopped and removed from active list")

        executor.add_listener(forward)

        self._publish(
            StatementEvent.for_lifecycle(
                LifecycleType.STARTED, statement_id, statement=preview(statement)
            )
        )
        try:
            result = await executor.execute(statement)
        except asyncio.CancelledError:
            self._deregister(statement_id, executor)
            self._publish(StatementEvent.for_lifecycle(LifecycleType.CANCELLED, statement_id))
            raise
        except Exception as e:
            self._deregister(statement_id, executor)
            self._publish(
                StatementEvent.for_lifecycle(
                    LifecycleType.ERRORED,
                    statement_id,
                    error=getattr(e, "message", None) or str(e),
                    operation_handle=executor.operation_handle,
                )
            )
            raise
        self._deregister(statement_id, executor)
        self._publish(
            StatementEvent.for_lifecycle(
                LifecycleType.COMPLETED,
                statement_id,
                outcome=result.outcome.value,
                result=result,
            )
        )
        return result

    def _deregister(self, statement_id: str, executor: StatementExecutor) -> None:
        if self._active.get(statement_id) is executor:
            del self._active[statement_id]

    async def cancel(self, statement_id: str) -> CancelReport:
        """Cancel one statement. An unknown id is reported, not raised."""
        executor = self._active.get(statement_id)
        if executor is None:
            logger.info(f"Statement {statement_id} not found in active statements")
            return CancelReport(statement_id, found=False, success=False, message="Statement not found")

        logger.info(f"Cancelling statement: {statement_id}")
        await executor.cancel()
        self._deregister(statement_id, executor)
        self._publish(StatementEvent.for_lifecycle(LifecycleType.CANCELLED, statement_id))
        return CancelReport(
            statement_id, found=True, success=True, message="Statement execution cancelled"
        )

    async def cancel_operation(self, operation_handle: str) -> CancelReport | None:
        """Cancel the statement that owns ``operation_handle``."""
        for statement_id, executor in list(self._active.items()):
            if executor.operation_handle == operation_handle:
                return await self.cancel(statement_id)
        logger.info(f"Operation handle {operation_handle} not found in active statements")
        return None

    async def cancel_all(self) -> list[CancelReport]:
        """Cancel every active statement, collecting one report each."""
        executors = list(self._active.items())
        logger.info(f"Cancelling all {len(executors)} active statements")

        async def cancel_one(statement_id: str, executor: StatementExecutor) -> CancelReport:
            try:
                await executor.cancel()
            except Exception as e:
                logger.error(f"Error cancelling statement {statement_id}: {e}")
                return CancelReport(statement_id, found=True, success=False, message=str(e))
            return CancelReport(statement_id, found=True, success=True)

        reports = list(
            await asyncio.gather(*(cancel_one(sid, ex) for sid, ex in executors))
        )
        for statement_id, executor in executors:
            self._deregister(statement_id, executor)

        self._publish(
            StatementEvent.for_lifecycle(
                LifecycleType.ALL_CANCELLED, None, reports=reports
            )
        )
        return reports

    # Introspection

    def get_statement(self, statement_id: str) -> StatementSnapshot | None:
        executor = self._active.get(statement_id)
        return executor.snapshot() if executor else None

    def active_statements(self) -> dict[str, StatementSnapshot]:
        return {sid: ex.snapshot() for sid, ex in self._active.items()}

    def running_statements(self) -> dict[str, StatementSnapshot]:
        return {sid: ex.snapshot() for sid, ex in self._active.items() if ex.is_running}

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def has_running_statements(self) -> bool:
        return any(ex.is_running for ex in self._active.values())

    def add_statement_listener(self, statement_id: str, listener: StatementListener) -> bool:
        executor = self._active.get(statement_id)
        if executor is None:
            return False
        executor.add_listener(listener)
        return True

    def remove_statement_listener(self, statement_id: str, listener: StatementListener) -> bool:
        executor = self._active.get(statement_id)
        if executor is None:
            return False
        executor.remove_listener(listener)
        return True

    # Session passthrough

    @property
    def session_info(self) -> SessionInfo:
        return self._sessions.session_info

    def add_session_listener(self, listener: SessionListener) -> None:
        self._sessions.add_listener(listener)

    def remove_session_listener(self, listener: SessionListener) -> None:
        self._sessions.remove_listener(listener)

    def update_session_properties(self, properties: dict[str, str]) -> None:
        self._sessions.update_properties(properties)

    async def get_session(self) -> Session:
        return await self._sessions.get_session()

    async def validate_session(self) -> bool:
        return await self._sessions.validate_session()

    async def close_session(self) -> None:
        """Cancel all statements, then close the session."""
        await self.cancel_all()
        await self._sessions.close_session()

    async def refresh_session(self) -> Session:
        """Cancel all statements and replace the session with a new one."""
        await self.cancel_all()
        return await self._sessions.refresh_session()

    async def aclose(self) -> None:
        """Close the session and release the gateway client."""
        await self.close_session()
        close = getattr(self._gateway, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> ExecutionCoordinator:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
