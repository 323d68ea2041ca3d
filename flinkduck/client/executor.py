"""Per-statement execution.

A ``StatementExecutor`` submits one statement, polls its result pages until
the stream ends, folds the changelog into a local row list and notifies its
listeners after every page that changed something.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import Any, Callable

from .changelog import apply_change, rows_match
from .errors import GatewayError, SessionCreationFailed, StatementExecutionFailed
from .gateway import GatewayClient
from .session import SessionCoordinator
from .types import (
    Column,
    Diagnostic,
    ExecutionResult,
    Outcome,
    Phase,
    ResultKind,
    ResultPage,
    ResultType,
    Row,
    StateDelta,
    StatementEvent,
    StatementSnapshot,
    now_ms,
)

logger = logging.getLogger(__name__)

StatementListener = Callable[[StatementEvent], None]

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_SLEEP_SLICE = 0.05
DEFAULT_MAX_POLLS = 1000


def generate_statement_id() -> str:
    return f"stmt_{now_ms()}_{secrets.token_hex(5)}"


def preview(statement: str, max_length: int = 100) -> str:
    return statement[:max_length] + ("..." if len(statement) > max_length else "")


class StatementExecutor:
    """Runs a single statement against the gateway.

    Args:
        sessions: Coordinator providing the gateway session
        gateway: Gateway client used for submission and polling
        statement_id: Identifier for this attempt (generated when omitted)
        poll_interval: Delay in seconds before fetching the next page
        sleep_slice: Granularity in seconds at which the delay checks for
            cancellation
        max_polls: Hard ceiling on result page fetches
    """

    def __init__(
        self,
        sessions: SessionCoordinator,
        gateway: GatewayClient,
        statement_id: str | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep_slice: float = DEFAULT_SLEEP_SLICE,
        max_polls: int = DEFAULT_MAX_POLLS,
    ) -> None:
        self._sessions = sessions
        self._gateway = gateway
        self.statement_id = statement_id or generate_statement_id()
        self.poll_interval = poll_interval
        self.sleep_slice = sleep_slice
        self.max_polls = max_polls

        self._operation_handle: str | None = None
        self._cancel_requested = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._listeners: list[StatementListener] = []

        self._phase = Phase.STOPPED
        self._result_type: str = ResultType.EOS
        self._result_kind: str = ResultKind.SUCCESS
        self._rows: list[Row] = []
        self._columns: tuple[Column, ...] = ()
        self._error: str | None = None
        self._diagnostics: tuple[Diagnostic, ...] = ()
        self._last_update: int | None = None

    @property
    def operation_handle(self) -> str | None:
        return self._operation_handle

    @property
    def is_running(self) -> bool:
        return self._phase == Phase.RUNNING

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_requested

    def snapshot(self) -> StatementSnapshot:
        return StatementSnapshot(
            statement_id=self.statement_id,
            operation_handle=self._operation_handle,
            phase=self._phase,
            result_type=self._result_type,
            result_kind=self._result_kind,
            rows=tuple(self._rows),
            columns=self._columns,
            last_update=self._last_update,
            error=self._error,
            diagnostics=self._diagnostics,
        )

    # Listeners

    def add_listener(self, listener: StatementListener) -> None:
        """Subscribe to state events.

        The listener gets the current state right away when rows exist or
        the statement is running.
        """
        if listener not in self._listeners:
            self._listeners.append(listener)
        logger.debug(f"[{self.statement_id}] Added listener, total: {len(self._listeners)}")
        if self._rows or self._phase == Phase.RUNNING:
            self._call(listener, StatementEvent.for_snapshot(self.snapshot()))

    def remove_listener(self, listener: StatementListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _call(self, listener: StatementListener, event: StatementEvent) -> None:
        try:
            listener(event)
        except Exception:
            logger.exception(f"[{self.statement_id}] Error in statement listener")

    def _publish(self, event: StatementEvent) -> None:
        for listener in list(self._listeners):
            self._call(listener, event)

    def _update_state(self, **changes: Any) -> bool:
        """Apply changed fields and publish a snapshot.

        Nothing is published when every given field already holds its value.
        """
        changed = {
            key: value
            for key, value in changes.items()
            if self._differs(key, getattr(self, f"_{key}"), value)
        }
        if not changed:
            return False
        for key, value in changed.items():
            setattr(self, f"_{key}", value)
        self._last_update = now_ms()
        self._publish(StatementEvent.for_snapshot(self.snapshot()))
        return True

    @staticmethod
    def _differs(key: str, current: Any, new: Any) -> bool:
        if key == "rows":
            return len(current) != len(new) or not all(
                rows_match(a, b) for a, b in zip(current, new)
            )
        return current != new

    # Execution

    async def execute(self, statement: str) -> ExecutionResult:
        """Submit ``statement`` and poll until it completes or is cancelled.

        Returns:
            Result with outcome COMPLETED or CANCELLED

        Raises:
            SessionCreationFailed: When no session could be opened.
            StatementExecutionFailed: When submitting or polling fails.

        Either way the phase is STOPPED and the error is recorded.
        """
        if not self._idle.is_set():
            raise RuntimeError(f"Statement {self.statement_id} is already executing")

        self._idle.clear()
        logger.info(f"[{self.statement_id}] Starting execution: {preview(statement)}")
        self._operation_handle = None
        self._update_state(
            phase=Phase.RUNNING,
            result_type=ResultType.EOS,
            result_kind=ResultKind.SUCCESS,
            rows=[],
            columns=(),
            error=None,
            diagnostics=(),
        )

        try:
            try:
                session = await self._sessions.get_session()
                if not await self._sessions.validate_session():
                    logger.info(f"[{self.statement_id}] Session invalid, creating new one")
                    # Validation cleared the stale session
                    session = await self._sessions.get_session()

                if self._cancel_requested:
                    logger.info(f"[{self.statement_id}] Cancelled before submission")
                    return self._finish_cancelled()

                self._operation_handle = await self._gateway.submit_statement(
                    session.handle, statement
                )
                logger.info(
                    f"[{self.statement_id}] Operation submitted with handle: {self._operation_handle}"
                )
                return await self._poll(session.handle)
            except asyncio.CancelledError:
                self._update_state(
                    phase=Phase.STOPPED,
                    result_type=ResultType.CANCELLED,
                    result_kind=ResultKind.CANCELLED,
                )
                raise
            except SessionCreationFailed as e:
                self._fail(e)
                raise
            except Exception as e:
                raise self._fail(e) from e
        finally:
            self._idle.set()

    def _fail(self, error: Exception) -> StatementExecutionFailed:
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        logger.error(f"[{self.statement_id}] Execution failed: {message}")
        if isinstance(error, GatewayError) and error.is_session_error:
            self._sessions.invalidate()
        self._update_state(
            phase=Phase.STOPPED,
            result_type=ResultType.ERROR,
            result_kind=ResultKind.ERROR,
            error=message,
        )
        return StatementExecutionFailed(
            self.statement_id, message, operation_handle=self._operation_handle
        )

    async def _poll(self, session_handle: str) -> ExecutionResult:
        token = 0
        polls = 0

        while polls < self.max_polls:
            if self._cancel_requested:
                break
            polls += 1
            logger.debug(
                f"[{self.statement_id}] Polling attempt {polls}/{self.max_polls} with token {token}"
            )

            page = await self._gateway.get_operation_result(
                session_handle, self._operation_handle, token
            )
            if self._cancel_requested:
                break

            self._apply_page(page)
            if self._cancel_requested:
                break

            if page.result_type == ResultType.EOS:
                logger.debug(f"[{self.statement_id}] Received EOS")
                break
            if page.next_page_token is None:
                logger.debug(f"[{self.statement_id}] No more results available")
                break
            token = page.next_page_token
            await self._sleep()
        else:
            logger.warning(
                f"[{self.statement_id}] Maximum polling attempts reached ({self.max_polls})"
            )

        if self._cancel_requested:
            await self._cancel_remote(session_handle)
            return self._finish_cancelled()

        self._update_state(phase=Phase.STOPPED)
        logger.info(
            f"[{self.statement_id}] Execution completed: "
            f"{len(self._rows)} rows, {len(self._columns)} columns"
        )
        return ExecutionResult(
            outcome=Outcome.COMPLETED,
            statement_id=self.statement_id,
            message=f"Statement completed. Type: {self._result_type}, Kind: {self._result_kind}",
            snapshot=self.snapshot(),
        )

    def _apply_page(self, page: ResultPage) -> None:
        changes: dict[str, Any] = {"result_type": page.result_type}
        if page.result_kind:
            changes["result_kind"] = page.result_kind

        # The schema is fixed by the first page that carries one
        if page.columns and not self._columns:
            changes["columns"] = page.columns
            logger.debug(f"[{self.statement_id}] Found {len(page.columns)} columns")

        if page.has_content:
            rows = list(self._rows)
            inserted: list[Row] = []
            removed: list[Row] = []
            diagnostics: list[Diagnostic] = []

            for event in page.rows:
                if self._cancel_requested:
                    logger.info(f"[{self.statement_id}] Cancelled during row processing")
                    break
                outcome = apply_change(rows, event, self.statement_id)
                if outcome.inserted is not None:
                    inserted.append(outcome.inserted)
                if outcome.removed is not None:
                    removed.append(outcome.removed)
                if outcome.diagnostic is not None:
                    diagnostics.append(outcome.diagnostic)

            if inserted or removed or diagnostics:
                self._publish(
                    StatementEvent.for_delta(
                        self.statement_id,
                        StateDelta(
                            inserted=tuple(inserted),
                            removed=tuple(removed),
                            diagnostics=tuple(diagnostics),
                        ),
                    )
                )
            changes["rows"] = rows
            if diagnostics:
                changes["diagnostics"] = self._diagnostics + tuple(diagnostics)
            logger.debug(
                f"[{self.statement_id}] Changelog applied: +{len(inserted)} -{len(removed)} "
                f"(total: {len(rows)} rows)"
            )

        self._update_state(**changes)

    async def _sleep(self) -> None:
        """Wait ``poll_interval`` in ``sleep_slice`` steps, stopping on cancel."""
        deadline = time.monotonic() + self.poll_interval
        while not self._cancel_requested:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            await asyncio.sleep(min(self.sleep_slice, remaining))

    async def _cancel_remote(self, session_handle: str) -> None:
        if not self._operation_handle:
            return
        cancel_operation = getattr(self._gateway, "cancel_operation", None)
        if cancel_operation is None:
            return
        try:
            await cancel_operation(session_handle, self._operation_handle)
            logger.info(f"[{self.statement_id}] Remote operation {self._operation_handle} cancelled")
        except Exception as e:
            logger.warning(f"[{self.statement_id}] Server cancellation failed: {e}")

    def _finish_cancelled(self) -> ExecutionResult:
        self._update_state(
            phase=Phase.STOPPED,
            result_type=ResultType.CANCELLED,
            result_kind=ResultKind.CANCELLED,
        )
        logger.info(f"[{self.statement_id}] Execution cancelled with {len(self._rows)} rows")
        return ExecutionResult(
            outcome=Outcome.CANCELLED,
            statement_id=self.statement_id,
            message="Statement execution was cancelled",
            snapshot=self.snapshot(),
        )

    async def cancel(self) -> None:
        """Request cancellation and wait for the poll loop to unwind.

        The loop notices the request at its next check point, at most one
        sleep slice later, and then asks the gateway to cancel the operation.
        """
        if not self._cancel_requested:
            logger.info(f"[{self.statement_id}] Cancelling statement execution")
        self._cancel_requested = True
        await self._idle.wait()
