"""Operation management for the gateway emulator.

This module provides storage and lifecycle management for submitted
statements (operations) and serves their results as changelog pages, with
LRU eviction for memory management.
"""

from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

# Operation statuses as reported by the Flink SQL Gateway
PENDING = "PENDING"
RUNNING = "RUNNING"
FINISHED = "FINISHED"
CANCELED = "CANCELED"
ERROR = "ERROR"
CLOSED = "CLOSED"

TERMINAL_STATUSES = frozenset([FINISHED, CANCELED, ERROR, CLOSED])


def default_page_size() -> int:
    return max(1, int(os.getenv("FLINKDUCK_PAGE_SIZE", "100")))


@dataclass
class Operation:
    """Stores one submitted statement and its result.

    Attributes:
        handle: Unique identifier for the operation
        session_handle: Session the operation was submitted to
        statement: The SQL statement text
        status: PENDING, RUNNING, FINISHED, CANCELED, ERROR or CLOSED
        created_on: Timestamp when the operation was created (ms since epoch)
        columns: Result column descriptors in gateway JSON form
        rows: Result rows as changelog entries (kind + fields)
        result_kind: SUCCESS or SUCCESS_WITH_CONTENT
        page_size: Rows per result page
        error_message: Error message (on failure)
        error_details: Server-side trace lines (on failure)
    """

    handle: str
    session_handle: str
    statement: str
    status: str = PENDING
    created_on: int = field(default_factory=lambda: int(time.time() * 1000))

    # Result data (populated on success)
    columns: list[dict[str, Any]] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    result_kind: str = "SUCCESS"
    page_size: int = field(default_factory=default_page_size)

    # Error info (populated on failure)
    error_message: str | None = None
    error_details: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def get_page_count(self) -> int:
        """Number of PAYLOAD pages; at least one so the schema is always sent."""
        return max(1, (len(self.rows) + self.page_size - 1) // self.page_size)

    def get_page(self, token: int) -> list[dict[str, Any]]:
        """Get changelog rows for a page token.

        Args:
            token: Zero-indexed page token

        Returns:
            List of rows in the page
        """
        start = token * self.page_size
        return self.rows[start : start + self.page_size]


class OperationManager:
    """Manages operations and their results.

    Provides thread-safe storage with LRU eviction to prevent unbounded
    memory growth.

    Attributes:
        max_operations: Maximum number of operations to retain
    """

    def __init__(self, max_operations: int = 1000) -> None:
        self._operations: dict[str, Operation] = {}
        self._order: list[str] = []
        self._max_operations = max_operations
        self._lock = Lock()

    def create_operation(self, session_handle: str, statement: str) -> Operation:
        """Create a new pending operation.

        Args:
            session_handle: Session the statement was submitted to
            statement: The SQL statement text

        Returns:
            New Operation in PENDING status
        """
        op = Operation(
            handle=str(uuid.uuid4()),
            session_handle=session_handle,
            statement=statement,
        )

        with self._lock:
            # Evict oldest if at capacity
            while len(self._operations) >= self._max_operations and self._order:
                oldest = self._order.pop(0)
                self._operations.pop(oldest, None)

            self._operations[op.handle] = op
            self._order.append(op.handle)

        return op

    def get_operation(self, session_handle: str, handle: str) -> Operation | None:
        """Get an operation of a session by handle."""
        with self._lock:
            op = self._operations.get(handle)
        if op is None or op.session_handle != session_handle:
            return None
        return op

    def start(self, op: Operation) -> bool:
        """Move a pending operation to RUNNING. False if it was cancelled first."""
        with self._lock:
            if op.status != PENDING:
                return False
            op.status = RUNNING
            return True

    def finish(
        self,
        op: Operation,
        columns: list[dict[str, Any]],
        rows: list[dict[str, Any]],
        result_kind: str,
    ) -> None:
        """Store results unless the operation was cancelled meanwhile."""
        with self._lock:
            if op.status != RUNNING:
                return
            op.columns = columns
            op.rows = rows
            op.result_kind = result_kind
            op.status = FINISHED

    def fail(self, op: Operation, message: str, details: list[str] | None = None) -> None:
        with self._lock:
            if op.status != RUNNING:
                return
            op.error_message = message
            op.error_details = list(details or [])
            op.status = ERROR

    def cancel_operation(self, op: Operation) -> str:
        """Cancel an operation that has not reached a terminal status.

        Returns:
            The operation's status after the call
        """
        with self._lock:
            if not op.is_terminal:
                op.status = CANCELED
            return op.status

    def close_operation(self, op: Operation) -> None:
        with self._lock:
            op.status = CLOSED
            self._operations.pop(op.handle, None)
            if op.handle in self._order:
                self._order.remove(op.handle)

    def close_session_operations(self, session_handle: str) -> int:
        """Close every operation of a session. Returns how many were closed."""
        with self._lock:
            handles = [
                h for h, op in self._operations.items() if op.session_handle == session_handle
            ]
        for handle in handles:
            op = self._operations.get(handle)
            if op is not None:
                self.close_operation(op)
        return len(handles)

    def list_operations(self, session_handle: str | None = None) -> list[Operation]:
        """List operations, most recent first."""
        with self._lock:
            operations = list(self._operations.values())
        if session_handle:
            operations = [op for op in operations if op.session_handle == session_handle]
        operations.sort(key=lambda op: op.created_on, reverse=True)
        return operations
