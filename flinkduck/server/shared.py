"""Shared state and utilities for the flinkduck gateway emulator.

This module contains:
- ServerError exception class
- Shared DuckDB connection, session manager and operation manager instances
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

import duckdb

from .operation_manager import OperationManager
from .session_manager import SessionManager

# Shared DuckDB connection; every gateway session gets its own cursor on it.
# Use FLINKDUCK_DB_PATH environment variable for persistence, or in-memory by default
shared_connection = duckdb.connect(database=os.getenv("FLINKDUCK_DB_PATH", ":memory:"))

# Shared session manager for tracking gateway sessions
session_manager = SessionManager(shared_connection)

# Shared operation manager for tracking submitted statements
operation_manager = OperationManager()


@dataclass
class ServerError(Exception):
    """Exception raised for gateway errors with an HTTP status code.

    ``details`` are extra entries for the ``errors`` list of the response,
    e.g. a server-side stack trace.
    """

    status_code: int
    message: str
    details: list[str] = field(default_factory=list)

    def to_errors(self) -> list[str]:
        return [self.message, *self.details]
