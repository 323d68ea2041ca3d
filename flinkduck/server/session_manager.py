import asyncio
import secrets
import time
from dataclasses import dataclass, field
from typing import Dict

from duckdb import DuckDBPyConnection


@dataclass
class GatewaySession:
    """An emulated gateway session backed by its own DuckDB cursor."""

    handle: str
    properties: Dict[str, str]
    defaults: Dict[str, str]
    cursor: DuckDBPyConnection
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    created_on: int = field(default_factory=lambda: int(time.time() * 1000))
    last_access: int = field(default_factory=lambda: int(time.time() * 1000))

    def touch(self) -> None:
        self.last_access = int(time.time() * 1000)


class SessionManager:
    def __init__(self, connection: DuckDBPyConnection) -> None:
        self._connection = connection
        self._sessions: Dict[str, GatewaySession] = {}

    def create_session(self, properties: Dict[str, str]) -> GatewaySession:
        """Creates a new session with its own cursor."""
        handle = secrets.token_hex(16)
        session = GatewaySession(
            handle=handle,
            properties=dict(properties),
            defaults=dict(properties),
            cursor=self._connection.cursor(),
        )
        self._sessions[handle] = session
        return session

    def get_session(self, handle: str) -> GatewaySession:
        """Retrieves a session by handle."""
        if handle not in self._sessions:
            raise ValueError(f"Session '{handle}' does not exist.")
        session = self._sessions[handle]
        session.touch()
        return session

    def delete_session(self, handle: str) -> None:
        """Deletes a session by handle and closes its cursor."""
        session = self._sessions.pop(handle, None)
        if session is not None:
            try:
                session.cursor.close()
            except Exception:
                # Cursor may already be closed with the shared connection
                pass

    def session_exists(self, handle: str) -> bool:
        """Checks if a session exists for the given handle."""
        return handle in self._sessions

    def count(self) -> int:
        return len(self._sessions)
