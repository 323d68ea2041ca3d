"""Exceptions raised by the statement execution core."""

from __future__ import annotations


class FlinkDuckError(Exception):
    """Base class for flinkduck client errors."""


class GatewayError(FlinkDuckError):
    """A call to the SQL gateway failed.

    Attributes:
        status_code: HTTP status, or None when no response was received
        endpoint: Gateway path that was called
        message: Remote error text (root cause when one could be extracted)
    """

    def __init__(
        self, message: str, status_code: int | None = None, endpoint: str | None = None
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint
        prefix = f"HTTP {status_code}" if status_code is not None else "Gateway unreachable"
        super().__init__(f"{prefix} - {message}")

    @property
    def is_session_error(self) -> bool:
        """True when the failure means the session no longer exists."""
        if self.status_code == 404 and self.endpoint and "/sessions/" in self.endpoint:
            return True
        return "session" in self.message.lower() and self.status_code in (400, 404, 500)


class SessionCreationFailed(FlinkDuckError):
    """The gateway refused or failed to open a session."""


class StatementExecutionFailed(FlinkDuckError):
    """Submission or polling of a statement failed.

    Keeps the statement id, the operation handle (when the statement got that
    far) and the original remote error text.
    """

    def __init__(
        self, statement_id: str, message: str, operation_handle: str | None = None
    ) -> None:
        self.statement_id = statement_id
        self.operation_handle = operation_handle
        self.message = message
        location = statement_id
        if operation_handle:
            location += f" (operation {operation_handle})"
        super().__init__(f"Statement {location} failed: {message}")
