"""Statement execution core for the Flink SQL Gateway.

Modules:
    gateway: Gateway protocol and REST client
    session: Session coordinator (one current session)
    executor: Per-statement submit/poll/fold loop
    coordinator: Concurrent execution and event fan-out
    changelog: Row equality and change-event folding
    types: Data model
    errors: Exception taxonomy
    config: Connection and polling settings
"""

from .changelog import apply_change, rows_match, values_equal
from .config import DEFAULT_SESSION_PROPERTIES, GatewaySettings
from .coordinator import ExecutionCoordinator
from .errors import (
    FlinkDuckError,
    GatewayError,
    SessionCreationFailed,
    StatementExecutionFailed,
)
from .executor import StatementExecutor
from .gateway import GatewayClient, RestGatewayClient, extract_root_cause
from .session import SessionCoordinator
from .types import (
    CancelReport,
    ChangeEvent,
    Column,
    Diagnostic,
    EventKind,
    ExecutionResult,
    LifecycleType,
    Outcome,
    Phase,
    ResultKind,
    ResultPage,
    ResultType,
    RowKind,
    Session,
    SessionInfo,
    StateDelta,
    StatementEvent,
    StatementSnapshot,
)


def connect(settings: GatewaySettings | None = None, **kwargs) -> ExecutionCoordinator:
    """Build a coordinator wired to a REST gateway client.

    Keyword arguments are passed to ``RestGatewayClient`` (e.g. ``transport``).
    """
    settings = settings or GatewaySettings.from_env()
    gateway = RestGatewayClient(settings, **kwargs)
    sessions = SessionCoordinator(gateway, settings.session_properties)
    return ExecutionCoordinator(
        gateway,
        sessions,
        poll_interval=settings.poll_interval,
        sleep_slice=settings.sleep_slice,
        max_polls=settings.max_polls,
    )


# Lazy import for the Arrow export (requires pyarrow)
def __getattr__(name: str):
    if name == "to_arrow":
        from .arrow import to_arrow
        return to_arrow
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Coordinators
    "ExecutionCoordinator",
    "SessionCoordinator",
    "StatementExecutor",
    "connect",
    # Gateway
    "GatewayClient",
    "GatewaySettings",
    "RestGatewayClient",
    "DEFAULT_SESSION_PROPERTIES",
    "extract_root_cause",
    # Changelog
    "apply_change",
    "rows_match",
    "values_equal",
    # Errors
    "FlinkDuckError",
    "GatewayError",
    "SessionCreationFailed",
    "StatementExecutionFailed",
    # Types
    "CancelReport",
    "ChangeEvent",
    "Column",
    "Diagnostic",
    "EventKind",
    "ExecutionResult",
    "LifecycleType",
    "Outcome",
    "Phase",
    "ResultKind",
    "ResultPage",
    "ResultType",
    "RowKind",
    "Session",
    "SessionInfo",
    "StateDelta",
    "StatementEvent",
    "StatementSnapshot",
    "to_arrow",
]
