from .client import (
    ExecutionCoordinator,
    GatewaySettings,
    RestGatewayClient,
    SessionCoordinator,
    StatementExecutor,
    connect,
)
from .helper import format_for_display, split_statements, statement_type

__version__ = "0.1.0"

__all__ = [
    "ExecutionCoordinator",
    "GatewaySettings",
    "RestGatewayClient",
    "SessionCoordinator",
    "StatementExecutor",
    "connect",
    "format_for_display",
    "split_statements",
    "statement_type",
]
