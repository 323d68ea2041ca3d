"""flinkduck Server - Flink SQL Gateway compatible REST API backed by DuckDB.

Modules:
    server: Main application and CLI entry point
    routes: SQL Gateway v1 routes
    handlers: Request handlers and background statement execution
    middleware: HTTP middleware (error handling)
    shared: Shared state (DuckDB connection, session and operation managers)
"""

from .middleware import ErrorHandlingMiddleware
from .operation_manager import Operation, OperationManager
from .routes import get_gateway_routes
from .server import app, create_app
from .session_manager import GatewaySession, SessionManager
from .shared import ServerError, operation_manager, session_manager, shared_connection

__all__ = [
    # Application
    "app",
    "create_app",
    # Routes
    "get_gateway_routes",
    # Middleware
    "ErrorHandlingMiddleware",
    # Managers
    "GatewaySession",
    "Operation",
    "OperationManager",
    "SessionManager",
    "operation_manager",
    "session_manager",
    # Shared state
    "ServerError",
    "shared_connection",
]
