"""Route definitions for the SQL Gateway REST API.

Implements the Flink SQL Gateway v1 endpoints:
    /v1/info, /v1/api_versions - Gateway metadata
    /v1/sessions - Session management
    /v1/sessions/{sessionHandle}/statements - Statement submission
    /v1/sessions/{sessionHandle}/operations/... - Operation status, results and cancellation
"""

from starlette.routing import Route

from . import handlers

_SESSION = "/v1/sessions/{sessionHandle}"
_OPERATION = _SESSION + "/operations/{operationHandle}"


def get_gateway_routes() -> list[Route]:
    """Get all SQL Gateway routes.

    Returns:
        List of Starlette Route objects for the SQL Gateway REST API
    """
    return [
        Route("/v1/info", handlers.get_info, methods=["GET"]),
        Route("/v1/api_versions", handlers.get_api_versions, methods=["GET"]),
        Route("/v1/sessions", handlers.open_session, methods=["POST"]),
        Route(_SESSION, handlers.get_session_config, methods=["GET"]),
        Route(_SESSION, handlers.close_session, methods=["DELETE"]),
        Route(_SESSION + "/heartbeat", handlers.heartbeat, methods=["POST"]),
        Route(_SESSION + "/statements", handlers.execute_statement, methods=["POST"]),
        Route(_OPERATION + "/status", handlers.get_operation_status, methods=["GET"]),
        Route(_OPERATION + "/result/{token}", handlers.fetch_results, methods=["GET"]),
        Route(_OPERATION + "/cancel", handlers.cancel_operation, methods=["POST"]),
        Route(_OPERATION + "/close", handlers.close_operation, methods=["DELETE"]),
    ]
