"""HTTP request handlers for the SQL Gateway REST API (v1).

Handlers:
    get_info: GET /v1/info
    get_api_versions: GET /v1/api_versions
    open_session: POST /v1/sessions
    get_session_config: GET /v1/sessions/{sessionHandle}
    close_session: DELETE /v1/sessions/{sessionHandle}
    heartbeat: POST /v1/sessions/{sessionHandle}/heartbeat
    execute_statement: POST /v1/sessions/{sessionHandle}/statements
    get_operation_status: GET .../operations/{operationHandle}/status
    fetch_results: GET .../operations/{operationHandle}/result/{token}
    cancel_operation: POST .../operations/{operationHandle}/cancel
    close_operation: DELETE .../operations/{operationHandle}/close

Statements run in a background task after the submit response, so clients
observe ``NOT_READY`` pages until the operation finishes.
"""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING, Any

import duckdb
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse

from ..helper.sql import statement_type
from .dialect import handle_session_command, translate
from .operation_manager import CANCELED, ERROR, PENDING, RUNNING, Operation
from .serializers import serialize_changelog
from .session_manager import GatewaySession
from .shared import ServerError, operation_manager, session_manager
from .types import build_columns, string_column

if TYPE_CHECKING:
    from starlette.requests import Request

logger = logging.getLogger(__name__)

SUCCESS = "SUCCESS"
SUCCESS_WITH_CONTENT = "SUCCESS_WITH_CONTENT"

# Java-style exception names, so clients can pick the root cause from "Caused by:"
_GATEWAY_EXCEPTION = "org.apache.flink.table.gateway.api.utils.SqlGatewayException"
_EXECUTION_EXCEPTION = "org.apache.flink.table.gateway.service.utils.SqlExecutionException"


def _product_version() -> str:
    try:
        return version("flinkduck")
    except PackageNotFoundError:
        return "0.0.0"


def _get_session(request: Request) -> GatewaySession:
    handle = request.path_params["sessionHandle"]
    try:
        return session_manager.get_session(handle)
    except ValueError:
        raise ServerError(
            status_code=404,
            message=f"Session '{handle}' does not exist.",
            details=[
                f"{_GATEWAY_EXCEPTION}: Failed to get session.\n"
                f"Caused by: {_GATEWAY_EXCEPTION}: Session '{handle}' does not exist."
            ],
        ) from None


def _get_operation(request: Request, session: GatewaySession) -> Operation:
    handle = request.path_params["operationHandle"]
    op = operation_manager.get_operation(session.handle, handle)
    if op is None:
        raise ServerError(
            status_code=404,
            message=f"Can not find the submitted operation in the OperationManager with the {handle}.",
        )
    return op


async def _read_json(request: Request) -> dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    try:
        data = await request.json()
    except ValueError:
        raise ServerError(status_code=400, message="Request body is not valid JSON.") from None
    if not isinstance(data, dict):
        raise ServerError(status_code=400, message="Request body must be a JSON object.")
    return data


async def get_info(request: Request) -> JSONResponse:
    return JSONResponse({"productName": "flinkduck", "version": _product_version()})


async def get_api_versions(request: Request) -> JSONResponse:
    return JSONResponse({"versions": ["V1"]})


async def open_session(request: Request) -> JSONResponse:
    """Opens a session with the given properties."""
    body = await _read_json(request)
    properties = body.get("properties") or {}
    if not isinstance(properties, dict):
        raise ServerError(status_code=400, message="Session properties must be an object.")

    session = session_manager.create_session({str(k): str(v) for k, v in properties.items()})
    logger.info(f"Opened session {session.handle}")
    return JSONResponse({"sessionHandle": session.handle})


async def get_session_config(request: Request) -> JSONResponse:
    session = _get_session(request)
    return JSONResponse({"properties": dict(session.properties)})


async def close_session(request: Request) -> JSONResponse:
    """Closes a session together with all of its operations."""
    session = _get_session(request)
    closed = operation_manager.close_session_operations(session.handle)
    session_manager.delete_session(session.handle)
    logger.info(f"Closed session {session.handle} ({closed} operations)")
    return JSONResponse({"status": "CLOSED"})


async def heartbeat(request: Request) -> JSONResponse:
    _get_session(request)
    return JSONResponse({})


async def execute_statement(request: Request) -> JSONResponse:
    """Submits a statement and returns its operation handle immediately.

    Request Body:
        statement: SQL text
        executionConfig: Per-statement properties (accepted, unused)
    """
    session = _get_session(request)
    body = await _read_json(request)
    statement = body.get("statement")
    if not isinstance(statement, str) or not statement.strip():
        raise ServerError(status_code=400, message="Missing required field 'statement'.")

    op = operation_manager.create_operation(session.handle, statement)
    logger.debug(f"Submitted operation {op.handle} in session {session.handle}")
    return JSONResponse(
        {"operationHandle": op.handle},
        background=BackgroundTask(_run_operation, session, op),
    )


async def _run_operation(session: GatewaySession, op: Operation) -> None:
    if not operation_manager.start(op):
        return

    # One statement at a time per session cursor
    async with session.lock:
        try:
            columns, rows, result_kind = await run_in_threadpool(
                _execute, session, op.statement
            )
        except duckdb.Error as e:
            logger.info(f"Operation {op.handle} failed: {e}")
            operation_manager.fail(op, str(e), _error_trace(op, e))
            return
        except Exception as e:
            logger.exception(f"Unexpected error in operation {op.handle}")
            operation_manager.fail(op, str(e), _error_trace(op, e))
            return

    operation_manager.finish(op, columns, rows, result_kind)


def _execute(
    session: GatewaySession, statement: str
) -> tuple[list[dict[str, Any]], list[dict[str, Any]], str]:
    command = handle_session_command(statement, session.properties, session.defaults)
    if command is not None:
        columns = [string_column(name) for name in command.columns]
        kind = SUCCESS if command.columns == ["result"] else SUCCESS_WITH_CONTENT
        return columns, serialize_changelog(command.rows), kind

    cursor = session.cursor
    cursor.execute(translate(statement))

    if cursor.description is None or statement_type(statement) in ("DDL", "COMMAND"):
        return [string_column("result")], serialize_changelog([("OK",)]), SUCCESS

    table = cursor.fetch_arrow_table()
    values = [column.to_pylist() for column in table.columns]
    rows = list(zip(*values)) if values else []
    return build_columns(table.schema), serialize_changelog(rows), SUCCESS_WITH_CONTENT


def _error_trace(op: Operation, e: Exception) -> list[str]:
    return [
        f"{_EXECUTION_EXCEPTION}: Failed to execute the operation {op.handle}.\n"
        f"Caused by: duckdb.{type(e).__name__}: {e}"
    ]


async def get_operation_status(request: Request) -> JSONResponse:
    session = _get_session(request)
    op = _get_operation(request, session)
    return JSONResponse({"status": op.status})


def _result_uri(session: GatewaySession, op: Operation, token: int) -> str:
    return (
        f"/v1/sessions/{session.handle}/operations/{op.handle}"
        f"/result/{token}?rowFormat=JSON"
    )


async def fetch_results(request: Request) -> JSONResponse:
    """Serves one page of an operation's result.

    Query Parameters:
        rowFormat: Only ``JSON`` is supported
    """
    session = _get_session(request)
    op = _get_operation(request, session)

    row_format = request.query_params.get("rowFormat", "JSON")
    if row_format.upper() != "JSON":
        raise ServerError(status_code=400, message=f"Unsupported row format '{row_format}'.")

    try:
        token = int(request.path_params["token"])
    except ValueError:
        raise ServerError(status_code=400, message="Result token must be an integer.") from None
    if token < 0:
        raise ServerError(status_code=400, message="Result token must not be negative.")

    if op.status in (PENDING, RUNNING):
        return JSONResponse(
            {
                "resultType": "NOT_READY",
                "results": {"columns": [], "data": []},
                "nextResultUri": _result_uri(session, op, token),
            }
        )

    if op.status == ERROR:
        raise ServerError(
            status_code=500,
            message=f"Failed to fetchResults: {op.error_message}",
            details=op.error_details,
        )

    if op.status == CANCELED:
        raise ServerError(
            status_code=500,
            message="Failed to fetchResults.",
            details=[
                f"{_GATEWAY_EXCEPTION}: Failed to fetchResults.\n"
                f"Caused by: {_GATEWAY_EXCEPTION}: Operation {op.handle} has been cancelled."
            ],
        )

    response: dict[str, Any] = {
        "resultKind": op.result_kind,
        "isQueryResult": statement_type(op.statement) == "QUERY",
        "rowFormat": "JSON",
        "jobID": None,
    }
    if token >= op.get_page_count():
        response["resultType"] = "EOS"
        response["results"] = {"columns": op.columns, "data": []}
        return JSONResponse(response)

    response["resultType"] = "PAYLOAD"
    response["results"] = {"columns": op.columns, "data": op.get_page(token)}
    response["nextResultUri"] = _result_uri(session, op, token + 1)
    return JSONResponse(response)


async def cancel_operation(request: Request) -> JSONResponse:
    session = _get_session(request)
    op = _get_operation(request, session)
    status = operation_manager.cancel_operation(op)
    logger.info(f"Cancel requested for operation {op.handle}: {status}")
    return JSONResponse({"status": status})


async def close_operation(request: Request) -> JSONResponse:
    session = _get_session(request)
    op = _get_operation(request, session)
    operation_manager.close_operation(op)
    return JSONResponse({"status": op.status})
