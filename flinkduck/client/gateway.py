"""Flink SQL Gateway client.

PUBLIC API:
  - GatewayClient: the operations the execution core needs from a gateway
  - RestGatewayClient: httpx implementation of the SQL Gateway REST v1 API
  - extract_root_cause: pull a readable message out of a Java stack trace
"""

from __future__ import annotations

import logging
import re
from types import TracebackType
from typing import Any, Protocol, runtime_checkable

import httpx

from .config import GatewaySettings
from .errors import GatewayError
from .types import ResultPage

logger = logging.getLogger(__name__)

_EXCEPTION_PREFIX_RE = re.compile(r"^[a-zA-Z0-9.$]+(?:Exception|Error):\s*")


@runtime_checkable
class GatewayClient(Protocol):
    """Remote operations consumed by the execution core."""

    async def create_session(self, properties: dict[str, str]) -> str: ...

    async def get_session(self, session_handle: str) -> dict[str, Any]: ...

    async def close_session(self, session_handle: str) -> dict[str, Any]: ...

    async def submit_statement(self, session_handle: str, statement: str) -> str: ...

    async def get_operation_result(
        self, session_handle: str, operation_handle: str, token: int
    ) -> ResultPage: ...

    async def cancel_operation(
        self, session_handle: str, operation_handle: str
    ) -> dict[str, Any]: ...


def extract_root_cause(errors: Any) -> str | None:
    """Return the last ``Caused by:`` line of a Java stack trace, cleaned.

    Args:
        errors: The ``errors`` list of a gateway error response

    Returns:
        Root cause message without the exception class prefix, or None
    """
    if not isinstance(errors, list):
        return None

    trace = next(
        (e for e in errors if isinstance(e, str) and "Caused by:" in e), None
    )
    if trace is None:
        return None

    root = trace.split("Caused by:")[-1].strip()
    first_line = root.splitlines()[0].strip() if root else ""
    if not first_line:
        return None
    return _EXCEPTION_PREFIX_RE.sub("", first_line).strip() or first_line


def _error_message(response: httpx.Response) -> str:
    text = response.text
    try:
        body = response.json()
    except ValueError:
        return text

    errors = body.get("errors") if isinstance(body, dict) else None
    root_cause = extract_root_cause(errors)
    if root_cause:
        return root_cause
    if isinstance(errors, list) and errors:
        return "; ".join(str(e) for e in errors)
    return text


class RestGatewayClient:
    """Async HTTP client for the Flink SQL Gateway REST API (v1).

    Usable as an async context manager. An httpx transport can be injected,
    which the tests use to route requests to the in-process emulator.
    """

    api_version = "v1"

    def __init__(
        self,
        settings: GatewaySettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or GatewaySettings()
        self._client = httpx.AsyncClient(
            base_url=self.settings.url,
            timeout=self.settings.timeout,
            headers={
                "Accept": "application/json",
                **self.settings.auth_headers,
            },
            auth=self.settings.basic_auth,
            transport=transport,
        )

    async def __aenter__(self) -> RestGatewayClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _path(self, endpoint: str) -> str:
        return f"/{self.api_version}{endpoint}"

    async def _request(
        self, method: str, endpoint: str, **kwargs: Any
    ) -> dict[str, Any]:
        path = self._path(endpoint)
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.error(f"Gateway request {method} {path} failed: {e}")
            raise GatewayError(str(e) or type(e).__name__, endpoint=path) from e

        if response.is_error:
            message = _error_message(response)
            logger.error(f"Gateway returned {response.status_code} for {method} {path}: {message}")
            raise GatewayError(message, status_code=response.status_code, endpoint=path)

        if not response.content:
            return {}
        return response.json()

    async def get_info(self) -> dict[str, Any]:
        """Gateway product name and version."""
        return await self._request("GET", "/info")

    async def create_session(self, properties: dict[str, str]) -> str:
        data = await self._request(
            "POST", "/sessions", json={"properties": dict(properties)}
        )
        handle = data.get("sessionHandle")
        if not handle:
            raise GatewayError("Response did not contain a session handle", endpoint=self._path("/sessions"))
        logger.info(f"Session created: {handle}")
        return handle

    async def get_session(self, session_handle: str) -> dict[str, Any]:
        return await self._request("GET", f"/sessions/{session_handle}")

    async def close_session(self, session_handle: str) -> dict[str, Any]:
        logger.info(f"Closing session: {session_handle}")
        return await self._request("DELETE", f"/sessions/{session_handle}")

    async def submit_statement(self, session_handle: str, statement: str) -> str:
        endpoint = f"/sessions/{session_handle}/statements"
        data = await self._request("POST", endpoint, json={"statement": statement})
        handle = data.get("operationHandle")
        if not handle:
            raise GatewayError("Response did not contain an operation handle", endpoint=self._path(endpoint))
        return handle

    async def get_operation_status(
        self, session_handle: str, operation_handle: str
    ) -> dict[str, Any]:
        return await self._request(
            "GET", f"/sessions/{session_handle}/operations/{operation_handle}/status"
        )

    async def get_operation_result(
        self, session_handle: str, operation_handle: str, token: int
    ) -> ResultPage:
        data = await self._request(
            "GET",
            f"/sessions/{session_handle}/operations/{operation_handle}/result/{token}",
            params={"rowFormat": "JSON"},
        )
        if data.get("errors"):
            logger.error(f"Errors in operation {operation_handle} result: {data['errors']}")
        return ResultPage.from_json(data)

    async def cancel_operation(
        self, session_handle: str, operation_handle: str
    ) -> dict[str, Any]:
        return await self._request(
            "POST", f"/sessions/{session_handle}/operations/{operation_handle}/cancel"
        )
