"""Middleware classes for the flinkduck gateway emulator.

This module contains HTTP middleware for:
- Error handling: Converts ServerError exceptions to gateway error responses
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from .shared import ServerError

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware to handle ServerError exceptions globally.

    Catches ServerError exceptions and converts them to JSON responses
    with the appropriate HTTP status code and the gateway's
    ``{"errors": [...]}`` format.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except ServerError as e:
            logger.debug(f"{request.method} {request.url.path} -> {e.status_code}: {e.message}")
            return JSONResponse({"errors": e.to_errors()}, status_code=e.status_code)
