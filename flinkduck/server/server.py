import argparse
import logging

try:
    from starlette.applications import Starlette
    from starlette.requests import Request
    from starlette.responses import JSONResponse
    from starlette.routing import Route
    from uvicorn import run
except ImportError as e:
    raise ImportError(
        "Optional dependencies for the server are not installed. "
        "Install them using one of the following commands:\n"
        "  - With uv: 'uv sync --extra server'\n"
        "  - With pip: 'pip install flinkduck[server]'"
    ) from e

from .middleware import ErrorHandlingMiddleware
from .routes import get_gateway_routes
from .shared import ServerError

logger = logging.getLogger(__name__)


async def fallback_route(request: Request) -> JSONResponse:
    """Fallback route for unmatched requests."""
    logger.warning(f"Received unmatched request: {request.method} {request.url}")
    raise ServerError(
        status_code=404,
        message=f"Unable to find handler for {request.method} {request.url.path}",
    )


def create_app(debug: bool = False) -> Starlette:
    """Creates the gateway emulator application."""
    routes = [
        *get_gateway_routes(),
        Route("/{path:path}", fallback_route),
    ]
    app = Starlette(debug=debug, routes=routes)
    app.add_middleware(ErrorHandlingMiddleware)
    return app


app = create_app()


# CLI Entry Point
def main() -> None:
    parser = argparse.ArgumentParser(description="Run the flinkduck SQL Gateway emulator.")

    parser.add_argument(
        "--host", type=str, default="127.0.0.1", help="Host to run the server on (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port", type=int, default=8083, help="Port to run the server on (default: 8083)"
    )

    parser.add_argument(
        "--debug", action="store_true", help="Enable debug mode (default: False)"
    )

    args = parser.parse_args()

    app.debug = args.debug

    # Run the server with the provided arguments
    run(app, host=args.host, port=args.port, log_level="debug" if args.debug else "info")


if __name__ == "__main__":
    main()
