"""FastAPI application entrypoint and configuration.

This module provides the application factory that sets up logging, CORS
middleware, error handlers for the structured error taxonomy, the API
routers and a health check endpoint.

Example:
    The application can be run with uvicorn:
        $ uvicorn mapsource.main:app --reload

    Or imported and used programmatically:
        >>> from mapsource.main import create_app
        >>> app = create_app()
"""

import logging
from typing import cast

import fastapi
from fastapi import responses
from fastapi.middleware import cors

from mapsource.api import capabilities, layers, tiles
from mapsource.core import config, errors, logging_config

logger = logging.getLogger(__name__)


def _error_status(exc: errors.MapSourceError) -> int:
    """Map a structured error to an HTTP status code."""
    match exc:
        case errors.ConfigurationError() | errors.PersistenceError():
            return 422
        case errors.NetworkError(code="TIMEOUT"):
            return 504
        case errors.NetworkError() | errors.ParseError():
            return 502
    return 500


async def _handle_error(
    _request: fastapi.Request, exc: Exception
) -> responses.JSONResponse:
    error = cast(errors.MapSourceError, exc)
    status = _error_status(error)
    logger.log(
        logging.WARNING if status < 500 else logging.ERROR,
        "%s: %s",
        error.code,
        error.message,
    )
    return responses.JSONResponse(status_code=status, content=error.as_dict())


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance ready for ASGI server.

    Example:
        The app can be used with uvicorn or other ASGI servers:
            >>> app = create_app()
            >>> # Or use the module-level app instance:
            >>> from mapsource.main import app
    """
    settings = config.get_settings()
    logging_config.configure_logging(settings)
    app = fastapi.FastAPI(title="Map Source", version="0.1.0")

    app.include_router(capabilities.router)
    app.include_router(layers.router)
    app.include_router(tiles.router)

    app.add_exception_handler(errors.MapSourceError, _handle_error)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
