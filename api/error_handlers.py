"""
Centralized error handling for the MeLink API.

Every error leaves the service as a JSON body with ``error``, ``message``
and ``timestamp`` fields.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def create_error_response(error_type: str, message: str, status_code: int = 500,
                          details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        error_type: Type of error (e.g., "validation_error", "upload_failed")
        message: Error message
        status_code: HTTP status code
        details: Optional additional details

    Returns:
        JSONResponse with standardized error format
    """
    response_data = {
        "error": error_type,
        "message": message,
        "status_code": status_code,
        "timestamp": datetime.now().isoformat()
    }

    if details:
        response_data["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=response_data
    )


def _from_http_exception(exc: StarletteHTTPException) -> JSONResponse:
    # Handlers raise with {"error": ..., "message": ...} details; plain string
    # details come from FastAPI itself (404 routes, 405 methods)
    if isinstance(exc.detail, dict):
        return create_error_response(
            exc.detail.get("error", "http_error"),
            exc.detail.get("message", ""),
            exc.status_code,
            details={k: v for k, v in exc.detail.items() if k not in ("error", "message")}
        )
    return create_error_response("http_error", str(exc.detail), exc.status_code)


def setup_error_handlers(app):
    """
    Setup global error handlers for the FastAPI application.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions."""
        return _from_http_exception(exc)

    @app.exception_handler(StarletteHTTPException)
    async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle Starlette HTTP exceptions."""
        return _from_http_exception(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        return create_error_response(
            "validation_error",
            "Request validation failed",
            422,
            details={"errors": jsonable_errors(exc)}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return create_error_response("internal_error", "An unexpected error occurred", 500)

    logger.info("Error handlers setup complete")


def jsonable_errors(exc: RequestValidationError):
    """Validation errors with non-serializable context stripped."""
    return [
        {key: value for key, value in error.items() if key in ("loc", "msg", "type")}
        for error in exc.errors()
    ]
