"""
Error handling for the HTTP surface.

Engine errors map to fixed status codes; everything else collapses into a
sanitized 500. Every response uses the same envelope:

    {"error": {"code", "message", "path", "method", ["details"]}}
"""

import logging
import math
import re
import traceback
from typing import Any, Callable, Optional
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError, OperationalError

from core.config import settings
from core.errors import Busy, EngineError

logger = logging.getLogger(__name__)

# Patterns for sensitive data that should never leave the service
SENSITIVE_PATTERNS = [
    re.compile(r'password["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'token["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'api[_-]?key["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'authorization["\s:]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'[\w.+-]+@[\w-]+\.[\w.]+'),  # email
]


def sanitize_error_message(message: Any) -> str:
    """Redact secrets and email addresses from an error message."""
    sanitized = str(message)
    for pattern in SENSITIVE_PATTERNS:
        sanitized = pattern.sub("[REDACTED]", sanitized)
    return sanitized


def _sanitize_details(details: dict[str, Any]) -> dict[str, Any]:
    return {
        key: sanitize_error_message(value) if isinstance(value, str) else value
        for key, value in details.items()
    }


def error_body(
    code: str,
    message: str,
    path: str,
    method: str,
    details: Optional[Any] = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "path": path,
        "method": method,
    }
    if details:
        body["details"] = details
    return {"error": body}


def retry_after_seconds() -> int:
    return max(1, math.ceil(settings.lock_timeout_seconds))


def engine_error_response(exc: EngineError, path: str, method: str) -> JSONResponse:
    """Translate an EngineError into its HTTP response."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {method} {path}: {sanitize_error_message(exc.message)}")
    else:
        logger.info(f"{exc.code} on {method} {path}: {sanitize_error_message(exc.message)}")

    headers = None
    if isinstance(exc, Busy):
        headers = {"Retry-After": str(retry_after_seconds())}

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(
            exc.code,
            sanitize_error_message(exc.message),
            path,
            method,
            _sanitize_details(exc.details),
        ),
        headers=headers,
    )


def format_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": sanitize_error_message(error["msg"]),
            "type": error["type"],
        }
        for error in exc.errors()
    ]


class ErrorHandlingMiddleware:
    """
    Outermost ASGI guard.

    Catches anything that escaped the FastAPI exception handlers and turns it
    into the standard envelope. Stack traces are included only in debug mode.
    """

    def __init__(self, app: Callable, debug: bool = False):
        self.app = app
        self.debug = debug

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            response = self._handle_exception(exc, scope)
            await response(scope, receive, send)

    def _handle_exception(self, exc: Exception, scope: dict) -> Response:
        path = scope.get("path", "unknown")
        method = scope.get("method", "unknown")

        if isinstance(exc, EngineError):
            return engine_error_response(exc, path, method)

        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        code = "INTERNAL"
        message = "An unexpected error occurred"
        details = None

        if isinstance(exc, StarletteHTTPException):
            status_code = exc.status_code
            code = "HTTP_EXCEPTION"
            message = sanitize_error_message(exc.detail)
            logger.warning(f"HTTP exception: {method} {path} - {status_code} {message}")

        elif isinstance(exc, RequestValidationError):
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
            code = "VALIDATION_ERROR"
            message = "Request validation failed"
            details = format_validation_errors(exc)
            logger.warning(f"Validation error: {method} {path} - {details}")

        elif isinstance(exc, OperationalError):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            code = "BUSY"
            message = "Database temporarily unavailable"
            logger.error(f"Database operational error: {method} {path}", exc_info=True)

        elif isinstance(exc, SQLAlchemyError):
            message = "A database error occurred"
            logger.error(f"SQLAlchemy error: {method} {path}", exc_info=True)

        else:
            logger.error(
                f"Unhandled exception: {method} {path} - "
                f"{type(exc).__name__}: {sanitize_error_message(exc)}",
                exc_info=True,
            )

        if self.debug and details is None and status_code >= 500:
            details = {"type": type(exc).__name__, "traceback": traceback.format_exc()}

        headers = {"Retry-After": str(retry_after_seconds())} if status_code == 503 else None
        return JSONResponse(
            status_code=status_code,
            content=error_body(code, message, path, method, details),
            headers=headers,
        )


def setup_error_handlers(app):
    """Register exception handlers on a FastAPI application."""

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        return engine_error_response(exc, str(request.url.path), request.method)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(
                "HTTP_EXCEPTION",
                sanitize_error_message(exc.detail),
                str(request.url.path),
                request.method,
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body(
                "VALIDATION_ERROR",
                "Request validation failed",
                str(request.url.path),
                request.method,
                format_validation_errors(exc),
            ),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception: {request.method} {request.url.path} - "
            f"{type(exc).__name__}: {sanitize_error_message(exc)}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(
                "INTERNAL",
                "An unexpected error occurred",
                str(request.url.path),
                request.method,
            ),
        )
