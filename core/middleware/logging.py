"""
Structured request logging.

One JSON line when a request starts and one when it completes, carrying a
request id for correlation. Credentials and candidate PII never reach the
log: sensitive keys are redacted and emails or phone numbers inside free
text are replaced.
"""

import json
import logging
import re
import time
import traceback
import uuid
from typing import Any, Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


SENSITIVE_KEY_PATTERN = re.compile(
    r"password|token|api[_-]?key|secret|authorization|cookie|session|"
    r"full_name|email|phone|salary",
    re.IGNORECASE,
)

PII_PATTERNS = [
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\+?\d[\d\s.-]{8,}\d"), "[PHONE]"),
]

QUIET_PATHS = ("/health", "/ready")


def mask_text(value: str) -> str:
    for pattern, replacement in PII_PATTERNS:
        value = pattern.sub(replacement, value)
    return value


def mask_sensitive_data(data: Any, depth: int = 0, max_depth: int = 8) -> Any:
    """Redact sensitive keys and scrub PII from strings, recursively."""
    if depth > max_depth:
        return "[MAX_DEPTH_EXCEEDED]"
    if isinstance(data, dict):
        return {
            key: "[REDACTED]"
            if SENSITIVE_KEY_PATTERN.search(str(key))
            else mask_sensitive_data(value, depth + 1, max_depth)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [mask_sensitive_data(item, depth + 1, max_depth) for item in data]
    if isinstance(data, str):
        return mask_text(data)
    return data


def mask_headers(headers: dict) -> dict:
    masked = {}
    for key, value in headers.items():
        if key.lower() == "authorization" and " " in value:
            scheme, _ = value.split(" ", 1)
            masked[key] = f"{scheme} [REDACTED]"
        elif SENSITIVE_KEY_PATTERN.search(key):
            masked[key] = "[REDACTED]"
        else:
            masked[key] = value
    return masked


def get_client_ip(request: Request) -> str:
    """Client IPv4 with the last octet hidden."""
    forwarded_for = request.headers.get("x-forwarded-for")
    ip = forwarded_for.split(",")[0].strip() if forwarded_for else (
        request.client.host if request.client else "unknown"
    )
    parts = ip.split(".")
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.{parts[2]}.xxx"
    return "unknown"


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        log_request_body: bool = False,
        log_response_body: bool = False,
        max_body_size: int = 1024,
    ):
        super().__init__(app)
        self.log_request_body = log_request_body
        self.log_response_body = log_response_body
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        request.state.request_id = request_id

        if request.url.path.startswith(QUIET_PATHS):
            response = await call_next(request)
            response.headers["x-request-id"] = request_id
            return response

        started = time.perf_counter()
        start_log = {
            "event": "request_started",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": mask_sensitive_data(dict(request.query_params)),
            "client_ip": get_client_ip(request),
            "headers": mask_headers(dict(request.headers)),
        }
        if self.log_request_body and request.method in ("POST", "PUT", "PATCH"):
            body = await self._read_json_body(request)
            if body is not None:
                start_log["body"] = mask_sensitive_data(body)
        logger.info(json.dumps(start_log, default=str))

        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            status_code = response.status_code if response is not None else 500
            done_log = {
                "event": "request_completed",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            }
            if status_code >= 500:
                logger.error(json.dumps(done_log))
            elif status_code >= 400:
                logger.warning(json.dumps(done_log))
            else:
                logger.info(json.dumps(done_log))
            if response is not None:
                response.headers["x-request-id"] = request_id

    async def _read_json_body(self, request: Request) -> Any:
        if "application/json" not in request.headers.get("content-type", ""):
            return None
        raw = await request.body()
        if len(raw) > self.max_body_size:
            return {"_truncated": True, "_size": len(raw)}
        try:
            return json.loads(raw)
        except ValueError:
            return None


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            entry["request_id"] = request_id
        if record.exc_info:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }
        return json.dumps(entry, default=str)


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure the root logger once at startup."""
    level = getattr(logging, log_level.upper())
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(
        JsonFormatter()
        if json_logs
        else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
