"""
Tests for error mapping and message sanitization.
"""

import json

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError, OperationalError

from core.errors import (
    Busy,
    ConflictError,
    Internal,
    InvalidInput,
    InvalidTransition,
    NotFound,
    PreconditionFailed,
)
from core.middleware.error_handling import (
    ErrorHandlingMiddleware,
    error_body,
    retry_after_seconds,
    sanitize_error_message,
    setup_error_handlers,
)


class Payload(BaseModel):
    amount: int = Field(gt=0)


@pytest.fixture
def app():
    app = FastAPI()
    setup_error_handlers(app)
    app.add_middleware(ErrorHandlingMiddleware, debug=False)

    @app.get("/not-found")
    async def not_found():
        raise NotFound("Application", 42)

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("Candidate is already represented", conflicting_relationship_id=7)

    @app.get("/precondition")
    async def precondition():
        raise PreconditionFailed("Consent missing for jane@example.com", contact="jane@example.com")

    @app.get("/busy")
    async def busy():
        raise Busy("Resource candidate:1 is busy", lock_key="candidate:1")

    @app.get("/http")
    async def http_error():
        raise HTTPException(status_code=418, detail="teapot")

    @app.get("/crash")
    async def crash():
        raise RuntimeError("password=hunter2 leaked")

    @app.post("/validate")
    async def validate(payload: Payload):
        return payload

    return app


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


class TestSanitization:
    """Secrets and emails never leave the service."""

    @pytest.mark.parametrize("message", [
        'password="secret123"',
        "token: abc.def.ghi",
        'api_key="sk_live_12345"',
        "api-key=sk_live_12345",
        'secret="confidential"',
        "authorization: Bearer-abc123",
        "contact jane.doe@example.com for details",
    ])
    def test_redacts(self, message):
        assert "[REDACTED]" in sanitize_error_message(message)

    @pytest.mark.parametrize("message", [
        'username="john_doe"',
        "Application 42 not found",
        "count=12345",
    ])
    def test_leaves_safe_text(self, message):
        assert sanitize_error_message(message) == message

    def test_multiple_secrets(self):
        sanitized = sanitize_error_message('password="a1" token="b2" api_key="c3"')

        assert sanitized.count("[REDACTED]") == 3
        assert "a1" not in sanitized

    def test_non_string_input(self):
        assert sanitize_error_message(ValueError("token=xyz")) == "[REDACTED]"


class TestEngineErrorMapping:
    @pytest.mark.parametrize("path,status_code,code", [
        ("/not-found", 404, "NOT_FOUND"),
        ("/conflict", 409, "CONFLICT"),
        ("/precondition", 422, "PRECONDITION_FAILED"),
        ("/busy", 503, "BUSY"),
    ])
    def test_status_codes(self, client, path, status_code, code):
        response = client.get(path)

        assert response.status_code == status_code
        error = response.json()["error"]
        assert error["code"] == code
        assert error["path"] == path
        assert error["method"] == "GET"

    def test_conflict_carries_relationship_id(self, client):
        response = client.get("/conflict")

        assert response.json()["error"]["details"] == {"conflicting_relationship_id": 7}

    def test_details_are_sanitized(self, client):
        """Emails in messages and string details are redacted."""
        error = client.get("/precondition").json()["error"]

        assert "jane@example.com" not in json.dumps(error)
        assert error["details"]["contact"] == "[REDACTED]"

    def test_busy_has_retry_after(self, client):
        response = client.get("/busy")

        assert response.headers["retry-after"] == str(retry_after_seconds())

    @pytest.mark.parametrize("error,status_code", [
        (InvalidTransition("draft", "hired"), 409),
        (InvalidInput("bad"), 400),
        (Internal("boom"), 500),
    ])
    def test_error_classes(self, error, status_code):
        assert error.status_code == status_code
        assert error.to_dict()["code"] == error.code

    def test_only_busy_is_retryable(self):
        assert Busy("x").retryable is True
        assert NotFound("Job", 1).retryable is False


class TestOtherErrors:
    def test_http_exception_envelope(self, client):
        response = client.get("/http")

        assert response.status_code == 418
        assert response.json()["error"] == {
            "code": "HTTP_EXCEPTION",
            "message": "teapot",
            "path": "/http",
            "method": "GET",
        }

    def test_validation_error(self, client):
        response = client.post("/validate", json={"amount": 0})

        assert response.status_code == 422
        details = response.json()["error"]["details"]
        assert details[0]["field"] == "body.amount"

    def test_unhandled_exception_is_generic(self, client):
        """Internal messages are never echoed to the caller."""
        response = client.get("/crash")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "INTERNAL"
        assert "hunter2" not in json.dumps(error)


class TestMiddlewareFallback:
    """Exceptions that escape the FastAPI handlers."""

    def scope(self):
        return {"type": "http", "path": "/x", "method": "POST"}

    def test_operational_error_is_busy(self):
        middleware = ErrorHandlingMiddleware(app=None)
        exc = OperationalError("SELECT 1", {}, Exception("database is locked"))

        response = middleware._handle_exception(exc, self.scope())

        assert response.status_code == 503
        assert response.headers["retry-after"] == str(retry_after_seconds())
        assert json.loads(response.body)["error"]["code"] == "BUSY"

    def test_other_database_error(self):
        middleware = ErrorHandlingMiddleware(app=None)
        exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

        response = middleware._handle_exception(exc, self.scope())

        assert response.status_code == 500
        assert json.loads(response.body)["error"]["message"] == "A database error occurred"

    def test_debug_includes_traceback(self):
        middleware = ErrorHandlingMiddleware(app=None, debug=True)

        response = middleware._handle_exception(ValueError("nope"), self.scope())

        details = json.loads(response.body)["error"]["details"]
        assert details["type"] == "ValueError"
        assert "traceback" in details

    def test_engine_error_passthrough(self):
        middleware = ErrorHandlingMiddleware(app=None)

        response = middleware._handle_exception(NotFound("Placement", 3), self.scope())

        assert response.status_code == 404


def test_error_body_omits_empty_details():
    assert error_body("X", "m", "/p", "GET") == {
        "error": {"code": "X", "message": "m", "path": "/p", "method": "GET"}
    }
