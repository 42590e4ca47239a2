"""
Tests for request logging and PII masking.
"""

import json
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import Mock

from core.middleware.logging import (
    JsonFormatter,
    StructuredLoggingMiddleware,
    get_client_ip,
    mask_headers,
    mask_sensitive_data,
    mask_text,
    setup_logging,
)


class TestMaskSensitiveData:
    """Sensitive keys are redacted, PII in text is replaced."""

    @pytest.mark.parametrize("key", [
        "password", "access_token", "api_key", "client_secret",
        "Authorization", "full_name", "email", "phone", "salary",
    ])
    def test_sensitive_keys(self, key):
        assert mask_sensitive_data({key: "value"}) == {key: "[REDACTED]"}

    def test_keeps_safe_keys(self):
        data = {"application_id": 3, "stage": "screen"}

        assert mask_sensitive_data(data) == data

    def test_nested_structures(self):
        data = {"candidate": {"full_name": "Jane Doe", "notes": ["call jane@example.com"]}}

        masked = mask_sensitive_data(data)

        assert masked["candidate"]["full_name"] == "[REDACTED]"
        assert masked["candidate"]["notes"] == ["call [EMAIL]"]

    def test_depth_limit(self):
        data = {"a": {"a": {"a": {"a": "deep"}}}}

        assert mask_sensitive_data(data, max_depth=2) == {"a": {"a": {"a": "[MAX_DEPTH_EXCEEDED]"}}}

    @pytest.mark.parametrize("text,expected", [
        ("reach me at jane.doe@example.com", "reach me at [EMAIL]"),
        ("phone +1 555 123 4567 today", "phone [PHONE] today"),
        ("application 42 moved", "application 42 moved"),
    ])
    def test_mask_text(self, text, expected):
        assert mask_text(text) == expected


class TestHeadersAndClientIp:
    def test_authorization_keeps_scheme(self):
        masked = mask_headers({"Authorization": "Bearer abc.def", "Accept": "application/json"})

        assert masked == {"Authorization": "Bearer [REDACTED]", "Accept": "application/json"}

    def test_cookie_redacted(self):
        assert mask_headers({"cookie": "sid=1"}) == {"cookie": "[REDACTED]"}

    def test_client_ip_hides_last_octet(self):
        request = Mock()
        request.headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}

        assert get_client_ip(request) == "203.0.113.xxx"

    def test_client_ip_unknown(self):
        request = Mock()
        request.headers = {}
        request.client = None

        assert get_client_ip(request) == "unknown"


class TestStructuredLoggingMiddleware:
    @pytest.fixture
    def client(self):
        app = FastAPI()
        app.add_middleware(StructuredLoggingMiddleware, log_request_body=True)

        @app.post("/echo")
        async def echo(payload: dict):
            return {"ok": True}

        @app.get("/health")
        async def health():
            return {"status": "healthy"}

        return TestClient(app)

    def test_request_id_header(self, client):
        response = client.post("/echo", json={}, headers={"x-request-id": "req-123"})

        assert response.headers["x-request-id"] == "req-123"

    def test_body_is_masked_in_logs(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="core.middleware.logging"):
            client.post("/echo", json={"email": "jane@example.com", "stage": "screen"})

        started = [json.loads(r.getMessage()) for r in caplog.records if "request_started" in r.getMessage()]
        assert started[0]["body"] == {"email": "[REDACTED]", "stage": "screen"}
        assert "jane@example.com" not in caplog.text

    def test_health_is_quiet(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="core.middleware.logging"):
            response = client.get("/health")

        assert response.status_code == 200
        assert "x-request-id" in response.headers
        assert "request_started" not in caplog.text


class TestSetupLogging:
    def test_json_formatter(self):
        record = logging.LogRecord("engine", logging.WARNING, __file__, 1, "lock %s busy", ("candidate:1",), None)

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "engine"
        assert entry["message"] == "lock candidate:1 busy"

    def test_setup_replaces_handlers(self):
        root = logging.getLogger()
        original_handlers = root.handlers[:]
        original_level = root.level
        try:
            setup_logging("DEBUG", json_logs=True)

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
            for handler in original_handlers:
                root.addHandler(handler)
            root.setLevel(original_level)
