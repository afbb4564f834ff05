"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from app.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    set_request_id,
)


@pytest.fixture
def log_stream(request: pytest.FixtureRequest) -> tuple[logging.Logger, StringIO]:
    """Logger wired with the production filters and formatter."""

    logger = logging.getLogger(f"test_redaction.{request.node.name}")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_api_keys(log_stream):
    logger, stream = log_stream

    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "x-api-key": "another-secret",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()
    assert "sk-secret-123" not in output
    assert "another-secret" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_client_addresses(log_stream):
    """Raw addresses and cached payloads never reach the log output."""
    logger, stream = log_stream

    logger.info(
        "rate_limit.exceeded",
        extra={
            "client_ip": "203.0.113.7",
            "cache_value": {"email": "someone@example.com"},
            "key_hash": "ab12cd34ef56ab78",
            "limit": 10,
        },
    )

    output = stream.getvalue()
    assert "203.0.113.7" not in output
    assert "someone@example.com" not in output
    assert "ab12cd34ef56ab78" in output
    assert json.loads(output)["limit"] == 10


def test_sensitive_filter_allows_safe_fields(log_stream):
    logger, stream = log_stream

    logger.info(
        "safe_event",
        extra={
            "request_id": "req-123",
            "route": "/v1/rate-limits",
            "status": 200,
            "duration_ms": 150.5,
        },
    )

    output = stream.getvalue()
    assert "req-123" in output
    assert "/v1/rate-limits" in output
    assert "200" in output
    assert "[REDACTED]" not in output


def test_sensitive_filter_redacts_nested_dicts(log_stream):
    logger, stream = log_stream

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "X-API-Key": "secret-key",
                "user-agent": "pytest",
            },
            "safe_data": {"count": 5, "type": "test"},
        },
    )

    output = stream.getvalue()
    assert "secret-key" not in output
    assert "[REDACTED]" in output
    assert "pytest" in output


def test_request_id_from_context_is_attached(log_stream):
    logger, stream = log_stream

    set_request_id("ctx-req-1")
    try:
        logger.info("with_context")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "ctx-req-1"
