import json
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from relay_api.classifier import (
    DEFAULT_RETRY_AFTER_SECONDS,
    classify_response,
    classify_transport_error,
    parse_retry_after,
)
from relay_api.errors import (
    AuthError,
    GenericProviderError,
    LimitExceeded,
    RateLimited,
    UnclassifiedProviderError,
    UnexpectedFailure,
)

from .utils import openai_error


def _body(payload) -> bytes:
    return json.dumps(payload).encode()


def test_rate_limit_uses_retry_after_header():
    error = classify_response(429, {"Retry-After": "5"}, b"")
    assert isinstance(error, RateLimited)
    assert error.retry_after_seconds == 5


def test_rate_limit_without_header_uses_fallback():
    error = classify_response(429, {}, _body(openai_error("slow down")))
    assert isinstance(error, RateLimited)
    assert error.retry_after_seconds == DEFAULT_RETRY_AFTER_SECONDS


def test_rate_limit_fallback_is_configurable():
    error = classify_response(429, {"retry-after": "soon"}, b"", retry_after_fallback_seconds=42)
    assert error.retry_after_seconds == 42


@pytest.mark.parametrize(
    ("headers", "expected"),
    [
        ({"retry-after": "2.2"}, 3),
        ({"retry-after": "0"}, 0),
        ({"retry-after": "-4"}, 7),
        ({"retry-after": "nan"}, 7),
        ({"retry-after-ms": "1500"}, 2),
        ({"retry-after": "abc", "retry-after-ms": "20"}, 1),
        ({}, 7),
    ],
)
def test_parse_retry_after(headers, expected):
    assert parse_retry_after(headers, fallback_seconds=7) == expected


def test_parse_retry_after_http_date():
    future = datetime.now(timezone.utc) + timedelta(seconds=30)
    assert 0 < parse_retry_after({"retry-after": format_datetime(future, usegmt=True)}) <= 30

    past = datetime.now(timezone.utc) - timedelta(seconds=30)
    assert parse_retry_after({"retry-after": format_datetime(past, usegmt=True)}) == 0


def test_unauthorized_is_auth_error_without_reading_body():
    error = classify_response(401, {}, b"<html>not json</html>")
    assert isinstance(error, AuthError)


def test_context_length_with_structured_fields():
    payload = {"error": {"code": "context_length_exceeded", "limit": 4096, "requested": 5000}}
    error = classify_response(400, {}, _body(payload))
    assert isinstance(error, LimitExceeded)
    assert (error.limit, error.requested) == (4096, 5000)


def test_context_length_parsed_from_provider_message():
    message = (
        "This model's maximum context length is 8192 tokens. However, your messages "
        "resulted in 9001 tokens. Please reduce the length of the messages."
    )
    error = classify_response(400, {}, _body(openai_error(message, code="context_length_exceeded")))
    assert isinstance(error, LimitExceeded)
    assert (error.limit, error.requested) == (8192, 9001)


def test_context_length_without_counts_falls_back_to_generic():
    error = classify_response(
        400, {}, _body(openai_error("too long", code="context_length_exceeded"))
    )
    assert isinstance(error, GenericProviderError)
    assert error.message == "too long"


@pytest.mark.parametrize("status_code", [400, 403, 404, 422])
def test_other_client_errors_with_payload_are_generic(status_code):
    error = classify_response(status_code, {}, _body(openai_error("model not found")))
    assert isinstance(error, GenericProviderError)
    assert error.message == "model not found"


@pytest.mark.parametrize(
    ("status_code", "body"),
    [
        (400, b"not json at all"),
        (404, _body({"detail": "missing"})),
        (400, _body({"error": "flat string"})),
        (502, b"<html>bad gateway</html>"),
        (500, b"\xff\xfe"),
    ],
)
def test_unparsable_or_server_errors_are_unclassified(status_code, body):
    error = classify_response(status_code, {}, body)
    assert isinstance(error, UnclassifiedProviderError)
    assert str(status_code) in error.message


def test_server_error_keeps_provider_message():
    error = classify_response(503, {}, _body(openai_error("engine overloaded")))
    assert isinstance(error, UnclassifiedProviderError)
    assert error.message == "engine overloaded"


def test_transport_failures_are_unexpected():
    request = httpx.Request("POST", "https://upstream.test/v1/chat/completions")

    dropped = classify_transport_error(httpx.ReadError("connection reset", request=request))
    assert isinstance(dropped, UnexpectedFailure)
    assert dropped.message == "upstream connection error: ReadError"

    timed_out = classify_transport_error(httpx.ReadTimeout("stalled", request=request))
    assert timed_out.message == "upstream timeout"


@pytest.mark.parametrize(
    ("error", "status_code", "payload"),
    [
        (RateLimited(5), 429, {"errorType": "rate_limit", "retryAfter": 5}),
        (AuthError(), 401, {"errorType": "openai_auth_error"}),
        (
            LimitExceeded(limit=4096, requested=5000),
            400,
            {"errorType": "context_length_exceeded", "limit": 4096, "requested": 5000},
        ),
        (GenericProviderError("bad"), 400, {"errorType": "generic_openai_error", "message": "bad"}),
        (UnclassifiedProviderError("boom"), 500, {"errorType": "openai_error", "message": "boom"}),
        (UnexpectedFailure("lost"), 500, {"errorType": "unexpected_error", "message": "lost"}),
    ],
)
def test_error_payloads(error, status_code, payload):
    assert error.status_code == status_code
    assert error.to_payload() == payload
