import json
import logging
import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx

from relay_api.errors import (
    AuthError,
    GenericProviderError,
    LimitExceeded,
    RateLimited,
    UnclassifiedProviderError,
    UnexpectedFailure,
    UpstreamError,
)

CONTEXT_LENGTH_CODE = "context_length_exceeded"
DEFAULT_RETRY_AFTER_SECONDS = 10

_CONTEXT_LENGTH_RE = re.compile(
    r"maximum context length is (\d+) tokens.*?(\d+) tokens", re.IGNORECASE | re.DOTALL
)

logger = logging.getLogger(__name__)


def _extract_error(body: bytes) -> dict | None:
    # OpenAI error format: {"error": {"message": "...", "type": "...", "code": "..."}}
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    err = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(err, dict):
        return None
    return err


def _error_message(err: dict | None) -> str | None:
    if err is None:
        return None
    message = err.get("message")
    if isinstance(message, str) and message.strip():
        return message
    return None


def _as_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def _seconds(value: str | None, scale: float = 1.0) -> int | None:
    if value is None:
        return None
    try:
        seconds = math.ceil(float(value) / scale)
    except (ValueError, OverflowError):
        return None
    return seconds if seconds >= 0 else None


def _http_date_seconds(value: str | None) -> int | None:
    if not value:
        return None
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0, math.ceil((when - datetime.now(timezone.utc)).total_seconds()))


def parse_retry_after(headers, fallback_seconds: int = DEFAULT_RETRY_AFTER_SECONDS) -> int:
    """Seconds to wait before retrying, from the provider's retry hints."""
    headers = httpx.Headers(headers)
    retry_after = headers.get("retry-after")
    for candidate in (
        _seconds(retry_after),
        _seconds(headers.get("retry-after-ms"), scale=1000.0),
        _http_date_seconds(retry_after),
    ):
        if candidate is not None:
            return candidate
    return fallback_seconds


def _limit_exceeded(err: dict) -> LimitExceeded | None:
    limit = _as_int(err.get("limit"))
    requested = _as_int(err.get("requested"))
    if limit is not None and requested is not None:
        return LimitExceeded(limit=limit, requested=requested)
    match = _CONTEXT_LENGTH_RE.search(_error_message(err) or "")
    if match:
        return LimitExceeded(limit=int(match.group(1)), requested=int(match.group(2)))
    return None


def classify_response(
    status_code: int,
    headers,
    body: bytes,
    retry_after_fallback_seconds: int = DEFAULT_RETRY_AFTER_SECONDS,
) -> UpstreamError:
    """Map a non-2xx upstream response to exactly one typed error. Never raises."""
    if status_code == 429:
        return RateLimited(parse_retry_after(headers, retry_after_fallback_seconds))
    if status_code == 401:
        return AuthError()

    err = _extract_error(body)
    message = _error_message(err)
    if err is None:
        logger.warning(
            "non-json upstream error status=%s body=%s",
            status_code,
            body[:500].decode("utf-8", "replace"),
        )

    if status_code == 400 and err is not None and err.get("code") == CONTEXT_LENGTH_CODE:
        limit_error = _limit_exceeded(err)
        if limit_error is not None:
            return limit_error
        return GenericProviderError(message or "context length exceeded")

    if 400 <= status_code < 500 and message is not None:
        return GenericProviderError(message)

    return UnclassifiedProviderError(message or f"OpenAI API returned status {status_code}")


def classify_transport_error(exc: Exception) -> UnexpectedFailure:
    if isinstance(exc, httpx.TimeoutException):
        return UnexpectedFailure("upstream timeout")
    if isinstance(exc, httpx.RequestError):
        return UnexpectedFailure(f"upstream connection error: {exc.__class__.__name__}")
    return UnexpectedFailure(str(exc) or exc.__class__.__name__)
