import logging
import logging.config
import re

from .request_id import get_request_id

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_SECRET_KV_RE = re.compile(
    r"(?i)\b(authorization|token|secret|cookie|api[-_]?key|apikey|password)\b\s*[:=]\s*([^\s,;]+)"
)
_BEARER_RE = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-._~+/]+=*")
_OPENAI_KEY_RE = re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}")
_CONTENT_JSON_RE = re.compile(r'(?i)("content"\s*:\s*")[^"]*(")')
_CONTENT_KV_RE = re.compile(r"(?i)(\bcontent\b\s*[:=]\s*)([^\s,;]+)")


def redact_text(text: str) -> str:
    text = _EMAIL_RE.sub("[redacted_email]", text)
    text = _CONTENT_JSON_RE.sub(r"\1[redacted]\2", text)
    text = _CONTENT_KV_RE.sub(r"\1[redacted]", text)
    text = _BEARER_RE.sub("Bearer [redacted]", text)
    text = _SECRET_KV_RE.sub(r"\1=[redacted]", text)
    text = _OPENAI_KEY_RE.sub("[redacted_key]", text)
    return text


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class RedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        record.msg = redact_text(message)
        record.args = ()
        return True


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s %(message)s"

# Uvicorn installs its own handlers; route them through the redacting console.
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
# The upstream HTTP client logs request lines and, at DEBUG, credential headers.
UPSTREAM_CLIENT_LOGGERS = ("httpx", "httpcore")


def _console_logger(level: str) -> dict:
    return {"handlers": ["console"], "level": level, "propagate": False}


def configure_logging(log_level: str) -> None:
    loggers = {name: _console_logger(log_level) for name in SERVER_LOGGERS}
    loggers.update({name: _console_logger("WARNING") for name in UPSTREAM_CLIENT_LOGGERS})
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_id": {"()": "relay_api.logging_config.RequestIdFilter"},
                "redact": {"()": "relay_api.logging_config.RedactionFilter"},
            },
            "formatters": {"relay": {"format": LOG_FORMAT}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "relay",
                    "filters": ["request_id", "redact"],
                    "level": log_level,
                }
            },
            "loggers": loggers,
            "root": {"handlers": ["console"], "level": log_level},
        }
    )
