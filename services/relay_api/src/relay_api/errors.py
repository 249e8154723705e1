from shared.constants import (
    ERROR_AUTH,
    ERROR_CONTEXT_LENGTH,
    ERROR_GENERIC_OPENAI,
    ERROR_OPENAI,
    ERROR_RATE_LIMIT,
    ERROR_UNEXPECTED,
)


class UpstreamError(Exception):
    """Base of the closed set of errors surfaced to the caller.

    Every subclass fixes its ``error_type`` and ``status_code``; ``extra``
    returns the variant-specific fields of the error payload.
    """

    error_type: str = ERROR_UNEXPECTED
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def extra(self) -> dict:
        return {"message": self.message}

    def to_payload(self) -> dict:
        return {"errorType": self.error_type, **self.extra()}


class RateLimited(UpstreamError):
    error_type = ERROR_RATE_LIMIT
    status_code = 429

    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(f"rate limited, retry after {retry_after_seconds}s")
        self.retry_after_seconds = retry_after_seconds

    def extra(self) -> dict:
        return {"retryAfter": self.retry_after_seconds}


class AuthError(UpstreamError):
    error_type = ERROR_AUTH
    status_code = 401

    def __init__(self, message: str = "invalid or missing API key") -> None:
        super().__init__(message)

    def extra(self) -> dict:
        return {}


class LimitExceeded(UpstreamError):
    error_type = ERROR_CONTEXT_LENGTH
    status_code = 400

    def __init__(self, limit: int, requested: int) -> None:
        super().__init__(f"context length exceeded: requested {requested} > limit {limit}")
        self.limit = limit
        self.requested = requested

    def extra(self) -> dict:
        return {"limit": self.limit, "requested": self.requested}


class GenericProviderError(UpstreamError):
    error_type = ERROR_GENERIC_OPENAI
    status_code = 400


class UnclassifiedProviderError(UpstreamError):
    error_type = ERROR_OPENAI
    status_code = 500


class UnexpectedFailure(UpstreamError):
    error_type = ERROR_UNEXPECTED
    status_code = 500


class RelayConfigurationError(Exception):
    """Raised when the relay is asked to do something its configuration cannot support."""


class UnknownModelError(RelayConfigurationError):
    def __init__(self, model_id: str) -> None:
        super().__init__(f"unknown model id: {model_id!r}")
        self.model_id = model_id


class BudgetConfigurationError(RelayConfigurationError):
    def __init__(self, budget: int, required: int) -> None:
        super().__init__(
            f"system prompt needs {required} tokens but the budget is {budget}"
        )
        self.budget = budget
        self.required = required
