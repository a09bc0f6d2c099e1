"""
Alter Compatibility Backend — Custom Exception Hierarchy
=========================================================

What:  Application-specific exceptions for every failure the scoring flow
       can produce.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by the scoring core, LLM clients and services; caught by the
       global handlers or by the caller of the core.

Exception Hierarchy:
    AlterMatchError (base)
    ├── ArgumentError                → 400 Bad Request (caller bug, never retried)
    ├── NotFoundError                → 404 Not Found
    ├── ProviderError                → 503 Service Unavailable (retryable)
    │   ├── ProviderTimeoutError     → 504 Gateway Timeout
    │   └── CircuitBreakerOpenError  → 503 Service Unavailable (circuit open)
    ├── ResponseValidationError      → 502 Bad Gateway (model misbehaved)
    │   ├── MalformedResponse        (not JSON / not the expected object)
    │   ├── OutOfRangeScore          (score missing a valid integer 0-100)
    │   └── EmptyInsight             (insight blank or not a string)
    ├── DatabaseError                → 500 Internal Server Error
    └── RateLimitExceededError       → 429 Too Many Requests

Schema violations are surfaced as errors, never clamped or replaced with
default scores.
"""

from typing import Any, Dict, List, Optional


class AlterMatchError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info
        error_code: Machine-readable code used in JSON error bodies
    """

    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = dict(context or {})
        super().__init__(self.message)


class ArgumentError(AlterMatchError):
    """
    Raised when the caller passes invalid input (e.g. an empty profile).

    HTTP: 400 Bad Request. Not retried: the same input fails the same way.
    """

    error_code = "invalid_argument"

    def __init__(
        self,
        message: str = "Invalid argument",
        argument: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = dict(context or {})
        if argument:
            ctx["argument"] = argument
        super().__init__(message=message, context=ctx)
        self.argument = argument


class NotFoundError(AlterMatchError):
    """
    Raised when a requested resource does not exist.

    When:    GET /api/compatibility/cache/{user}/{target} with no stored scores.
    HTTP:    404 Not Found
    """

    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = dict(context or {})
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


# ══════════════════════════════════════════════════════════════════════════
# LLM provider failures
# ══════════════════════════════════════════════════════════════════════════


class ProviderError(AlterMatchError):
    """
    Raised when the LLM provider cannot produce a completion.

    When:    Network failure, non-2xx status, SDK error, timeout.
    HTTP:    503 Service Unavailable

    Callers may retry with backoff (see services.retry_policy); the core
    itself never does.
    """

    error_code = "llm_provider_error"

    def __init__(
        self,
        message: str = "The compatibility analysis service is temporarily unavailable",
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = dict(context or {})
        if status_code is not None:
            ctx["status_code"] = status_code
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.status_code = status_code
        self.retry_after = retry_after


class ProviderTimeoutError(ProviderError):
    """
    Raised when the provider did not answer within the configured bound.

    HTTP: 504 Gateway Timeout
    """

    error_code = "llm_provider_timeout"

    def __init__(
        self,
        timeout: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = dict(context or {})
        message = "The compatibility analysis timed out"
        if timeout is not None:
            ctx["timeout_seconds"] = timeout
            message = f"The compatibility analysis timed out after {timeout:g} seconds"
        super().__init__(message=message, context=ctx)
        self.timeout = timeout


class CircuitBreakerOpenError(ProviderError):
    """
    Raised when the circuit breaker is in OPEN state.

    What:    Too many consecutive provider failures triggered the breaker.
    HTTP:    503 Service Unavailable, with Retry-After

    CLOSED (normal) → failures increment counter
    → After N failures → OPEN (reject all calls for recovery_timeout seconds)
    → After recovery_timeout → HALF-OPEN (allow one test call)
    → If test succeeds → CLOSED; if it fails → OPEN again
    """

    error_code = "service_unavailable"

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Compatibility analysis is temporarily unavailable due to repeated provider "
            f"failures. The service will automatically retry in approximately "
            f"{recovery_time} seconds."
        )
        ctx = dict(context or {})
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, retry_after=recovery_time, context=ctx)
        self.recovery_time = recovery_time


# ══════════════════════════════════════════════════════════════════════════
# Model output validation failures
# ══════════════════════════════════════════════════════════════════════════


class ResponseValidationError(AlterMatchError):
    """
    Base class for LLM output that violates the compatibility schema.

    HTTP: 502 Bad Gateway — the upstream answered, but with unusable data.
    """

    error_code = "invalid_llm_response"

    def __init__(
        self,
        message: str = "The compatibility analysis returned an invalid response",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class MalformedResponse(ResponseValidationError):
    """Provider text is not strict JSON, or not an object with every required key."""

    error_code = "malformed_response"

    def __init__(
        self,
        message: str = "The compatibility analysis response is not valid JSON",
        missing_fields: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = dict(context or {})
        if missing_fields:
            ctx["missing_fields"] = list(missing_fields)
        super().__init__(message=message, context=ctx)
        self.missing_fields = list(missing_fields or [])


class OutOfRangeScore(ResponseValidationError):
    """A numeric score is not an integer within [0, 100]."""

    error_code = "out_of_range_score"

    def __init__(
        self,
        field: str,
        value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = dict(context or {})
        ctx["field"] = field
        ctx["value"] = repr(value)
        super().__init__(
            message=f"Score '{field}' must be an integer between 0 and 100, got {value!r}",
            context=ctx,
        )
        self.field = field
        self.value = value


class EmptyInsight(ResponseValidationError):
    """The insight is missing its text (blank after trimming, or not a string)."""

    error_code = "empty_insight"

    def __init__(
        self,
        message: str = "The compatibility insight is empty",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = dict(context or {})
        ctx["field"] = "insight"
        super().__init__(message=message, context=ctx)


# ══════════════════════════════════════════════════════════════════════════
# Infrastructure failures
# ══════════════════════════════════════════════════════════════════════════


class DatabaseError(AlterMatchError):
    """
    Raised when database operations fail unexpectedly.

    HTTP: 500 Internal Server Error. The message returned to the client is
    always generic; details are logged server-side only.
    """

    error_code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(AlterMatchError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP: 429 Too Many Requests, with Retry-After
    """

    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = dict(context or {})
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
