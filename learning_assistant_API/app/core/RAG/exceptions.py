# exceptions.py
# Description: Exception hierarchy for the learning assistant gateway
#
"""
Learning Assistant Exception Hierarchy
======================================

Every failure the gateway reports to a caller is one of these exceptions. Each
one carries the HTTP status and the optional upstream details it should be
rendered with, so the endpoint only has to translate it to the wire format.

Exception Categories:
- ClientError: bad method, missing message, disallowed origin, malformed body
- RateLimitedError: a ClientError raised when a limiter window is exhausted
- ConfigError: the gateway is missing configuration it needs (e.g. API key)
- UpstreamError: the model provider failed, timed out, or returned nothing
- UnexpectedError: anything else, reported as a generic 500
"""

from enum import Enum
from typing import Optional, Any, Dict


class ErrorKind(str, Enum):
    CLIENT = "client"
    CONFIG = "config"
    UPSTREAM = "upstream"
    UNEXPECTED = "unexpected"


class LearningAssistantError(Exception):
    """
    Base exception for all gateway errors.

    Attributes:
        message: Short, caller-facing error label (rendered as ``error``)
        http_status: Status code the error is reported with
        details: Raw upstream error text or stringified cause, if any
        headers: Extra response headers (e.g. ``Retry-After``)
        extra: Additional fields merged into the response body
    """

    kind: ErrorKind = ErrorKind.UNEXPECTED
    default_status: int = 500

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        details: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.http_status = http_status or self.default_status
        self.details = details
        self.headers = headers or {}
        self.extra = extra or {}
        self.original_error = original_error

    def __str__(self) -> str:
        parts = [self.message, f"Status: {self.http_status}"]
        if self.details:
            parts.append(f"Details: {self.details[:200]}")
        if self.original_error:
            parts.append(f"Caused by: {type(self.original_error).__name__}: {self.original_error}")
        return " | ".join(parts)

    def to_response_body(self) -> Dict[str, Any]:
        """Convert the exception to the JSON body sent to the caller."""
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        body.update(self.extra)
        return body

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "http_status": self.http_status,
            "details": self.details,
            "original_error": str(self.original_error) if self.original_error else None
        }


class ClientError(LearningAssistantError):
    """The request itself is unacceptable. No provider call is attempted."""

    kind = ErrorKind.CLIENT
    default_status = 400


class RateLimitedError(ClientError):
    """
    A limiter window for the caller is exhausted.

    The wait is reported both as a ``Retry-After`` header and as
    ``retryAfterSeconds`` in the body.
    """

    default_status = 429

    def __init__(self, message: str, retry_after_seconds: int):
        super().__init__(
            message,
            headers={"Retry-After": str(retry_after_seconds)},
            extra={"retryAfterSeconds": retry_after_seconds}
        )
        self.retry_after_seconds = retry_after_seconds


class ConfigError(LearningAssistantError):
    """Gateway misconfiguration detected while serving a request."""

    kind = ErrorKind.CONFIG
    default_status = 500


class UpstreamError(LearningAssistantError):
    """
    Failure talking to the model provider.

    This covers:
    - Non-2xx provider responses (400/404 are reported as 502)
    - Empty replies
    - Transport failures and timeouts
    """

    kind = ErrorKind.UPSTREAM
    default_status = 502

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        details: Optional[str] = None,
        upstream_status: Optional[int] = None,
        **kwargs
    ):
        super().__init__(message, http_status=http_status, details=details, **kwargs)
        self.upstream_status = upstream_status


class UnexpectedError(LearningAssistantError):
    """Anything the gateway did not anticipate; always a generic 500."""

    kind = ErrorKind.UNEXPECTED
    default_status = 500

    @classmethod
    def from_exception(cls, error: Exception) -> "UnexpectedError":
        return cls("Server error", details=str(error), original_error=error)


class ConfigurationError(Exception):
    """Raised at start-up when the loaded configuration fails validation."""
    pass
