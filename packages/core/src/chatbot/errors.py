"""Exceptions raised by the chat relay and helpers for classifying them.

The completion client raises its own exception hierarchy.  Where a structured
type is available it wins; otherwise the exception message is searched for
well-known substrings, which is fragile and only kept as a fallback.
"""

from enum import Enum

from openai import (  # type: ignore
    APITimeoutError,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)

GENERIC_ERROR_MESSAGE = "An error occurred while processing your request."

TIMEOUT_MESSAGE = (
    "Request timeout. The response took too long. "
    "Please try again with a shorter question."
)


class UpstreamErrorKind(str, Enum):
    """Coarse categories an upstream failure is mapped to."""

    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    AUTH = "auth"
    UNKNOWN = "unknown"


_USER_MESSAGES = {
    UpstreamErrorKind.RATE_LIMIT: (
        "OpenAI API rate limit exceeded. Please try again in a moment."
    ),
    UpstreamErrorKind.TIMEOUT: (
        "Request timeout. Please try again with a shorter question."
    ),
    UpstreamErrorKind.AUTH: "API configuration error. Please contact support.",
    UpstreamErrorKind.UNKNOWN: GENERIC_ERROR_MESSAGE,
}


class ChatError(Exception):
    """Base class for chat relay failures."""


class ConfigurationError(ChatError):
    """A required credential for the completion service is missing."""


class InvalidMessageError(ChatError, ValueError):
    """The user message is missing, not a string, or blank."""


class RelayTimeoutError(ChatError):
    """A turn ran past its wall-clock budget."""


class UpstreamError(ChatError):
    """The completion service failed.

    Attributes:
        kind: Classified category of the failure.
        user_message: Safe text to show the end user.
        detail: Technical message of the underlying exception.
    """

    def __init__(self, exc: BaseException) -> None:
        self.kind = classify_upstream_error(exc)
        self.user_message = _USER_MESSAGES[self.kind]
        self.detail = str(exc) or exc.__class__.__name__
        super().__init__(self.detail)


def classify_upstream_error(exc: BaseException) -> UpstreamErrorKind:
    """Map an exception raised by the completion client to a category."""
    if isinstance(exc, RateLimitError):
        return UpstreamErrorKind.RATE_LIMIT
    if isinstance(exc, APITimeoutError):
        return UpstreamErrorKind.TIMEOUT
    if isinstance(exc, (AuthenticationError, PermissionDeniedError)):
        return UpstreamErrorKind.AUTH

    message = str(exc)
    lowered = message.lower()
    if "rate limit" in lowered or "429" in message:
        return UpstreamErrorKind.RATE_LIMIT
    if "timeout" in lowered:
        return UpstreamErrorKind.TIMEOUT
    if "API key" in message:
        return UpstreamErrorKind.AUTH
    return UpstreamErrorKind.UNKNOWN
