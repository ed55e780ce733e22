"""Error taxonomy for the Gemini client.

This module defines the closed set of error kinds raised by the client. Every
error carries a human-readable message, an optional wire error code and an
optional HTTP status so callers can diagnose failures without inspecting
internals.

Exception Hierarchy:
    - GeminiError: Base exception for all client errors
        - AuthenticationError: Invalid or missing credentials (401/403)
        - RateLimitError: Quota or rate limit exceeded (429, retryable)
        - ServerError: Upstream failure (5xx, retryable)
        - RequestError: Network-level failure (connection, timeout, bad JSON)
        - ConfigurationError: Missing or invalid process configuration
        - BadRequestError: Rejected request (400)
            - ResourceNotFoundError: Unknown resource (404)
            - InvalidModelError: Unknown or unusable model
            - ValidationError: Bad caller input, raised before any network call
            - ContentBlockedError: Safety filter tripped
        - StreamingError: Failure while consuming a streamed response
            - StreamingInterruptedError: Connection dropped mid-stream
            - StreamingTimeoutError: No data within the streaming timeout
            - InvalidStreamFormatError: Undecodable stream chunk
"""

from __future__ import annotations


class GeminiError(Exception):
    """Base exception for all client errors.

    Attributes:
        message: Human-readable description of the failure.
        code: Wire error code (e.g. "RESOURCE_EXHAUSTED") or None.
        http_status: HTTP status code or None for non-HTTP failures.
    """

    default_message = "An error occurred with the Gemini API"
    default_status: int | None = None

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        http_status: int | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code
        self.http_status = http_status if http_status is not None else self.default_status
        super().__init__(self.message)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"code={self.code!r}, http_status={self.http_status!r})"
        )


class AuthenticationError(GeminiError):
    """Raised when the API key is missing, invalid or lacks permission."""

    default_message = "Authentication failed. Please check your API key."
    default_status = 401


class RateLimitError(GeminiError):
    """Raised when the API reports an exhausted quota or rate limit.

    Rate limit errors are transient: the retry controller retries them with
    linear backoff.
    """

    default_message = "Rate limit exceeded. Please retry after some time."
    default_status = 429


class ServerError(GeminiError):
    """Raised when the API fails with a 5xx status.

    Server errors are transient and retried by the retry controller.
    """

    default_message = "The Gemini API encountered a server error."
    default_status = 500


class RequestError(GeminiError):
    """Raised on network-level failures.

    Covers connection refusals, timeouts and response bodies that cannot be
    decoded as JSON. Not retried by the generic retry controller.
    """

    default_message = "There was an error in the request to the Gemini API."


class ConfigurationError(GeminiError):
    """Raised when the process configuration is missing or invalid."""

    default_message = "Invalid configuration for the Gemini API client."


class BadRequestError(GeminiError):
    """Raised when the API rejects a request (400)."""

    default_message = "Invalid request to the Gemini API."
    default_status = 400


class ResourceNotFoundError(BadRequestError):
    """Raised when the requested resource does not exist (404)."""

    default_message = "The requested resource was not found."
    default_status = 404


class InvalidModelError(BadRequestError):
    """Raised when the requested model is unknown or not usable."""

    default_message = "Invalid model specified."


class ValidationError(BadRequestError):
    """Raised when caller input fails validation.

    Validation errors surface at construction or mutation time, before any
    network call is made. They are never retried.
    """

    default_message = "Validation failed for the request."
    default_status = None


class ContentBlockedError(BadRequestError):
    """Raised when content is blocked by the API's safety filters."""

    default_message = "Content blocked by safety settings."


class StreamingError(GeminiError):
    """Raised when a streamed generation fails."""

    default_message = "Error during streaming response."


class StreamingInterruptedError(StreamingError):
    """Raised when the connection drops in the middle of a stream."""

    default_message = "Streaming connection was interrupted."


class StreamingTimeoutError(StreamingError):
    """Raised when the stream produces no data within the configured timeout."""

    default_message = "Streaming operation timed out."


class InvalidStreamFormatError(StreamingError):
    """Raised when a stream chunk cannot be decoded."""

    default_message = "Invalid streaming response format."


__all__ = [
    "AuthenticationError",
    "BadRequestError",
    "ConfigurationError",
    "ContentBlockedError",
    "GeminiError",
    "InvalidModelError",
    "InvalidStreamFormatError",
    "RateLimitError",
    "RequestError",
    "ResourceNotFoundError",
    "ServerError",
    "StreamingError",
    "StreamingInterruptedError",
    "StreamingTimeoutError",
    "ValidationError",
]
