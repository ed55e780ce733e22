"""Domain layer for gemini_kit.

Request and response models, value objects, the streaming accumulator and
the error taxonomy. Only the error taxonomy is re-exported here; import the
models from their modules (``gemini_kit.domain.requests`` and so on).
"""

from gemini_kit.domain.error_mapper import error_from_response, map_error, parse_error_response
from gemini_kit.domain.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConfigurationError,
    ContentBlockedError,
    GeminiError,
    InvalidModelError,
    InvalidStreamFormatError,
    RateLimitError,
    RequestError,
    ResourceNotFoundError,
    ServerError,
    StreamingError,
    StreamingInterruptedError,
    StreamingTimeoutError,
    ValidationError,
)

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
    "error_from_response",
    "map_error",
    "parse_error_response",
]
