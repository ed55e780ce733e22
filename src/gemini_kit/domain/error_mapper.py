"""Translate API failures into the client error taxonomy.

Two pure steps turn a failed HTTP exchange into a typed exception:

    1. ``parse_error_response`` pulls the wire error code and a readable
       message out of the (possibly malformed) response body.
    2. ``map_error`` picks the concrete error kind. A recognised API error
       code always wins over the HTTP status; the status is the fallback;
       anything else becomes a plain ``GeminiError``.

Neither step raises.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from gemini_kit.domain.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConfigurationError,
    ContentBlockedError,
    GeminiError,
    InvalidModelError,
    RateLimitError,
    ResourceNotFoundError,
    ServerError,
    ValidationError,
)

_CODE_IN_TEXT = re.compile(r"code[:\s]+([A-Z_]+)", re.IGNORECASE)
_DETAIL_TYPE_MARKER = "type.googleapis.com"


@dataclass(slots=True, frozen=True)
class ErrorInfo:
    """Normalized view of a failed API response.

    Attributes:
        http_status: HTTP status code, or None when unknown.
        code: API error code (``error.code`` or ``error.status``), or None.
        message: Human-readable message, never empty.
    """

    http_status: int | None
    code: str | None
    message: str


def default_error_message(http_status: int | None) -> str:
    """Return the fallback message for an HTTP status."""
    match http_status:
        case 400:
            return "Bad Request: The server could not process the request"
        case 401:
            return "Unauthorized: Authentication is required or has failed"
        case 403:
            return "Forbidden: You don't have permission to access this resource"
        case 404:
            return "Not Found: The requested resource could not be found"
        case 429:
            return "Too Many Requests: Rate limit exceeded"
        case int() as status if 500 <= status <= 599:
            return f"Server Error: The server encountered an error ({status})"
        case _:
            return f"Error: An unexpected error occurred (HTTP {http_status})"


def _decode_body(body: str | bytes | dict[str, Any] | None) -> dict[str, Any] | None:
    match body:
        case None | "" | b"":
            return None
        case dict():
            return body
        case bytes():
            text = body.decode("utf-8", errors="replace")
        case _:
            text = str(body)
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, dict) else None


def _extract_code(error: Any) -> str | None:
    match error:
        case dict():
            code = error.get("code")
            status = error.get("status")
            # A numeric code only repeats the HTTP status; the symbolic
            # status ("RESOURCE_EXHAUSTED") is the more specific signal.
            if (code is None or isinstance(code, int)) and isinstance(status, str) and status:
                return status
            return str(code) if code is not None else None
        case str():
            found = _CODE_IN_TEXT.search(error)
            return found.group(1) if found else None
        case _:
            return None


def _extract_detail_messages(error: dict[str, Any]) -> str | None:
    details = error.get("details")
    if not isinstance(details, list) or not details:
        return None

    messages = []
    for detail in details:
        if not isinstance(detail, dict):
            continue
        if _DETAIL_TYPE_MARKER not in str(detail.get("@type", "")):
            continue
        text = detail.get("detail") or detail.get("description") or detail.get("message")
        if text:
            messages.append(str(text))
    return ". ".join(messages) if messages else None


def _extract_message(error: Any, http_status: int | None) -> str:
    match error:
        case dict():
            if error.get("message"):
                return str(error["message"])
            return _extract_detail_messages(error) or default_error_message(http_status)
        case str() if error:
            return error
        case _:
            return default_error_message(http_status)


def parse_error_response(
    http_status: int | None,
    body: str | bytes | dict[str, Any] | None,
) -> ErrorInfo:
    """Extract the error code and message from a failed response.

    Args:
        http_status: HTTP status of the response.
        body: Raw response body (text, bytes or an already decoded dict).
            Bodies that are empty or not JSON objects fall back to the
            default message for the status.

    Returns:
        ErrorInfo with the status, the API error code (if any) and a
        non-empty message.
    """
    decoded = _decode_body(body)
    if decoded is None:
        return ErrorInfo(http_status, None, default_error_message(http_status))

    error = decoded.get("error")
    return ErrorInfo(
        http_status=http_status,
        code=_extract_code(error),
        message=_extract_message(error, http_status),
    )


def _class_for_code(code: str | None, message: str) -> type[GeminiError] | None:
    if not code:
        return None

    code = code.lower()
    message = message.lower()

    if any(token in code for token in ("permission", "unauthorized", "unauthenticated")):
        return AuthenticationError
    if any(token in code for token in ("quota", "rate", "limit", "exhausted")):
        return RateLimitError
    if "not_found" in code or "notfound" in code:
        return ResourceNotFoundError
    if "invalid" in code and ("model" in code or "model" in message):
        return InvalidModelError
    if "invalid" in code or "validation" in code:
        return ValidationError
    if "blocked" in code or "blocked" in message or "safety" in message:
        return ContentBlockedError
    if "server" in code or "internal" in code:
        return ServerError
    if "config" in code:
        return ConfigurationError
    return None


def _class_for_status(http_status: int | None) -> type[GeminiError] | None:
    match http_status:
        case 400:
            return BadRequestError
        case 401 | 403:
            return AuthenticationError
        case 404:
            return ResourceNotFoundError
        case 429:
            return RateLimitError
        case int() as status if 500 <= status <= 599:
            return ServerError
        case _:
            return None


def error_class_for(
    http_status: int | None,
    api_code: str | None,
    message: str | None = None,
) -> type[GeminiError]:
    """Select the error kind for a failure (code first, then status)."""
    return (
        _class_for_code(api_code, message or "")
        or _class_for_status(http_status)
        or GeminiError
    )


def map_error(
    http_status: int | None,
    api_code: str | None,
    message: str | None,
) -> GeminiError:
    """Build the typed exception for a failed API call.

    Args:
        http_status: HTTP status code, or None.
        api_code: API error code from the response body, or None.
        message: Error message to carry. None uses the kind's default.

    Returns:
        An instance of the selected GeminiError subclass carrying the
        original message, code and status. Never raises.

    Example:
        >>> type(map_error(400, "QUOTA_EXCEEDED", "Too many")).__name__
        'RateLimitError'
    """
    error_class = error_class_for(http_status, api_code, message)
    return error_class(message, api_code, http_status)


def error_from_response(
    http_status: int | None,
    body: str | bytes | dict[str, Any] | None,
) -> GeminiError:
    """Parse a failed response body and map it to a typed exception."""
    info = parse_error_response(http_status, body)
    return map_error(info.http_status, info.code, info.message)


__all__ = [
    "ErrorInfo",
    "default_error_message",
    "error_class_for",
    "error_from_response",
    "map_error",
    "parse_error_response",
]
