"""Structured request logging for the Gemini clients.

Request events are written as JSON Lines (one JSON object per line) to
``<log_dir>/requests.jsonl``. The file and its handler are created lazily,
the first time an event is logged for a given directory, so importing the
package never touches the filesystem. Clients only log events when
``GeminiConfig.log_requests`` is on.

Event Schema:
    - event: Event type identifier ("gemini_request")
    - timestamp: ISO 8601 timestamp (auto-injected if missing)
    - request_id, operation, model, status, latency_ms
    - error_type, error_message, http_status: present on failures
"""

from __future__ import annotations

import functools
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

REQUEST_LOGGER_NAME = "gemini.requests"
REQUEST_LOG_FILE = "requests.jsonl"

_DATETIME_ADAPTER = TypeAdapter(datetime)


@functools.cache
def get_request_logger(log_dir: str = "logs") -> logging.Logger:
    """Return the non-propagating JSONL logger writing into ``log_dir``.

    Each directory gets its own child logger of ``gemini.requests`` with a
    single file handler; repeated calls reuse it.

    Side effects:
        Creates ``log_dir`` if it doesn't exist.
    """
    path = Path(log_dir).resolve()
    path.mkdir(parents=True, exist_ok=True)

    request_logger = logging.getLogger(f"{REQUEST_LOGGER_NAME}.{abs(hash(str(path)))}")
    if not request_logger.handlers:
        request_logger.setLevel(logging.INFO)
        handler = logging.FileHandler(path / REQUEST_LOG_FILE, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(message)s"))
        request_logger.addHandler(handler)
        request_logger.propagate = False
    return request_logger


def close_request_loggers() -> None:
    """Close every request log handler and forget the cached loggers."""
    for request_logger in _cached_loggers():
        for handler in list(request_logger.handlers):
            handler.close()
            request_logger.removeHandler(handler)
    get_request_logger.cache_clear()


def _cached_loggers() -> list[logging.Logger]:
    prefix = f"{REQUEST_LOGGER_NAME}."
    return [
        logger
        for name, logger in logging.Logger.manager.loggerDict.items()
        if name.startswith(prefix) and isinstance(logger, logging.Logger)
    ]


def _json_default(value: Any) -> Any:
    match value:
        case datetime():
            return _DATETIME_ADAPTER.dump_python(value, mode="json")
        case Path():
            return str(value)
        case _:
            return str(value)


def log_request_event(event: dict[str, Any], log_dir: str | Path = "logs") -> None:
    """Emit a structured request event.

    Args:
        event: Event payload. A ``timestamp`` is added when missing
            (the dict is mutated).
        log_dir: Directory holding ``requests.jsonl``.

    Example:
        >>> log_request_event({
        ...     "event": "gemini_request",
        ...     "operation": "generate",
        ...     "status": "success",
        ...     "model": "gemini-2.0-flash",
        ...     "latency_ms": 412.3,
        ... })
    """
    event.setdefault("timestamp", datetime.now(UTC).isoformat())
    get_request_logger(str(log_dir)).info(json.dumps(event, default=_json_default))


def request_event(
    *,
    request_id: str,
    operation: str,
    model: str | None,
    latency_ms: float,
    error: BaseException | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a ``gemini_request`` event with the standard fields."""
    event: dict[str, Any] = {
        "event": "gemini_request",
        "request_id": request_id,
        "operation": operation,
        "model": model,
        "status": "success" if error is None else "error",
        "latency_ms": round(latency_ms, 3),
    }
    if error is not None:
        event["error_type"] = type(error).__name__
        event["error_message"] = str(error)
        http_status = getattr(error, "http_status", None)
        if http_status is not None:
            event["http_status"] = http_status
    event.update(extra)
    return event


__all__ = [
    "REQUEST_LOGGER_NAME",
    "close_request_loggers",
    "get_request_logger",
    "log_request_event",
    "request_event",
]
