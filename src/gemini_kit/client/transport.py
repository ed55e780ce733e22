"""Synchronous HTTP transport for the Gemini API.

``GeminiTransport`` owns a ``requests.Session`` with a pooled
``HTTPAdapter`` and turns HTTP exchanges into decoded JSON or typed
errors:

    - Network failures (connection refused, DNS, timeouts) raise
      ``RequestError("Network error: ...")``.
    - HTTP 4xx/5xx responses are parsed and mapped through
      ``error_from_response`` (code first, then status).
    - Bodies that are not JSON objects raise
      ``RequestError("Invalid JSON response: ...")``; empty bodies decode
      to ``{}``.

Streaming uses Server-Sent Events (``alt=sse``): every ``data:`` line
carries one JSON chunk. The stream stops promptly when the caller's
cancel event is set, and the response is always closed.

Paths are relative to the versioned API root, e.g.
``models/gemini-2.0-flash:generateContent``. The API key travels as the
``key`` query parameter.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
from collections.abc import Iterator, Mapping
from types import TracebackType
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import ReadTimeoutError

from gemini_kit.core.config import ClientConfig, GeminiConfig, get_settings
from gemini_kit.domain.error_mapper import error_from_response
from gemini_kit.domain.exceptions import (
    InvalidStreamFormatError,
    RequestError,
    StreamingInterruptedError,
    StreamingTimeoutError,
)

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"


def decode_json_body(text: str) -> dict[str, Any]:
    """Decode a response body into a JSON object.

    Raises:
        RequestError: If the body is not valid JSON or not an object.
    """
    if not text or not text.strip():
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RequestError(f"Invalid JSON response: {exc}") from exc
    if not isinstance(data, dict):
        raise RequestError(f"Invalid JSON response: expected an object, got {type(data).__name__}")
    return data


def parse_sse_line(line: str) -> dict[str, Any] | None:
    """Decode one Server-Sent Events line.

    Returns:
        The chunk for a ``data:`` line, or None for blank lines, comments,
        other SSE fields and the ``[DONE]`` sentinel.

    Raises:
        InvalidStreamFormatError: If a data line does not hold a JSON object.
    """
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX) :].strip()
    if not payload or payload == "[DONE]":
        return None
    try:
        chunk = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise InvalidStreamFormatError(f"Invalid stream chunk: {exc}") from exc
    if not isinstance(chunk, dict):
        raise InvalidStreamFormatError(f"Invalid stream chunk: expected an object, got {type(chunk).__name__}")
    return chunk


def is_read_timeout(exc: requests.exceptions.RequestException) -> bool:
    """Whether ``exc`` is a read timeout raised while consuming a body.

    ``iter_content`` re-raises urllib3's ``ReadTimeoutError`` as a
    ``requests.exceptions.ConnectionError``, so the ``Timeout`` class alone
    does not catch a stalled stream.
    """
    if isinstance(exc, requests.exceptions.Timeout):
        return True
    if not isinstance(exc, requests.exceptions.ConnectionError):
        return False
    reason = exc.args[0] if exc.args else None
    return isinstance(reason, ReadTimeoutError) or isinstance(exc.__cause__, (ReadTimeoutError, socket.timeout))


class GeminiTransport:
    """Blocking JSON-over-HTTP transport.

    Attributes:
        config: API connection settings (base URL, key, timeouts).
        session: requests.Session with connection pooling configured.
    """

    __slots__ = ("config", "session", "_owns_session")

    def __init__(
        self,
        config: GeminiConfig | None = None,
        client_config: ClientConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Create a transport.

        Args:
            config: API settings. None uses the cached default settings.
            client_config: Pool sizes. None uses the cached default settings.
            session: Session to reuse. A pooled session is created when None
                and closed by ``close()``.
        """
        settings = get_settings() if config is None or client_config is None else None
        self.config = config or settings.gemini  # type: ignore[union-attr]
        pool = client_config or settings.client  # type: ignore[union-attr]
        self._owns_session = session is None
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=pool.pool_connections, pool_maxsize=pool.pool_maxsize)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

    def __enter__(self) -> GeminiTransport:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    # ------------------------------------------------------------------ helpers

    def url_for(self, path: str) -> str:
        return f"{self.config.api_base_url}/{path.lstrip('/')}"

    def _params(self, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        self.config.validate_api_key()
        query = {key: value for key, value in (params or {}).items() if value is not None}
        query["key"] = self.config.api_key
        return query

    def _timeout(self, read: float | None = None) -> tuple[float, float]:
        return (self.config.open_timeout, read if read is not None else self.config.timeout)

    @staticmethod
    def _raise_for_status(response: requests.Response) -> None:
        if response.status_code >= 400:
            error = error_from_response(response.status_code, response.text)
            logger.debug("HTTP %s mapped to %s: %s", response.status_code, type(error).__name__, error)
            raise error

    def _send(
        self,
        method: str,
        path: str,
        *,
        body: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        query = self._params(params)
        try:
            response = self.session.request(
                method,
                self.url_for(path),
                params=query,
                json=body,
                timeout=self._timeout(),
            )
        except requests.exceptions.RequestException as exc:
            raise RequestError(f"Network error: {exc}") from exc

        self._raise_for_status(response)
        return decode_json_body(response.text)

    # ------------------------------------------------------------------ API

    def get(self, path: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """GET ``path`` and decode the JSON object it returns.

        Raises:
            ConfigurationError: If no API key is configured.
            RequestError: On network failure or a non-object body.
            GeminiError: The mapped error kind for HTTP 4xx/5xx responses.
        """
        return self._send("GET", path, params=params)

    def post(
        self,
        path: str,
        body: Mapping[str, Any],
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """POST a JSON ``body`` to ``path`` and decode the JSON object it returns."""
        return self._send("POST", path, body=body, params=params)

    def post_stream(
        self,
        path: str,
        body: Mapping[str, Any],
        cancel_event: threading.Event | None = None,
    ) -> Iterator[dict[str, Any]]:
        """POST ``body`` and yield decoded SSE chunks in arrival order.

        Args:
            path: Streaming endpoint, e.g. ``models/m:streamGenerateContent``.
            body: Request body.
            cancel_event: When set, the stream stops before the next chunk
                and the connection is closed.

        Yields:
            One dict per ``data:`` event.

        Raises:
            RequestError: If the connection cannot be established.
            GeminiError: The mapped error kind for HTTP 4xx/5xx responses.
            StreamingInterruptedError: If the connection drops mid-stream.
            StreamingTimeoutError: If the stream exceeds ``streaming_timeout``
                or goes silent for longer than ``on_data_timeout``.
            InvalidStreamFormatError: If a data line is not a JSON object.
        """
        query = self._params({"alt": "sse"})
        try:
            response = self.session.post(
                self.url_for(path),
                params=query,
                json=body,
                stream=True,
                timeout=self._timeout(self.config.on_data_timeout),
                headers={"Accept": "text/event-stream"},
            )
        except requests.exceptions.RequestException as exc:
            raise RequestError(f"Network error: {exc}") from exc

        deadline = time.monotonic() + self.config.streaming_timeout
        with response:
            self._raise_for_status(response)
            if response.encoding is None:
                response.encoding = "utf-8"
            try:
                for line in response.iter_lines(decode_unicode=True):
                    if cancel_event is not None and cancel_event.is_set():
                        logger.info("Stream cancelled by caller")
                        return
                    if time.monotonic() > deadline:
                        raise StreamingTimeoutError(
                            f"Stream exceeded {self.config.streaming_timeout:g}s"
                        )
                    if not line:
                        continue
                    chunk = parse_sse_line(line)
                    if chunk is not None:
                        yield chunk
            except requests.exceptions.RequestException as exc:
                if is_read_timeout(exc):
                    raise StreamingTimeoutError(
                        f"No data received for {self.config.on_data_timeout:g}s"
                    ) from exc
                raise StreamingInterruptedError(f"Connection lost: {exc}") from exc


__all__ = [
    "SSE_DATA_PREFIX",
    "GeminiTransport",
    "decode_json_body",
    "is_read_timeout",
    "parse_sse_line",
]
