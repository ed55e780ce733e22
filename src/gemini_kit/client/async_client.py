"""Asynchronous client for the Gemini API.

This module provides the httpx-based counterpart of ``GeminiClient``. It
shares the request models, response models, error mapping and streaming
accumulator with the sync client; only the transport differs.

Key behaviors:
    - Uses httpx.AsyncClient with connection pooling and keep-alive
    - Semaphore-based limit on in-flight requests
      (``ClientConfig.max_concurrent_requests``)
    - Streaming via Server-Sent Events, exposed as an async iterator
    - Metrics and structured request logging as in the sync client

Lifecycle:
    - The httpx client is created lazily on first use
    - Call close() or use ``async with`` to release connections
"""

from __future__ import annotations

import asyncio
import logging
import time
import types
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import aclosing, asynccontextmanager
from typing import Any, TypeVar

import httpx

from gemini_kit.client.embeddings import embed_async
from gemini_kit.client.sync import wrap_streaming_error
from gemini_kit.client.transport import decode_json_body, parse_sse_line
from gemini_kit.core.config import ClientConfig, GeminiConfig, ImageConfig, get_settings
from gemini_kit.core.resilience import AsyncRetryController
from gemini_kit.domain.embeddings import EmbeddingResponse
from gemini_kit.domain.error_mapper import error_from_response
from gemini_kit.domain.exceptions import (
    GeminiError,
    RequestError,
    StreamingInterruptedError,
    StreamingTimeoutError,
)
from gemini_kit.domain.models import Model, ModelList
from gemini_kit.domain.requests import (
    ChatRequest,
    ContentRequest,
    EmbeddingRequest,
    content_endpoint,
    model_path,
)
from gemini_kit.domain.responses import ChatResponse, ContentResponse
from gemini_kit.domain.streaming import StreamAccumulator, StreamMode, StreamValue
from gemini_kit.domain.value_objects import TaskType
from gemini_kit.telemetry.metrics import track_request
from gemini_kit.telemetry.structured_logging import log_request_event, request_event

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class AsyncGeminiClient:
    """Async Gemini API client.

    Attributes:
        config: API connection settings.
        client_config: Retry, batching, pool and concurrency settings.
        image_config: Inline image limits.
        client: httpx.AsyncClient instance (initialized lazily).
        _semaphore: Bounds the number of in-flight requests.

    Thread safety:
        Safe for concurrent use from multiple tasks on one event loop.
    """

    __slots__ = ("config", "client_config", "image_config", "client", "_owns_client", "_semaphore")

    def __init__(
        self,
        config: GeminiConfig | None = None,
        client_config: ClientConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        image_config: ImageConfig | None = None,
    ) -> None:
        """Create a client. No connection is opened until the first call.

        Args:
            config: API settings. None uses the cached default settings.
            client_config: Client behaviour settings. None uses the defaults.
            http_client: httpx client to reuse. Closed by ``close()`` only
                when this client created it.
            image_config: Image limits. None uses the defaults.
        """
        settings = get_settings() if any(c is None for c in (config, client_config, image_config)) else None
        self.config = config or settings.gemini  # type: ignore[union-attr]
        self.client_config = client_config or settings.client  # type: ignore[union-attr]
        self.image_config = image_config or settings.image  # type: ignore[union-attr]
        self.client = http_client
        self._owns_client = http_client is None
        self._semaphore = asyncio.Semaphore(self.client_config.max_concurrent_requests)

    async def __aenter__(self) -> AsyncGeminiClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout, connect=self.config.open_timeout),
                limits=httpx.Limits(
                    max_connections=self.client_config.pool_maxsize,
                    max_keepalive_connections=self.client_config.pool_connections,
                ),
            )
        return self.client

    @asynccontextmanager
    async def _acquire_slot(self) -> AsyncIterator[None]:
        async with self._semaphore:
            yield

    async def close(self) -> None:
        """Close the httpx client. Safe to call more than once."""
        if self.client is not None and self._owns_client:
            await self.client.aclose()
        self.client = None

    # ============================================================================
    # Transport
    # ============================================================================

    def _url(self, path: str) -> str:
        return f"{self.config.api_base_url}/{path.lstrip('/')}"

    def _params(self, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        self.config.validate_api_key()
        query = {key: value for key, value in (params or {}).items() if value is not None}
        query["key"] = self.config.api_key
        return query

    async def _request(
        self,
        method: str,
        path: str,
        body: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        client = await self._ensure_client()
        query = self._params(params)
        try:
            async with self._acquire_slot():
                response = await client.request(method, self._url(path), params=query, json=body)
        except httpx.RequestError as exc:
            raise RequestError(f"Network error: {exc}") from exc

        if response.status_code >= 400:
            raise error_from_response(response.status_code, response.text)
        return decode_json_body(response.text)

    async def _stream_chunks(self, path: str, body: Mapping[str, Any]) -> AsyncIterator[dict[str, Any]]:
        client = await self._ensure_client()
        query = self._params({"alt": "sse"})
        timeout = httpx.Timeout(self.config.on_data_timeout, connect=self.config.open_timeout)
        deadline = time.monotonic() + self.config.streaming_timeout
        connected = False
        try:
            async with self._acquire_slot(), client.stream(
                "POST",
                self._url(path),
                params=query,
                json=body,
                timeout=timeout,
                headers={"Accept": "text/event-stream"},
            ) as response:
                connected = True
                if response.status_code >= 400:
                    await response.aread()
                    raise error_from_response(response.status_code, response.text)

                async for line in response.aiter_lines():
                    if time.monotonic() > deadline:
                        raise StreamingTimeoutError(f"Stream exceeded {self.config.streaming_timeout:g}s")
                    chunk = parse_sse_line(line)
                    if chunk is not None:
                        yield chunk
        except httpx.TimeoutException as exc:
            if not connected:
                raise RequestError(f"Network error: {exc}") from exc
            raise StreamingTimeoutError(f"No data received for {self.config.on_data_timeout:g}s") from exc
        except httpx.RequestError as exc:
            if not connected:
                raise RequestError(f"Network error: {exc}") from exc
            raise StreamingInterruptedError(f"Connection lost: {exc}") from exc

    # ============================================================================
    # Instrumentation
    # ============================================================================

    def _log_event(
        self,
        operation: str,
        model: str | None,
        request_id: str,
        start_time: float,
        error: BaseException | None = None,
        **extra: Any,
    ) -> None:
        if not self.config.log_requests:
            return
        event = request_event(
            request_id=request_id,
            operation=operation,
            model=model,
            latency_ms=(time.perf_counter() - start_time) * 1000,
            error=error,
            client_type="async",
            **extra,
        )
        log_request_event(event, self.config.log_dir)

    async def _execute(
        self,
        operation: str,
        model: str | None,
        call: Callable[[], Awaitable[_T]],
        **extra: Any,
    ) -> _T:
        request_id = str(uuid.uuid4())
        start_time = time.perf_counter()
        try:
            with track_request(model, operation):
                result = await call()
        except Exception as exc:
            logger.exception("%s failed for %s (request %s)", operation, model, request_id)
            self._log_event(operation, model, request_id, start_time, exc, **extra)
            raise
        self._log_event(operation, model, request_id, start_time, **extra)
        return result

    def _build_request(self, prompt: str, model: str | None, params: Mapping[str, Any]) -> ContentRequest:
        return ContentRequest(
            prompt,
            model,
            config=self.config,
            max_image_size_bytes=self.image_config.max_size_bytes,
            **params,
        )

    # ============================================================================
    # API
    # ============================================================================

    async def generate(self, request: ContentRequest) -> ContentResponse:
        """Send a generateContent request.

        Raises:
            ValidationError: If the request state is invalid.
            GeminiError: The mapped error kind for transport/API failures.
        """
        body = request.to_wire_shape()
        data = await self._execute(
            "generate",
            request.model,
            lambda: self._request("POST", content_endpoint(request.model), body),
            multimodal=request.is_multimodal,
        )
        return ContentResponse(data)

    async def generate_text(self, prompt: str, model: str | None = None, **params: Any) -> ContentResponse:
        return await self.generate(self._build_request(prompt, model, params))

    async def generate_with_retries(
        self,
        request: ContentRequest,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> ContentResponse:
        """``generate`` retried on rate limit and server errors (linear backoff)."""
        controller = AsyncRetryController(max_retries, retry_delay, self.client_config.max_retry_delay)
        return await controller.call(self.generate, request)

    async def stream_text(
        self,
        prompt: str,
        model: str | None = None,
        *,
        mode: StreamMode | str = StreamMode.INCREMENTAL,
        **params: Any,
    ) -> AsyncIterator[StreamValue]:
        """Stream generated text.

        Args:
            prompt: Prompt text.
            model: Model name. None uses ``config.default_model``.
            mode: "incremental", "delta" or "raw".
            **params: ContentRequest options.

        Yields:
            Values as chunks arrive, then a ``StreamSummary`` when the API
            reported usage. Stop iterating to cancel; the connection is
            closed when the generator is closed.

        Raises:
            ValueError: If ``mode`` is not a known stream mode.
            StreamingError: Any failure; streaming kinds keep their class and
                report the partial response size.
        """
        accumulator = StreamAccumulator(mode)
        try:
            request = self._build_request(prompt, model, params)
            body = request.to_wire_shape()
        except GeminiError as exc:
            raise wrap_streaming_error(exc, "") from exc

        request_id = str(uuid.uuid4())
        start_time = time.perf_counter()
        try:
            with track_request(request.model, "stream"):
                chunks = self._stream_chunks(content_endpoint(request.model, stream=True), body)
                async with aclosing(chunks):
                    async for chunk in chunks:
                        for value in accumulator.feed(chunk):
                            yield value
                        if not accumulator.is_active:
                            break
        except Exception as exc:
            logger.exception("Stream failed for %s after %d chunks", request.model, accumulator.chunk_count)
            self._log_event("stream", request.model, request_id, start_time, exc, chunks=accumulator.chunk_count)
            wrapped = wrap_streaming_error(exc, accumulator.text)
            if wrapped is exc:
                raise
            raise wrapped from exc
        self._log_event("stream", request.model, request_id, start_time, chunks=accumulator.chunk_count)

    async def chat(self, request: ChatRequest, history: Sequence[Mapping[str, Any]] = ()) -> ChatResponse:
        body = request.to_wire_shape(history)
        data = await self._execute(
            "chat",
            request.model,
            lambda: self._request("POST", content_endpoint(request.model), body),
            history_length=len(history),
        )
        return ChatResponse(data)

    async def embed(
        self,
        text: str | Sequence[str],
        model: str | None = None,
        *,
        task_type: TaskType | str = TaskType.RETRIEVAL_DOCUMENT,
        dimensions: int | None = None,
        title: str | None = None,
        batch_size: int | None = None,
    ) -> EmbeddingResponse:
        """Embed one text or a list of texts (see ``GeminiClient.embed``)."""
        request = EmbeddingRequest(
            text,
            model,
            task_type=task_type,
            dimensions=dimensions,
            title=title,
            config=self.config,
        )
        size = batch_size if batch_size is not None else self.client_config.max_batch_size

        async def post(path: str, payload: Mapping[str, Any]) -> dict[str, Any]:
            return await self._request("POST", path, payload)

        return await self._execute(
            "embed",
            request.model,
            lambda: embed_async(post, request, size),
            texts=len(request.texts),
        )

    async def list_models(self, page_size: int | None = None, page_token: str | None = None) -> ModelList:
        data = await self._execute(
            "list_models",
            None,
            lambda: self._request("GET", "models", params={"pageSize": page_size, "pageToken": page_token}),
        )
        return ModelList.from_api_data(data)

    async def get_model(self, name: str) -> Model:
        data = await self._execute("get_model", name, lambda: self._request("GET", model_path(name)))
        return Model.from_api_data(data)


__all__ = ["AsyncGeminiClient"]
