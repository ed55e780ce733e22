"""Synchronous client for the Gemini API.

This module provides the blocking client built on ``GeminiTransport``
(requests with connection pooling). It turns request models into API
calls and wraps the decoded JSON in response models.

Key behaviors:
    - Every call is timed, recorded in ``MetricsCollector`` and, when
      ``GeminiConfig.log_requests`` is on, logged as a structured event
    - Transport and API failures surface as the mapped ``GeminiError``
      kinds, unchanged
    - ``generate_with_retries`` and the convenience helpers retry rate
      limit and server errors with linear backoff
    - Streaming returns a ``TextStream`` iterator that can be cancelled
      from another thread

Thread safety:
    - A client may be shared across threads; each call builds its own
      request and response objects
    - ``cancel_streaming()`` may be called from any thread
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
import weakref
from collections.abc import Callable, Iterator, Mapping, Sequence
from types import TracebackType
from typing import Any, TypeVar

from gemini_kit.client.embeddings import embed_sync
from gemini_kit.client.transport import GeminiTransport
from gemini_kit.core.config import ClientConfig, GeminiConfig, ImageConfig, get_settings
from gemini_kit.core.resilience import RetryController
from gemini_kit.domain.embeddings import EmbeddingResponse
from gemini_kit.domain.exceptions import GeminiError, StreamingError, ValidationError
from gemini_kit.domain.models import Model, ModelList
from gemini_kit.domain.requests import (
    ChatRequest,
    ContentRequest,
    EmbeddingRequest,
    content_endpoint,
    model_path,
)
from gemini_kit.domain.responses import ChatResponse, ContentResponse
from gemini_kit.domain.streaming import StreamAccumulator, StreamMode, StreamState, StreamValue
from gemini_kit.domain.value_objects import FunctionCallingMode, TaskType
from gemini_kit.telemetry.metrics import track_request
from gemini_kit.telemetry.structured_logging import log_request_event, request_event

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

FUNCTION_CALLING_INSTRUCTION = (
    "You are a helpful assistant. When you encounter a question that you can answer by "
    "calling a function, you must always use the provided function. Always respond using "
    "the function call format, not with your own text."
)
JSON_INSTRUCTION = "You must respond with valid JSON only, with no explanation or other text."
CODE_EXECUTION_INSTRUCTION = (
    "You are a helpful assistant with the ability to generate and execute Python code. "
    "When appropriate, use code to solve problems or complete tasks."
)


def _prepend_instruction(prefix: str, instruction: str | None) -> str:
    return f"{prefix} {instruction}" if instruction else prefix


def wrap_streaming_error(error: Exception, partial_text: str) -> GeminiError:
    """Translate a failure raised while streaming.

    Streaming kinds keep their class and gain the partial response size when
    some text had already arrived. Every other failure becomes a
    ``StreamingError`` carrying the original message.
    """
    match error:
        case StreamingError() if partial_text:
            message = f"Streaming error: {error.message} (Partial response received: {len(partial_text)} characters)"
            return type(error)(message, error.code, error.http_status)
        case StreamingError():
            return error
        case _:
            return StreamingError(f"Error during text generation streaming: {error}")


class TextStream(Iterator[StreamValue]):
    """Iterator over the values of one streamed generation.

    Yields strings (the running text, the delta or the raw chunk, depending
    on the mode) and, after the terminal chunk, a ``StreamSummary`` when
    the API reported usage.

    Example:
        >>> for value in client.generate_text_stream("Tell me a story"):
        ...     if isinstance(value, str):
        ...         print(value)

    Attributes:
        accumulator: Stream state and the text received so far.
    """

    __slots__ = ("accumulator", "_cancel_event", "_values", "__weakref__")

    def __init__(
        self,
        values: Iterator[StreamValue],
        accumulator: StreamAccumulator,
        cancel_event: threading.Event,
    ) -> None:
        self.accumulator = accumulator
        self._cancel_event = cancel_event
        self._values = values

    def __iter__(self) -> TextStream:
        return self

    def __next__(self) -> StreamValue:
        try:
            return next(self._values)
        except StopIteration:
            raise
        except Exception as exc:
            wrapped = wrap_streaming_error(exc, self.accumulator.text)
            if wrapped is exc:
                raise
            raise wrapped from exc

    @property
    def text(self) -> str:
        """Text received so far; still readable after a failure or cancel."""
        return self.accumulator.text

    @property
    def state(self) -> StreamState:
        return self.accumulator.state

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop the stream before its next chunk and close the connection."""
        self._cancel_event.set()
        self.accumulator.cancel()

    def close(self) -> None:
        close = getattr(self._values, "close", None)
        if close is not None:
            close()


class GeminiClient:
    """Gemini API client (synchronous version).

    Attributes:
        config: API connection settings.
        client_config: Retry, batching and pool settings.
        image_config: Inline image limits.
        transport: HTTP transport used for every call.
    """

    __slots__ = (
        "config",
        "client_config",
        "image_config",
        "transport",
        "_owns_transport",
        "_streams",
        "_streams_lock",
    )

    def __init__(
        self,
        config: GeminiConfig | None = None,
        client_config: ClientConfig | None = None,
        *,
        transport: GeminiTransport | None = None,
        image_config: ImageConfig | None = None,
    ) -> None:
        """Create a client.

        Args:
            config: API settings. None uses the cached default settings.
            client_config: Client behaviour settings. None uses the defaults.
            transport: Transport to use. A pooled transport is created when
                None and closed by ``close()``.
            image_config: Image limits. None uses the defaults.
        """
        settings = get_settings() if any(c is None for c in (config, client_config, image_config)) else None
        self.config = config or settings.gemini  # type: ignore[union-attr]
        self.client_config = client_config or settings.client  # type: ignore[union-attr]
        self.image_config = image_config or settings.image  # type: ignore[union-attr]
        self._owns_transport = transport is None
        self.transport = transport or GeminiTransport(self.config, self.client_config)
        self._streams: weakref.WeakSet[TextStream] = weakref.WeakSet()
        self._streams_lock = threading.Lock()

    def __enter__(self) -> GeminiClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Cancel open streams and release the transport if this client created it."""
        self.cancel_streaming()
        if self._owns_transport:
            self.transport.close()

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
        latency_ms = (time.perf_counter() - start_time) * 1000
        event = request_event(
            request_id=request_id,
            operation=operation,
            model=model,
            latency_ms=latency_ms,
            error=error,
            client_type="sync",
            **extra,
        )
        log_request_event(event, self.config.log_dir)

    def _execute(self, operation: str, model: str | None, call: Callable[[], _T], **extra: Any) -> _T:
        """Run one API call with metrics and request logging."""
        request_id = str(uuid.uuid4())
        start_time = time.perf_counter()
        try:
            with track_request(model, operation):
                result = call()
        except Exception as exc:
            logger.exception("%s failed for %s (request %s)", operation, model, request_id)
            self._log_event(operation, model, request_id, start_time, exc, **extra)
            raise
        self._log_event(operation, model, request_id, start_time, **extra)
        return result

    def _retry_controller(self, max_retries: int | None = None, retry_delay: float | None = None) -> RetryController:
        return RetryController(
            self.client_config.max_retries if max_retries is None else max_retries,
            self.client_config.retry_delay if retry_delay is None else retry_delay,
            self.client_config.max_retry_delay,
        )

    def _build_request(self, prompt: str, model: str | None, params: Mapping[str, Any]) -> ContentRequest:
        return ContentRequest(
            prompt,
            model,
            config=self.config,
            max_image_size_bytes=self.image_config.max_size_bytes,
            **params,
        )

    def _send(
        self,
        request: ContentRequest,
        *,
        with_retries: bool,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> ContentResponse:
        if with_retries:
            return self.generate_with_retries(request, max_retries, retry_delay)
        return self.generate(request)

    # ============================================================================
    # Text generation
    # ============================================================================

    def generate(self, request: ContentRequest) -> ContentResponse:
        """Send a generateContent request.

        Args:
            request: Content request. Tools, safety settings and JSON mode are
                re-validated before sending.

        Returns:
            ContentResponse wrapping the API body.

        Raises:
            ValidationError: If the request state is invalid.
            ConfigurationError: If no API key is configured.
            GeminiError: The mapped error kind for transport/API failures.
        """
        body = request.to_wire_shape()
        data = self._execute(
            "generate",
            request.model,
            lambda: self.transport.post(content_endpoint(request.model), body),
            multimodal=request.is_multimodal,
        )
        return ContentResponse(data)

    def generate_text(self, prompt: str, model: str | None = None, **params: Any) -> ContentResponse:
        """Generate text from a prompt.

        Args:
            prompt: Prompt text.
            model: Model name. None uses ``config.default_model``.
            **params: ContentRequest options (temperature, max_tokens, top_p,
                top_k, stop_sequences, system_instruction).
        """
        return self.generate(self._build_request(prompt, model, params))

    def generate_multimodal(
        self,
        prompt: str,
        images: Sequence[Mapping[str, Any]],
        model: str | None = None,
        **params: Any,
    ) -> ContentResponse:
        """Generate content from a prompt and one or more images.

        Args:
            prompt: Prompt text.
            images: Image sources, each ``{"source_type": "file" | "bytes" |
                "url", "data": <path, bytes or URL>}``; bytes sources also
                need ``"mime_type"``.
            model: Model name. None uses ``config.default_model``.
            **params: ContentRequest options.

        Raises:
            ValidationError: If a source type is unknown or an image is
                invalid, too large or unreadable.
        """
        request = self._build_request(prompt, model, params)
        for image in images:
            source_type = image.get("source_type")
            match source_type:
                case "file":
                    request.add_image_from_file(image["data"])
                case "bytes":
                    request.add_image_from_bytes(image["data"], image.get("mime_type"))  # type: ignore[arg-type]
                case "url":
                    request.add_image_from_url(image["data"], timeout=self.image_config.url_timeout)
                case _:
                    raise ValidationError(
                        f"Invalid image source type: {source_type}. Must be 'file', 'bytes', or 'url'",
                        "INVALID_ARGUMENT",
                    )
        return self.generate(request)

    def generate_with_retries(
        self,
        request: ContentRequest,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> ContentResponse:
        """``generate`` retried on rate limit and server errors.

        The wait before retry *n* is ``retry_delay * n`` seconds. After
        ``max_retries`` retries the last error propagates.
        """
        return self._retry_controller(max_retries, retry_delay).call(self.generate, request)

    # ============================================================================
    # Streaming
    # ============================================================================

    def generate_text_stream(
        self,
        prompt: str,
        model: str | None = None,
        *,
        mode: StreamMode | str = StreamMode.INCREMENTAL,
        **params: Any,
    ) -> TextStream:
        """Stream generated text.

        Args:
            prompt: Prompt text.
            model: Model name. None uses ``config.default_model``.
            mode: "incremental" (running text), "delta" (new text only) or
                "raw" (decoded chunks).
            **params: ContentRequest options.

        Returns:
            TextStream yielding values as chunks arrive. Nothing is sent
            until the first value is requested.

        Raises:
            ValueError: If ``mode`` is not a known stream mode.
            StreamingError: If the request is invalid; its message wraps
                the validation failure.
        """
        accumulator = StreamAccumulator(mode)
        try:
            request = self._build_request(prompt, model, params)
            body = request.to_wire_shape()
        except GeminiError as exc:
            raise wrap_streaming_error(exc, "") from exc

        cancel_event = threading.Event()
        values = self._stream_values(request.model, body, accumulator, cancel_event)
        stream = TextStream(values, accumulator, cancel_event)
        with self._streams_lock:
            self._streams.add(stream)
        return stream

    def _stream_values(
        self,
        model: str,
        body: Mapping[str, Any],
        accumulator: StreamAccumulator,
        cancel_event: threading.Event,
    ) -> Iterator[StreamValue]:
        request_id = str(uuid.uuid4())
        start_time = time.perf_counter()
        error: BaseException | None = None
        try:
            with track_request(model, "stream"):
                chunks = self.transport.post_stream(content_endpoint(model, stream=True), body, cancel_event)
                yield from accumulator.consume(chunks)
        except Exception as exc:
            error = exc
            logger.exception(
                "Stream failed for %s after %d chunks (request %s)", model, accumulator.chunk_count, request_id
            )
            raise
        finally:
            self._log_event(
                "stream",
                model,
                request_id,
                start_time,
                error,
                chunks=accumulator.chunk_count,
                stream_state=str(accumulator.state),
                response_chars=len(accumulator.text),
            )

    def cancel_streaming(self) -> bool:
        """Cancel every stream this client has open.

        Returns:
            True if at least one active stream was cancelled.
        """
        with self._streams_lock:
            streams = list(self._streams)
        active = [stream for stream in streams if stream.state is StreamState.STREAMING]
        for stream in active:
            stream.cancel()
        if active:
            logger.info("Cancelled %d active stream(s)", len(active))
        return bool(active)

    # ============================================================================
    # Function calling, JSON mode and code execution
    # ============================================================================

    def generate_with_functions(
        self,
        prompt: str,
        functions: Sequence[Mapping[str, Any]],
        model: str | None = None,
        *,
        tool_execution_mode: FunctionCallingMode | str = FunctionCallingMode.AUTO,
        with_retries: bool = True,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **params: Any,
    ) -> ContentResponse:
        """Generate with function declarations attached.

        Args:
            prompt: Prompt text.
            functions: Declarations as ``{"name", "description", "parameters"}``.
            model: Model name. None uses ``config.default_model``.
            tool_execution_mode: AUTO, MANUAL or NONE.
            with_retries: Retry rate limit and server errors.
            max_retries: Retry limit when ``with_retries`` is on.
            retry_delay: Base retry delay in seconds.
            **params: ContentRequest options. A ``system_instruction`` is
                appended to the function-calling instruction.

        Returns:
            ContentResponse; ``function_call`` is set when the model chose
            to call one of the functions.

        Raises:
            ValidationError: If ``functions`` is empty or a declaration is
                invalid.
        """
        if not functions or isinstance(functions, (str, bytes, Mapping)):
            raise ValidationError("Functions must be a non-empty array", "INVALID_ARGUMENT")

        params["system_instruction"] = _prepend_instruction(
            FUNCTION_CALLING_INSTRUCTION, params.get("system_instruction")
        )
        request = self._build_request(prompt, model, params)
        for function in functions:
            request.add_function(function.get("name"), function.get("description"), function.get("parameters"))  # type: ignore[arg-type]
        request.set_tool_config(tool_execution_mode)
        return self._send(request, with_retries=with_retries, max_retries=max_retries, retry_delay=retry_delay)

    def generate_json(
        self,
        prompt: str,
        model: str | None = None,
        *,
        schema: Mapping[str, Any] | None = None,
        with_retries: bool = True,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **params: Any,
    ) -> ContentResponse:
        """Generate a JSON response.

        The response MIME type is set to ``application/json`` and, when
        given, ``schema`` is sent as the response schema. Read the result
        from ``ContentResponse.json_response``.
        """
        params["system_instruction"] = _prepend_instruction(JSON_INSTRUCTION, params.get("system_instruction"))
        request = self._build_request(prompt, model, params).enable_json_mode(schema)
        return self._send(request, with_retries=with_retries, max_retries=max_retries, retry_delay=retry_delay)

    def process_function_call(
        self,
        response: ContentResponse,
        handler: Callable[[str, dict[str, Any]], Any],
        model: str | None = None,
        *,
        with_retries: bool = True,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> ContentResponse:
        """Run the function the model asked for and send back its result.

        Args:
            response: Response holding a function call.
            handler: Called as ``handler(name, args)``; its return value is
                reported to the model.
            model: Model for the follow-up request.

        Returns:
            The model's response to the function result.

        Raises:
            ValidationError: If ``response`` has no function call.
        """
        function_call = response.function_call
        if function_call is None:
            raise ValidationError("The response does not contain a function call", "INVALID_ARGUMENT")

        result = handler(function_call.name, function_call.args)
        logger.debug("Function %s handled, sending result back", function_call.name)
        request = self._build_request(f"Function {function_call.name} returned: {result!r}", model, {})
        return self._send(request, with_retries=with_retries, max_retries=max_retries, retry_delay=retry_delay)

    def generate_with_code_execution(
        self,
        prompt: str,
        model: str | None = None,
        *,
        with_retries: bool = True,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **params: Any,
    ) -> ContentResponse:
        """Generate with the code execution tool enabled.

        Generated code and its result are exposed as
        ``ContentResponse.executable_code`` and ``code_execution_result``.
        """
        params["system_instruction"] = _prepend_instruction(
            CODE_EXECUTION_INSTRUCTION, params.get("system_instruction")
        )
        request = self._build_request(prompt, model, params).enable_code_execution()
        return self._send(request, with_retries=with_retries, max_retries=max_retries, retry_delay=retry_delay)

    # ============================================================================
    # Safety settings
    # ============================================================================

    def generate_with_safety_settings(
        self,
        prompt: str,
        safety_settings: Sequence[Mapping[str, Any]],
        model: str | None = None,
        *,
        with_retries: bool = True,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **params: Any,
    ) -> ContentResponse:
        """Generate with explicit ``{"category", "threshold"}`` safety settings."""
        request = self._build_request(prompt, model, params)
        for setting in safety_settings:
            request.add_safety_setting(setting.get("category"), setting.get("threshold"))  # type: ignore[arg-type]
        return self._send(request, with_retries=with_retries, max_retries=max_retries, retry_delay=retry_delay)

    def generate_text_safe(
        self,
        prompt: str,
        model: str | None = None,
        *,
        with_retries: bool = True,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **params: Any,
    ) -> ContentResponse:
        """Generate with every harm category blocked at low probability and above."""
        request = self._build_request(prompt, model, params).block_all_harmful_content()
        return self._send(request, with_retries=with_retries, max_retries=max_retries, retry_delay=retry_delay)

    def generate_text_permissive(
        self,
        prompt: str,
        model: str | None = None,
        *,
        with_retries: bool = True,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **params: Any,
    ) -> ContentResponse:
        """Generate blocking only high-probability harmful content."""
        request = self._build_request(prompt, model, params).block_only_high_risk_content()
        return self._send(request, with_retries=with_retries, max_retries=max_retries, retry_delay=retry_delay)

    # ============================================================================
    # Chat
    # ============================================================================

    def chat(self, request: ChatRequest, history: Sequence[Mapping[str, Any]] = ()) -> ChatResponse:
        """Send one chat turn.

        Args:
            request: The new user turn.
            history: Earlier turns in wire form, oldest first, excluding
                ``request``.
        """
        body = request.to_wire_shape(history)
        data = self._execute(
            "chat",
            request.model,
            lambda: self.transport.post(content_endpoint(request.model), body),
            history_length=len(history),
        )
        return ChatResponse(data)

    # ============================================================================
    # Embeddings
    # ============================================================================

    def embed(
        self,
        text: str | Sequence[str],
        model: str | None = None,
        *,
        task_type: TaskType | str = TaskType.RETRIEVAL_DOCUMENT,
        dimensions: int | None = None,
        title: str | None = None,
        batch_size: int | None = None,
    ) -> EmbeddingResponse:
        """Embed one text or a list of texts.

        Args:
            text: One text, or a list for a batch.
            model: Embedding model. None uses
                ``config.default_embedding_model``.
            task_type: Intended use of the embeddings.
            dimensions: Optional output dimensionality.
            title: Optional document title (single texts only).
            batch_size: Texts per batch call. None uses
                ``client_config.max_batch_size``; longer lists are split and
                the results combined in order.

        Raises:
            ValidationError: If the input or options are invalid, or the
                API returns inconsistent vectors.
        """
        request = EmbeddingRequest(
            text,
            model,
            task_type=task_type,
            dimensions=dimensions,
            title=title,
            config=self.config,
        )
        size = batch_size if batch_size is not None else self.client_config.max_batch_size
        return self.generate_embedding(request, size)

    def generate_embedding(self, request: EmbeddingRequest, batch_size: int | None = None) -> EmbeddingResponse:
        """Send a prepared embedding request."""
        size = batch_size if batch_size is not None else self.client_config.max_batch_size
        return self._execute(
            "embed",
            request.model,
            lambda: embed_sync(self.transport.post, request, size),
            texts=len(request.texts),
        )

    # ============================================================================
    # Models
    # ============================================================================

    def list_models(self, page_size: int | None = None, page_token: str | None = None) -> ModelList:
        """Fetch one page of the model listing."""
        data = self._execute(
            "list_models",
            None,
            lambda: self.transport.get("models", {"pageSize": page_size, "pageToken": page_token}),
        )
        return ModelList.from_api_data(data)

    def get_model(self, name: str) -> Model:
        """Fetch metadata for one model (the ``models/`` prefix is optional)."""
        data = self._execute("get_model", name, lambda: self.transport.get(model_path(name)))
        return Model.from_api_data(data)


__all__ = [
    "CODE_EXECUTION_INSTRUCTION",
    "FUNCTION_CALLING_INSTRUCTION",
    "JSON_INSTRUCTION",
    "GeminiClient",
    "TextStream",
    "wrap_streaming_error",
]
