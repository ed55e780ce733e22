"""Resilience helpers (retry + circuit breaker) for the Gemini clients.

Retry policy: only ``RateLimitError`` and ``ServerError`` are retried. The
wait before retry *n* is ``retry_delay * n`` seconds, capped at
``max_delay``; the first attempt runs immediately. After ``max_retries``
retries the last error propagates unchanged, so ``max_retries=3`` means at
most four calls. Waits go through an event so ``cancel()`` cuts them short
and stops further attempts.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias, TypeVar

from circuitbreaker import CircuitBreakerError, circuit
from tenacity import (
    AsyncRetrying,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    stop_when_event_set,
    wait_incrementing,
)

from gemini_kit.domain.exceptions import RateLimitError, RequestError, ServerError

if TYPE_CHECKING:
    from gemini_kit.client.sync import GeminiClient
    from gemini_kit.domain.embeddings import EmbeddingResponse
    from gemini_kit.domain.requests import ChatRequest, ContentRequest
    from gemini_kit.domain.responses import ChatResponse, ContentResponse

logger = logging.getLogger(__name__)

_T = TypeVar("_T")
ExceptionTuple: TypeAlias = tuple[type[BaseException], ...]

RETRYABLE_ERRORS: ExceptionTuple = (RateLimitError, ServerError)


def is_retryable(error: BaseException) -> bool:
    """True for the transient error kinds (rate limit, server error)."""
    return isinstance(error, RETRYABLE_ERRORS)


@dataclass(slots=True, frozen=True)
class RetryConfig:
    max_retries: int = 3
    retry_delay: float = 1.0
    max_delay: float = 60.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be >= 0")

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry ``retry_number`` (1-based)."""
        return min(self.retry_delay * retry_number, self.max_delay)


@dataclass(slots=True, frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    expected_exception: ExceptionTuple = (ServerError, RequestError)


class RetryController:
    """Runs an operation under the retry policy.

    Attributes:
        config: Retry limits and delays.
        attempts: Calls made by the most recent ``call``.
    """

    __slots__ = ("config", "attempts", "_cancel_event")

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        max_delay: float = 60.0,
        *,
        config: RetryConfig | None = None,
    ) -> None:
        self.config = config or RetryConfig(max_retries=max_retries, retry_delay=retry_delay, max_delay=max_delay)
        self.attempts = 0
        self._cancel_event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Interrupt a pending wait; no further attempts are made."""
        self._cancel_event.set()

    def reset(self) -> None:
        self._cancel_event.clear()

    def _sleep(self, seconds: float) -> None:
        self._cancel_event.wait(seconds)

    def _retrying(self) -> Retrying:
        cfg = self.config
        return Retrying(
            stop=stop_after_attempt(cfg.max_retries + 1) | stop_when_event_set(self._cancel_event),
            wait=wait_incrementing(start=cfg.retry_delay, increment=cfg.retry_delay, max=cfg.max_delay),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

    def call(self, operation: Callable[..., _T], *args: Any, **kwargs: Any) -> _T:
        """Invoke ``operation(*args, **kwargs)`` with retries.

        Returns:
            The operation's result.

        Raises:
            Exception: The first non-retryable error, or the last retryable
                error once retries are exhausted or the controller is
                cancelled.
        """
        self.attempts = 0
        last_error: BaseException | None = None
        for attempt in self._retrying():
            if last_error is not None and self.cancelled:
                raise last_error
            with attempt:
                self.attempts += 1
                try:
                    return operation(*args, **kwargs)
                except Exception as exc:
                    last_error = exc
                    raise
        # Retrying with reraise=True never falls through.
        raise RuntimeError("retry loop exited without a result")


class AsyncRetryController:
    """``RetryController`` for coroutines."""

    __slots__ = ("config", "attempts", "_cancel_event")

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        max_delay: float = 60.0,
        *,
        config: RetryConfig | None = None,
    ) -> None:
        self.config = config or RetryConfig(max_retries=max_retries, retry_delay=retry_delay, max_delay=max_delay)
        self.attempts = 0
        self._cancel_event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        self._cancel_event.set()

    def reset(self) -> None:
        self._cancel_event.clear()

    async def _sleep(self, seconds: float) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)

    def _retrying(self) -> AsyncRetrying:
        cfg = self.config
        return AsyncRetrying(
            stop=stop_after_attempt(cfg.max_retries + 1) | stop_when_event_set(self._cancel_event),  # type: ignore[arg-type]
            wait=wait_incrementing(start=cfg.retry_delay, increment=cfg.retry_delay, max=cfg.max_delay),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

    async def call(self, operation: Callable[..., Awaitable[_T]], *args: Any, **kwargs: Any) -> _T:
        self.attempts = 0
        last_error: BaseException | None = None
        async for attempt in self._retrying():
            if last_error is not None and self.cancelled:
                raise last_error
            with attempt:
                self.attempts += 1
                try:
                    return await operation(*args, **kwargs)
                except Exception as exc:
                    last_error = exc
                    raise
        raise RuntimeError("retry loop exited without a result")


def retry_call(
    operation: Callable[[], _T],
    *,
    config: RetryConfig | None = None,
) -> _T:
    """Invoke ``operation`` once under a fresh ``RetryController``."""
    return RetryController(config=config).call(operation)


class ResilientGeminiClient:
    """GeminiClient facade with baked-in retry + circuit-breaker policies."""

    __slots__ = (
        "client",
        "retry_config",
        "circuit_breaker_config",
        "_circuit_decorator",
    )

    def __init__(
        self,
        client: GeminiClient,
        retry_config: RetryConfig | None = None,
        circuit_breaker_config: CircuitBreakerConfig | None = None,
    ) -> None:
        """Wrap ``client``.

        Args:
            client: Client whose calls are protected.
            retry_config: Retry policy. None uses RetryConfig() (3 retries,
                1s linear step).
            circuit_breaker_config: Breaker settings. None uses
                CircuitBreakerConfig() (5 failures, 60s recovery).
        """
        self.client = client
        self.retry_config = retry_config or RetryConfig()
        self.circuit_breaker_config = circuit_breaker_config or CircuitBreakerConfig()
        self._circuit_decorator = circuit(
            failure_threshold=self.circuit_breaker_config.failure_threshold,
            recovery_timeout=self.circuit_breaker_config.recovery_timeout,
            expected_exception=self.circuit_breaker_config.expected_exception,
        )

    def _execute_with_resilience(self, operation: Callable[..., _T], *args: Any, **kwargs: Any) -> _T:
        """Apply circuit breaker + retry around ``operation``.

        Raises:
            RequestError: If the circuit is open.
        """
        guarded = self._circuit_decorator(lambda: operation(*args, **kwargs))
        try:
            return RetryController(config=self.retry_config).call(guarded)
        except CircuitBreakerError as exc:
            logger.warning("Circuit open, rejecting call: %s", exc)
            raise RequestError(f"Circuit breaker open: {exc}") from exc

    def generate(self, request: ContentRequest) -> ContentResponse:
        return self._execute_with_resilience(self.client.generate, request)

    def generate_text(self, prompt: str, model: str | None = None, **params: Any) -> ContentResponse:
        return self._execute_with_resilience(self.client.generate_text, prompt, model, **params)

    def chat(self, request: ChatRequest, history: Sequence[dict[str, Any]] = ()) -> ChatResponse:
        return self._execute_with_resilience(self.client.chat, request, history)

    def embed(self, text: str | Sequence[str], model: str | None = None, **options: Any) -> EmbeddingResponse:
        return self._execute_with_resilience(self.client.embed, text, model, **options)


__all__ = [
    "RETRYABLE_ERRORS",
    "AsyncRetryController",
    "CircuitBreakerConfig",
    "ResilientGeminiClient",
    "RetryConfig",
    "RetryController",
    "is_retryable",
    "retry_call",
]
