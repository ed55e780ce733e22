"""In-memory request metrics for the Gemini clients.

Every client call is wrapped in ``track_request``, which records latency
and outcome in ``MetricsCollector``. The collector keeps the most recent
10,000 records and aggregates them on demand (counts, error breakdown and
latency percentiles), optionally restricted to a recent time window.
"""

from __future__ import annotations

import logging
import statistics
import threading
import time
from collections import Counter
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RequestMetrics:
    """Outcome of a single API call.

    Attributes:
        model: Model the call addressed.
        operation: Client operation (e.g. "generate", "stream", "embed").
        latency_ms: Wall-clock latency in milliseconds.
        success: Whether the call succeeded.
        error: Error type name when the call failed.
        timestamp: When the call finished (UTC).
    """

    model: str
    operation: str
    latency_ms: float
    success: bool
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class ClientMetrics:
    """Aggregated view over recorded requests. Latencies in milliseconds."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    requests_by_model: dict[str, int] = field(default_factory=dict)
    requests_by_operation: dict[str, int] = field(default_factory=dict)
    average_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    errors_by_type: dict[str, int] = field(default_factory=dict)
    last_request_time: datetime | None = None
    first_request_time: datetime | None = None


class MetricsCollector:
    """Process-wide store of request metrics.

    Records are kept at class level, so every client in the process feeds
    the same collector. Access is guarded by a lock.
    """

    _metrics: ClassVar[list[RequestMetrics]] = []
    _max_metrics: ClassVar[int] = 10_000
    _lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def record_request(
        cls,
        model: str,
        operation: str,
        latency_ms: float,
        success: bool,
        error: str | None = None,
    ) -> None:
        """Record one request, trimming the oldest records past the cap."""
        metric = RequestMetrics(
            model=model,
            operation=operation,
            latency_ms=latency_ms,
            success=success,
            error=error,
        )
        with cls._lock:
            cls._metrics.append(metric)
            if len(cls._metrics) > cls._max_metrics:
                cls._metrics = cls._metrics[-cls._max_metrics :]

        logger.debug("Recorded metric: %s on %s - %.2fms", operation, model, latency_ms)

    @classmethod
    def get_metrics(cls, window_minutes: int | None = None) -> ClientMetrics:
        """Aggregate recorded requests.

        Args:
            window_minutes: Only include requests from the last N minutes.
                None includes everything; zero or negative includes nothing.

        Returns:
            ClientMetrics, empty when nothing matches.
        """
        with cls._lock:
            snapshot = list(cls._metrics)

        match window_minutes:
            case None:
                metrics = snapshot
            case minutes if minutes > 0:
                cutoff = datetime.now(UTC) - timedelta(minutes=minutes)
                metrics = [m for m in snapshot if m.timestamp >= cutoff]
            case _:
                metrics = []

        if not metrics:
            return ClientMetrics()

        latencies = sorted(m.latency_ms for m in metrics)
        successful = sum(1 for m in metrics if m.success)

        match len(latencies):
            case n if n >= 2:
                quantiles = statistics.quantiles(latencies, n=100)
                p50, p95, p99 = quantiles[49], quantiles[94], quantiles[98]
            case _:
                p50 = p95 = p99 = latencies[0]

        return ClientMetrics(
            total_requests=len(metrics),
            successful_requests=successful,
            failed_requests=len(metrics) - successful,
            requests_by_model=dict(Counter(m.model for m in metrics)),
            requests_by_operation=dict(Counter(m.operation for m in metrics)),
            average_latency_ms=statistics.fmean(latencies),
            p50_latency_ms=p50,
            p95_latency_ms=p95,
            p99_latency_ms=p99,
            errors_by_type=dict(Counter(m.error for m in metrics if m.error)),
            last_request_time=max(m.timestamp for m in metrics),
            first_request_time=min(m.timestamp for m in metrics),
        )

    @classmethod
    def get_metrics_json(cls, window_minutes: int | None = None) -> dict[str, Any]:
        """``get_metrics`` as a JSON-ready dict (values rounded, ISO timestamps)."""
        metrics = cls.get_metrics(window_minutes)
        return {
            "total_requests": metrics.total_requests,
            "successful_requests": metrics.successful_requests,
            "failed_requests": metrics.failed_requests,
            "requests_by_model": metrics.requests_by_model,
            "requests_by_operation": metrics.requests_by_operation,
            "average_latency_ms": round(metrics.average_latency_ms, 2),
            "p50_latency_ms": round(metrics.p50_latency_ms, 2),
            "p95_latency_ms": round(metrics.p95_latency_ms, 2),
            "p99_latency_ms": round(metrics.p99_latency_ms, 2),
            "errors_by_type": metrics.errors_by_type,
            "last_request_time": metrics.last_request_time.isoformat() if metrics.last_request_time else None,
            "first_request_time": metrics.first_request_time.isoformat() if metrics.first_request_time else None,
        }

    @classmethod
    def reset(cls) -> type[MetricsCollector]:
        with cls._lock:
            cls._metrics = []
        return cls


@contextmanager
def track_request(model: str | None, operation: str) -> Generator[None, None, None]:
    """Record the latency and outcome of the enclosed block.

    Example:
        >>> with track_request("gemini-2.0-flash", "generate"):
        ...     body = transport.post(path, payload)
    """
    start = time.perf_counter()
    error: str | None = None
    try:
        yield
    except Exception as exc:
        error = type(exc).__name__
        raise
    finally:
        MetricsCollector.record_request(
            model=model or "unknown",
            operation=operation,
            latency_ms=(time.perf_counter() - start) * 1000,
            success=error is None,
            error=error,
        )


__all__ = ["ClientMetrics", "MetricsCollector", "RequestMetrics", "track_request"]
