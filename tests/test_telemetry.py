"""
Behavioral tests for telemetry modules.

Tests focus on real behavior: time windows, empty metrics, percentiles
and the JSON Lines request log. No mocks - tests use real data structures.
"""

import json
from datetime import UTC, datetime, timedelta

import pytest

from gemini_kit import RateLimitError
from gemini_kit.telemetry.metrics import MetricsCollector, RequestMetrics, track_request
from gemini_kit.telemetry.structured_logging import (
    close_request_loggers,
    get_request_logger,
    log_request_event,
    request_event,
)


class TestMetricsCollector:
    """Behavioral tests for MetricsCollector."""

    def test_empty_metrics(self):
        """Test that nothing recorded gives zeroed metrics."""
        metrics = MetricsCollector.get_metrics()
        assert metrics.total_requests == 0
        assert metrics.average_latency_ms == 0.0
        assert metrics.last_request_time is None

    def test_record_request_stores_metric(self):
        """Test that record_request() counts successes and failures."""
        MetricsCollector.record_request("m1", "generate", 10.0, True)
        MetricsCollector.record_request("m1", "embed", 20.0, False, error="ServerError")
        MetricsCollector.record_request("m2", "generate", 30.0, True)

        metrics = MetricsCollector.get_metrics()
        assert metrics.total_requests == 3
        assert metrics.successful_requests == 2
        assert metrics.failed_requests == 1
        assert metrics.requests_by_model == {"m1": 2, "m2": 1}
        assert metrics.requests_by_operation == {"generate": 2, "embed": 1}
        assert metrics.errors_by_type == {"ServerError": 1}
        assert metrics.average_latency_ms == 20.0
        assert metrics.p50_latency_ms == 20.0
        assert metrics.first_request_time <= metrics.last_request_time

    def test_single_record_percentiles(self):
        """Test that one record supplies every percentile."""
        MetricsCollector.record_request("m", "generate", 42.0, True)
        metrics = MetricsCollector.get_metrics()
        assert metrics.p50_latency_ms == metrics.p95_latency_ms == metrics.p99_latency_ms == 42.0

    def test_time_window(self):
        """Test that old records fall outside the window."""
        MetricsCollector.record_request("m", "generate", 5.0, True)
        MetricsCollector._metrics.append(
            RequestMetrics(
                model="m",
                operation="generate",
                latency_ms=500.0,
                success=True,
                timestamp=datetime.now(UTC) - timedelta(hours=2),
            )
        )
        assert MetricsCollector.get_metrics().total_requests == 2
        assert MetricsCollector.get_metrics(window_minutes=60).total_requests == 1
        assert MetricsCollector.get_metrics(window_minutes=0).total_requests == 0

    def test_metrics_json(self):
        """Test the JSON-ready view."""
        MetricsCollector.record_request("m", "generate", 1.23456, True)
        data = MetricsCollector.get_metrics_json()
        assert data["average_latency_ms"] == 1.23
        assert isinstance(data["last_request_time"], str)
        json.dumps(data)

        MetricsCollector.reset()
        assert MetricsCollector.get_metrics_json()["first_request_time"] is None

    def test_reset_clears(self):
        """Test that reset drops all records."""
        MetricsCollector.record_request("m", "generate", 1.0, True)
        assert MetricsCollector.reset() is MetricsCollector
        assert MetricsCollector.get_metrics().total_requests == 0


class TestTrackRequest:
    """Tests for the track_request context manager."""

    def test_success(self):
        """Test that a clean block is recorded as a success."""
        with track_request("gemini-2.0-flash", "generate"):
            pass
        metrics = MetricsCollector.get_metrics()
        assert metrics.successful_requests == 1
        assert metrics.requests_by_model == {"gemini-2.0-flash": 1}

    def test_failure_is_recorded_and_reraised(self):
        """Test that exceptions propagate and are counted by type."""
        with pytest.raises(RateLimitError):
            with track_request(None, "embed"):
                raise RateLimitError("slow down")
        metrics = MetricsCollector.get_metrics()
        assert metrics.failed_requests == 1
        assert metrics.errors_by_type == {"RateLimitError": 1}
        assert metrics.requests_by_model == {"unknown": 1}


class TestRequestLogging:
    """Tests for the JSON Lines request log."""

    def test_request_event_success(self):
        """Test the fields of a successful event."""
        event = request_event(
            request_id="abc", operation="generate", model="m", latency_ms=12.34567, client_type="sync"
        )
        assert event == {
            "event": "gemini_request",
            "request_id": "abc",
            "operation": "generate",
            "model": "m",
            "status": "success",
            "latency_ms": 12.346,
            "client_type": "sync",
        }

    def test_request_event_error(self):
        """Test that failures carry the error details."""
        event = request_event(
            request_id="abc",
            operation="embed",
            model=None,
            latency_ms=1.0,
            error=RateLimitError("quota", "RESOURCE_EXHAUSTED"),
        )
        assert event["status"] == "error"
        assert event["error_type"] == "RateLimitError"
        assert event["error_message"] == "quota"
        assert event["http_status"] == 429

    def test_request_event_without_http_status(self):
        """Test that plain exceptions have no http_status field."""
        event = request_event(
            request_id="x", operation="generate", model="m", latency_ms=1.0, error=RuntimeError("boom")
        )
        assert "http_status" not in event

    def test_log_request_event_writes_jsonl(self, tmp_path):
        """Test that events are appended one per line with a timestamp."""
        log_dir = tmp_path / "logs"
        try:
            log_request_event({"event": "gemini_request", "operation": "generate"}, log_dir)
            log_request_event(
                {"event": "gemini_request", "operation": "embed", "when": datetime(2024, 1, 2, tzinfo=UTC)},
                log_dir,
            )
        finally:
            close_request_loggers()

        lines = (log_dir / "requests.jsonl").read_text(encoding="utf-8").splitlines()
        events = [json.loads(line) for line in lines]
        assert [event["operation"] for event in events] == ["generate", "embed"]
        assert all("timestamp" in event for event in events)
        assert events[1]["when"].startswith("2024-01-02T00:00:00")

    def test_logger_is_cached_per_directory(self, tmp_path):
        """Test that one logger is reused per directory."""
        try:
            first = get_request_logger(str(tmp_path / "a"))
            assert get_request_logger(str(tmp_path / "a")) is first
            assert get_request_logger(str(tmp_path / "b")) is not first
            assert first.propagate is False
            assert len(first.handlers) == 1
        finally:
            close_request_loggers()
        assert first.handlers == []
