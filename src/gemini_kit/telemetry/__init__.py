"""Telemetry utilities (metrics, structured logging)."""

from gemini_kit.telemetry.metrics import ClientMetrics, MetricsCollector, RequestMetrics, track_request
from gemini_kit.telemetry.structured_logging import log_request_event, request_event

__all__ = [
    "ClientMetrics",
    "MetricsCollector",
    "RequestMetrics",
    "log_request_event",
    "request_event",
    "track_request",
]
