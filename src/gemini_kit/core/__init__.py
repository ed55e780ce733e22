"""Core helpers: configuration, validators, vector math and resilience."""

from gemini_kit.core.config import (
    ClientConfig,
    GeminiConfig,
    ImageConfig,
    Settings,
    get_settings,
    reset_settings,
)
from gemini_kit.core.resilience import (
    AsyncRetryController,
    CircuitBreakerConfig,
    RetryConfig,
    RetryController,
    is_retryable,
)
from gemini_kit.core.vector_utils import SimilarityMetric, cosine_similarity, euclidean_distance

__all__ = [
    "AsyncRetryController",
    "CircuitBreakerConfig",
    "ClientConfig",
    "GeminiConfig",
    "ImageConfig",
    "RetryConfig",
    "RetryController",
    "Settings",
    "SimilarityMetric",
    "cosine_similarity",
    "euclidean_distance",
    "get_settings",
    "is_retryable",
    "reset_settings",
]
