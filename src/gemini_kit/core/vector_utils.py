"""Vector math for embedding analytics.

Plain-Python implementations over sequences of floats. Functions that
combine two vectors require equal lengths and raise ``ValidationError``
otherwise.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from gemini_kit.domain.exceptions import ValidationError

Vector = Sequence[float]


class SimilarityMetric(StrEnum):
    """How two vectors are compared. Higher scores mean more similar."""

    COSINE = "cosine"
    EUCLIDEAN = "euclidean"


@dataclass(slots=True, frozen=True)
class SimilarityResult:
    """Position of a compared vector and its similarity score."""

    index: int
    similarity: float


def _check_dimensions(vec1: Vector, vec2: Vector) -> None:
    if len(vec1) != len(vec2):
        raise ValidationError(
            f"Vectors must have the same dimensions ({len(vec1)} vs {len(vec2)})",
            "INVALID_ARGUMENT",
        )


def _metric(metric: SimilarityMetric | str) -> SimilarityMetric:
    try:
        return SimilarityMetric(metric)
    except ValueError:
        raise ValidationError(
            f"Unknown metric: {metric}. Supported metrics: cosine, euclidean",
            "INVALID_ARGUMENT",
        ) from None


def dot_product(vec1: Vector, vec2: Vector) -> float:
    _check_dimensions(vec1, vec2)
    return math.fsum(a * b for a, b in zip(vec1, vec2, strict=True))


def magnitude(vec: Vector) -> float:
    return math.sqrt(math.fsum(v * v for v in vec))


def cosine_similarity(vec1: Vector, vec2: Vector) -> float:
    """Cosine of the angle between two vectors, in [-1.0, 1.0].

    Returns 0.0 when either vector has zero magnitude.
    """
    _check_dimensions(vec1, vec2)
    norm1 = magnitude(vec1)
    norm2 = magnitude(vec2)
    if norm1 == 0.0 or norm2 == 0.0:
        return 0.0
    return dot_product(vec1, vec2) / (norm1 * norm2)


def euclidean_distance(vec1: Vector, vec2: Vector) -> float:
    _check_dimensions(vec1, vec2)
    return math.dist(vec1, vec2)


def similarity(vec1: Vector, vec2: Vector, metric: SimilarityMetric | str = SimilarityMetric.COSINE) -> float:
    """Score two vectors with ``metric``.

    Euclidean distance is mapped to ``1 / (1 + distance)`` so that both
    metrics rank higher scores as more similar.
    """
    match _metric(metric):
        case SimilarityMetric.COSINE:
            return cosine_similarity(vec1, vec2)
        case SimilarityMetric.EUCLIDEAN:
            return 1.0 / (1.0 + euclidean_distance(vec1, vec2))


def normalize(vec: Vector) -> list[float]:
    """Scale ``vec`` to unit length; a zero vector maps to zeros."""
    norm = magnitude(vec)
    if norm == 0.0:
        return [0.0] * len(vec)
    return [v / norm for v in vec]


def average_vectors(vectors: Sequence[Vector]) -> list[float]:
    """Element-wise mean of equal-length vectors.

    Raises:
        ValidationError: If ``vectors`` is empty or the lengths differ.
    """
    if not vectors:
        raise ValidationError("Cannot average an empty list of vectors", "INVALID_ARGUMENT")
    dim = len(vectors[0])
    for index, vec in enumerate(vectors):
        if len(vec) != dim:
            raise ValidationError(
                f"All vectors must have the same dimensions (expected {dim}, got {len(vec)} at index {index})",
                "INVALID_ARGUMENT",
            )
    count = len(vectors)
    return [math.fsum(column) / count for column in zip(*vectors, strict=True)]


def most_similar(
    target: Vector,
    vectors: Sequence[Vector],
    top_k: int | None = None,
    metric: SimilarityMetric | str = SimilarityMetric.COSINE,
) -> list[SimilarityResult]:
    """Rank ``vectors`` by similarity to ``target``, most similar first.

    Args:
        target: Vector to compare against.
        vectors: Candidates.
        top_k: Keep only the best ``top_k`` results; None keeps all.
        metric: ``cosine`` or ``euclidean``.

    Returns:
        Results sorted by descending similarity. Ties keep input order.
    """
    resolved = _metric(metric)
    results = [
        SimilarityResult(index=index, similarity=similarity(target, vec, resolved))
        for index, vec in enumerate(vectors)
    ]
    results.sort(key=lambda result: result.similarity, reverse=True)
    return results if top_k is None else results[:top_k]


__all__ = [
    "SimilarityMetric",
    "SimilarityResult",
    "Vector",
    "average_vectors",
    "cosine_similarity",
    "dot_product",
    "euclidean_distance",
    "magnitude",
    "most_similar",
    "normalize",
    "similarity",
]
