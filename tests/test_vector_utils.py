"""
Behavioral tests for vector math helpers.
"""

import math

import pytest

from gemini_kit import ValidationError
from gemini_kit.core.vector_utils import (
    SimilarityMetric,
    average_vectors,
    cosine_similarity,
    dot_product,
    euclidean_distance,
    magnitude,
    most_similar,
    normalize,
    similarity,
)


class TestVectorMath:
    """Tests for the basic operations."""

    def test_dot_product_and_magnitude(self):
        """Test the building blocks."""
        assert dot_product([1, 2, 3], [4, 5, 6]) == 32
        assert magnitude([3, 4]) == 5

    def test_cosine_similarity_range(self):
        """Test identical, orthogonal and opposite vectors."""
        assert cosine_similarity([1, 0], [2, 0]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)

    def test_cosine_with_zero_vector(self):
        """Test that a zero vector has similarity 0."""
        assert cosine_similarity([0, 0], [1, 1]) == 0.0

    def test_euclidean_distance(self):
        """Test the straight-line distance."""
        assert euclidean_distance([0, 0], [3, 4]) == 5

    def test_dimension_mismatch(self):
        """Test that vectors of different lengths are rejected."""
        with pytest.raises(ValidationError, match="same dimensions"):
            cosine_similarity([1, 2], [1, 2, 3])

    def test_euclidean_similarity_is_inverse_distance(self):
        """Test that the euclidean metric ranks closer vectors higher."""
        assert similarity([0, 0], [3, 4], SimilarityMetric.EUCLIDEAN) == pytest.approx(1 / 6)

    def test_unknown_metric(self):
        """Test that unknown metrics are rejected."""
        with pytest.raises(ValidationError, match="Unknown metric: manhattan"):
            similarity([1], [1], "manhattan")

    def test_normalize(self):
        """Test unit scaling and the zero vector."""
        unit = normalize([3, 4])
        assert unit == pytest.approx([0.6, 0.8])
        assert math.isclose(magnitude(unit), 1.0)
        assert normalize([0, 0]) == [0.0, 0.0]

    def test_average_vectors(self):
        """Test the element-wise mean."""
        assert average_vectors([[1, 2], [3, 4]]) == [2.0, 3.0]

    def test_average_requires_vectors(self):
        """Test the empty and ragged cases."""
        with pytest.raises(ValidationError, match="empty list"):
            average_vectors([])
        with pytest.raises(ValidationError, match="at index 1"):
            average_vectors([[1, 2], [1]])

    def test_most_similar_orders_and_truncates(self):
        """Test ranking by similarity and the top_k cut."""
        results = most_similar([1, 0], [[0, 1], [1, 0.1], [1, 1]], top_k=2)
        assert [result.index for result in results] == [1, 2]
        assert results[0].similarity > results[1].similarity
