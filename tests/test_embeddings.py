"""
Behavioral tests for EmbeddingResponse analytics and batch splitting.
"""

import json

import pytest

from gemini_kit import EmbeddingRequest, EmbeddingResponse, ValidationError
from gemini_kit.client.embeddings import combine_responses, embed_sync, split_request
from gemini_kit.domain.embeddings import INVALID_RESPONSE, IO_ERROR


@pytest.fixture
def batch():
    return EmbeddingResponse(
        {
            "embeddings": [
                {"values": [1.0, 0.0, 0.0]},
                {"values": [0.9, 0.1, 0.0]},
                {"values": [0.0, 1.0, 0.0]},
                {"values": [0.0, 0.9, 0.1]},
            ],
            "usageMetadata": {"promptTokenCount": 8, "totalTokenCount": 8},
        }
    )


class TestEmbeddingResponseShape:
    """Tests for construction and basic accessors."""

    def test_single_embedding(self):
        """Test a single embedContent response."""
        response = EmbeddingResponse({"embedding": {"values": [0.1, 0.2]}})
        assert response.is_single
        assert not response.is_batch
        assert response.values == [0.1, 0.2]
        assert response.embedding == [0.1, 0.2]
        assert response.batch_size == 1
        assert response.dimensions == 2

    def test_batch_embeddings(self, batch):
        """Test a batchEmbedContents response."""
        assert batch.is_batch
        assert batch.values is None
        assert batch.batch_size == 4
        assert len(batch) == 4
        assert batch.embedding_at(2) == [0.0, 1.0, 0.0]

    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ({}, "No embedding data found"),
            ({"embeddings": []}, "Empty embeddings array"),
            ({"embedding": {"values": "nope"}}, "must be an array"),
            ({"embeddings": [{"vals": [1]}]}, "must have 'values' key"),
            ({"embeddings": [{"values": [1, 2]}, {"values": [1]}]}, "Inconsistent embedding sizes"),
        ],
    )
    def test_malformed_payloads(self, data, message):
        """Test that malformed bodies are rejected with INVALID_RESPONSE."""
        with pytest.raises(ValidationError, match=message) as exc_info:
            EmbeddingResponse(data)
        assert exc_info.value.code == INVALID_RESPONSE

    def test_index_out_of_bounds(self, batch):
        """Test that embedding_at raises IndexError outside the batch."""
        with pytest.raises(IndexError):
            batch.embedding_at(4)
        with pytest.raises(ValidationError, match="Invalid embedding index: 9"):
            batch.similarity(0, 9)

    def test_returned_vectors_are_copies(self, batch):
        """Test that callers cannot mutate the stored vectors."""
        batch.embeddings[0][0] = 42.0
        assert batch.embedding_at(0)[0] == 1.0

    def test_usage(self, batch):
        """Test token counts from usageMetadata."""
        assert batch.total_tokens == 8
        assert batch.prompt_tokens == 8
        assert EmbeddingResponse({"embedding": {"values": [1]}}).total_tokens is None

    def test_total_tokens_falls_back_to_prompt(self):
        """Test that the prompt count is used when no total is reported."""
        response = EmbeddingResponse({"embedding": {"values": [1]}, "usageMetadata": {"promptTokenCount": 5}})
        assert response.total_tokens == 5


class TestEmbeddingAnalytics:
    """Tests for similarity, clustering and views."""

    def test_similarity_matrix_is_symmetric(self, batch):
        """Test symmetry and the unit diagonal."""
        matrix = batch.similarity_matrix()
        for i in range(4):
            assert matrix[i][i] == 1.0
            for j in range(4):
                assert matrix[i][j] == pytest.approx(matrix[j][i])

    def test_most_similar_excludes_self(self, batch):
        """Test that ranking refers to positions in the response."""
        results = batch.most_similar(2, top_k=2)
        assert [result.index for result in results] == [3, 1]

    def test_cluster_groups_related_vectors(self, batch):
        """Test that k-means separates the two obvious groups."""
        result = batch.cluster(2, seed=7)
        groups = sorted(sorted(cluster) for cluster in result.clusters)
        assert groups == [[0, 1], [2, 3]]
        assert len(result.centroids) == 2

    @pytest.mark.parametrize("k", [0, 5])
    def test_cluster_rejects_bad_k(self, batch, k):
        """Test the cluster count bounds."""
        with pytest.raises(ValidationError, match="Number of clusters must be between 1 and 4"):
            batch.cluster(k)

    def test_average_and_normalized(self, batch):
        """Test the aggregate views."""
        assert batch.average_embedding() == pytest.approx([0.475, 0.5, 0.025])
        for vector in batch.normalized_embeddings():
            assert sum(v * v for v in vector) == pytest.approx(1.0)

    def test_labels_must_match_count(self, batch):
        """Test label mapping and its length check."""
        labelled = batch.with_labels(["a", "b", "c", "d"])
        assert labelled["c"] == [0.0, 1.0, 0.0]
        with pytest.raises(ValidationError, match="Number of labels"):
            batch.with_labels(["a"])

    def test_slice_is_inclusive(self, batch):
        """Test slicing with negative indexes."""
        assert batch.slice(1, -2) == [[0.9, 0.1, 0.0], [0.0, 1.0, 0.0]]
        with pytest.raises(IndexError):
            batch.slice(3, 1)

    def test_resize_truncates_and_pads(self, batch):
        """Test both resize directions."""
        assert batch.resize(2)[0] == [1.0, 0.0]
        assert batch.resize(5, "pad", pad_value=-1.0)[0] == [1.0, 0.0, 0.0, -1.0, -1.0]
        with pytest.raises(ValidationError, match="Unknown resize method"):
            batch.resize(2, "squash")

    def test_top_dimensions_bound(self, batch):
        """Test that k cannot exceed the dimensionality."""
        with pytest.raises(ValidationError, match="Cannot extract 4 dimensions"):
            batch.top_dimensions(4)

    def test_combine_preserves_order_and_sums_usage(self, batch):
        """Test concatenation of two responses."""
        other = EmbeddingResponse.from_vectors([[0.5, 0.5, 0.5]], {"promptTokenCount": 2, "totalTokenCount": 2})
        combined = batch.combine(other)
        assert combined.batch_size == 5
        assert combined.embedding_at(4) == [0.5, 0.5, 0.5]
        assert combined.total_tokens == 10

    def test_combine_without_usage_stays_without_usage(self):
        """Test that no usageMetadata is invented when neither side had one."""
        combined = EmbeddingResponse.from_vectors([[1.0, 0.0]]).combine(EmbeddingResponse.from_vectors([[0.0, 1.0]]))
        assert combined.usage is None
        assert "usageMetadata" not in combined.data
        assert combined.batch_size == 2

    def test_combine_keeps_one_sided_usage(self, batch):
        """Test that usage from one side is carried over."""
        combined = batch.combine(EmbeddingResponse.from_vectors([[0.0, 0.0, 1.0]]))
        assert combined.usage == {"promptTokenCount": 8, "totalTokenCount": 8}

    def test_combine_requires_same_dimensions(self, batch):
        """Test that mismatched dimensionality is rejected."""
        with pytest.raises(ValidationError, match="different dimensions"):
            batch.combine(EmbeddingResponse.from_vectors([[1.0]]))


class TestEmbeddingExport:
    """Tests for JSON and CSV export."""

    def test_csv_with_header(self, batch):
        """Test the CSV layout."""
        lines = batch.to_csv().splitlines()
        assert lines[0] == "dim_0,dim_1,dim_2"
        assert lines[1] == "1.0,0.0,0.0"
        assert len(lines) == 5

    def test_json_round_trip_through_file(self, batch, tmp_path):
        """Test save and load in JSON format."""
        path = batch.save(tmp_path / "out" / "vectors.json")
        saved = json.loads(path.read_text())
        assert saved["metadata"]["count"] == 4
        loaded = EmbeddingResponse.load(path)
        assert loaded.embeddings == batch.embeddings
        assert loaded.total_tokens == 8

    def test_csv_file_round_trip(self, batch, tmp_path):
        """Test save and load in CSV format."""
        path = batch.save(tmp_path / "vectors.csv")
        assert EmbeddingResponse.load(path).embeddings == batch.embeddings

    def test_unknown_extension(self, batch, tmp_path):
        """Test that the format must be inferable."""
        with pytest.raises(ValidationError, match="Could not infer format"):
            batch.save(tmp_path / "vectors.bin")

    def test_missing_file(self, tmp_path):
        """Test that read failures carry IO_ERROR."""
        with pytest.raises(ValidationError) as exc_info:
            EmbeddingResponse.load(tmp_path / "missing.json")
        assert exc_info.value.code == IO_ERROR


class TestBatchSplitting:
    """Tests for splitting large embedding requests."""

    def test_small_batch_is_not_split(self):
        """Test that a list within the batch size is sent as-is."""
        request = EmbeddingRequest(["a", "b"], "emb")
        assert list(split_request(request, 5)) == [request]

    def test_large_batch_is_split_in_order(self):
        """Test that sub-requests cover the texts in order."""
        request = EmbeddingRequest([f"t{i}" for i in range(5)], "emb")
        parts = list(split_request(request, 2))
        assert [part.texts for part in parts] == [("t0", "t1"), ("t2", "t3"), ("t4",)]
        assert all(part.is_batch for part in parts)

    def test_invalid_batch_size(self):
        """Test that the batch size must be positive."""
        with pytest.raises(ValidationError, match="Batch size must be positive"):
            list(split_request(EmbeddingRequest(["a"], "emb"), 0))

    def test_embed_sync_combines_batches(self):
        """Test that split calls are combined into one response."""
        posted = []

        def post(path, body):
            posted.append((path, body))
            return {"embeddings": [{"values": [float(len(item["content"]["parts"][0]["text"]))]} for item in body["requests"]]}

        request = EmbeddingRequest(["a", "bb", "ccc"], "emb")
        response = embed_sync(post, request, batch_size=2)
        assert len(posted) == 2
        assert all(path == "models/emb:batchEmbedContents" for path, _ in posted)
        assert response.embeddings == [[1.0], [2.0], [3.0]]

    def test_combine_single_response(self, batch):
        """Test that one response is returned unchanged."""
        assert combine_responses([batch]) is batch
