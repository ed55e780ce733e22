"""Embedding responses and the analytics built on them.

``EmbeddingResponse`` wraps either a single embedding
(``{"embedding": {"values": [...]}}``) or a batch
(``{"embeddings": [{"values": [...]}, ...]}``). The shape is validated on
construction: every vector must be a list and all vectors in a batch must
have the same length.

On top of the vectors it offers similarity queries, export to JSON and
CSV, k-means++ clustering and resizing. Vector math lives in
``gemini_kit.core.vector_utils``.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import random
from collections.abc import Callable, Hashable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from gemini_kit.core import vector_utils
from gemini_kit.core.vector_utils import SimilarityMetric, SimilarityResult
from gemini_kit.domain.exceptions import ValidationError

logger = logging.getLogger(__name__)

INVALID_RESPONSE = "INVALID_RESPONSE"
IO_ERROR = "IO_ERROR"


class ExportFormat(StrEnum):
    JSON = "json"
    CSV = "csv"


class ResizeMethod(StrEnum):
    TRUNCATE = "truncate"
    PAD = "pad"


@dataclass(slots=True, frozen=True)
class ClusterResult:
    """Outcome of ``EmbeddingResponse.cluster``.

    Attributes:
        clusters: For each cluster, the indexes of its member embeddings.
        centroids: Unit-length centroid of each cluster.
        iterations: Assignment passes run before convergence or the cap.
        metric: Similarity metric used for assignment.
    """

    clusters: list[list[int]]
    centroids: list[list[float]] = field(repr=False)
    iterations: int
    metric: SimilarityMetric


def _invalid_index(index: int) -> ValidationError:
    return ValidationError(f"Invalid embedding index: {index}", "INVALID_ARGUMENT")


class EmbeddingResponse:
    """Result of an embedContent or batchEmbedContents call.

    Attributes:
        data: The decoded response body.

    Raises:
        ValidationError: With code ``INVALID_RESPONSE`` when the body holds
            no embeddings, a vector is not a list, or batch vectors differ
            in length.
    """

    def __init__(self, data: Mapping[str, Any]) -> None:
        if not isinstance(data, Mapping):
            raise ValidationError("No embedding data found", INVALID_RESPONSE)
        self.data = data
        self._validate()
        self._vectors: list[list[float]] = self._extract_vectors()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EmbeddingResponse:
        return cls(data)

    @classmethod
    def from_vectors(
        cls,
        vectors: Sequence[Sequence[float]],
        usage: Mapping[str, Any] | None = None,
    ) -> EmbeddingResponse:
        """Build a batch response from plain vectors."""
        data: dict[str, Any] = {"embeddings": [{"values": list(vec)} for vec in vectors]}
        if usage:
            data["usageMetadata"] = dict(usage)
        return cls(data)

    def __repr__(self) -> str:
        return f"EmbeddingResponse(count={self.batch_size}, dimensions={self.dimensions})"

    def __len__(self) -> int:
        return self.batch_size

    def __iter__(self) -> Iterator[list[float]]:
        return iter(self.embeddings)

    # ============================================================================
    # Shape
    # ============================================================================

    def _validate(self) -> None:
        if not self.is_single and not self.is_batch:
            raise ValidationError("No embedding data found", INVALID_RESPONSE)

        if self.is_single:
            if not isinstance(self.data["embedding"]["values"], list):
                raise ValidationError("Embedding values must be an array", INVALID_RESPONSE)
            return

        embeddings = self.data["embeddings"]
        if not embeddings:
            raise ValidationError("Empty embeddings array", INVALID_RESPONSE)
        for index, item in enumerate(embeddings):
            if not isinstance(item, Mapping) or "values" not in item:
                raise ValidationError(f"Embedding at index {index} must have 'values' key", INVALID_RESPONSE)
            if not isinstance(item["values"], list):
                raise ValidationError(f"Embedding values at index {index} must be an array", INVALID_RESPONSE)
        sizes = {len(item["values"]) for item in embeddings}
        if len(sizes) != 1:
            raise ValidationError(
                f"Inconsistent embedding sizes: {sorted(sizes)}",
                INVALID_RESPONSE,
            )

    def _extract_vectors(self) -> list[list[float]]:
        if self.is_single:
            return [list(self.data["embedding"]["values"])]
        return [list(item["values"]) for item in self.data["embeddings"]]

    @property
    def is_single(self) -> bool:
        embedding = self.data.get("embedding")
        return isinstance(embedding, Mapping) and "values" in embedding

    @property
    def is_batch(self) -> bool:
        return isinstance(self.data.get("embeddings"), list)

    @property
    def embeddings(self) -> list[list[float]]:
        """All vectors, in request order (copies)."""
        return [list(vec) for vec in self._vectors]

    @property
    def values(self) -> list[float] | None:
        """The vector of a single response; None for a batch."""
        return list(self._vectors[0]) if self.is_single else None

    @property
    def embedding(self) -> list[float]:
        return self.embedding_at(0)

    @property
    def batch_size(self) -> int:
        return len(self._vectors)

    @property
    def dimensions(self) -> int:
        return len(self._vectors[0])

    embedding_size = dimensions

    def embedding_at(self, index: int) -> list[float]:
        """Return the vector at ``index``.

        Raises:
            IndexError: If ``index`` is outside ``[0, batch_size)``.
        """
        if index < 0 or index >= self.batch_size:
            raise IndexError(f"Index {index} out of bounds for batch size {self.batch_size}")
        return list(self._vectors[index])

    def _vector(self, index: int) -> list[float]:
        try:
            return self.embedding_at(index)
        except IndexError:
            raise _invalid_index(index) from None

    # ============================================================================
    # Usage
    # ============================================================================

    @property
    def usage(self) -> Mapping[str, Any] | None:
        usage = self.data.get("usageMetadata")
        return usage if isinstance(usage, Mapping) else None

    @property
    def prompt_tokens(self) -> int | None:
        return self.usage.get("promptTokenCount") if self.usage else None

    @property
    def total_tokens(self) -> int | None:
        """``totalTokenCount`` when reported, otherwise the prompt count."""
        if not self.usage:
            return None
        total = self.usage.get("totalTokenCount")
        return total if total is not None else self.usage.get("promptTokenCount", 0)

    def metadata(self) -> dict[str, Any]:
        return {
            "count": self.batch_size,
            "dimensions": self.dimensions,
            "total_tokens": self.total_tokens,
            "prompt_tokens": self.prompt_tokens,
            "is_batch": self.is_batch,
            "is_single": self.is_single,
        }

    # ============================================================================
    # Similarity
    # ============================================================================

    def similarity(self, index1: int, index2: int) -> float:
        """Cosine similarity between two embeddings of this response."""
        return vector_utils.cosine_similarity(self._vector(index1), self._vector(index2))

    def similarity_with_vector(self, index: int, other_vector: Sequence[float]) -> float:
        return vector_utils.cosine_similarity(self._vector(index), other_vector)

    def euclidean_distance(self, index1: int, index2: int) -> float:
        return vector_utils.euclidean_distance(self._vector(index1), self._vector(index2))

    def similarity_matrix(self, metric: SimilarityMetric | str = SimilarityMetric.COSINE) -> list[list[float]]:
        """Pairwise similarity of every embedding; symmetric with a unit diagonal."""
        count = self.batch_size
        matrix = [[0.0] * count for _ in range(count)]
        for i in range(count):
            matrix[i][i] = 1.0
            for j in range(i + 1, count):
                score = vector_utils.similarity(self._vectors[i], self._vectors[j], metric)
                matrix[i][j] = matrix[j][i] = score
        return matrix

    def most_similar(
        self,
        index: int,
        top_k: int | None = None,
        metric: SimilarityMetric | str = SimilarityMetric.COSINE,
    ) -> list[SimilarityResult]:
        """Rank the other embeddings by similarity to the one at ``index``.

        Returned indexes refer to positions in this response.
        """
        target = self._vector(index)
        others = [i for i in range(self.batch_size) if i != index]
        ranked = vector_utils.most_similar(target, [self._vectors[i] for i in others], top_k, metric)
        return [SimilarityResult(index=others[result.index], similarity=result.similarity) for result in ranked]

    def normalized_embeddings(self) -> list[list[float]]:
        return [vector_utils.normalize(vec) for vec in self._vectors]

    def average_embedding(self) -> list[float]:
        return vector_utils.average_vectors(self._vectors)

    # ============================================================================
    # Views
    # ============================================================================

    def to_dict_with_keys(self, keys: Sequence[Hashable] | None = None) -> dict[Hashable, list[float]]:
        """Map ``keys`` (or ``"0"``, ``"1"``, ...) to the vectors in order."""
        if keys is None:
            return {str(index): vec for index, vec in enumerate(self.embeddings)}
        if len(keys) != self.batch_size:
            raise ValidationError(
                f"Number of keys ({len(keys)}) doesn't match number of embeddings ({self.batch_size})",
                "INVALID_ARGUMENT",
            )
        return dict(zip(keys, self.embeddings, strict=True))

    def with_labels(self, labels: Sequence[Hashable]) -> dict[Hashable, list[float]]:
        if not isinstance(labels, (list, tuple)):
            raise ValidationError("Labels must be an array", "INVALID_ARGUMENT")
        if len(labels) != self.batch_size:
            raise ValidationError(
                f"Number of labels ({len(labels)}) doesn't match number of embeddings ({self.batch_size})",
                "INVALID_ARGUMENT",
            )
        return dict(zip(labels, self.embeddings, strict=True))

    def to_numpy_format(self) -> dict[str, Any]:
        """Return data, shape and dtype ready for ``numpy.array(**...)``-style use."""
        return {"data": self.embeddings, "shape": [self.batch_size, self.dimensions], "dtype": "float32"}

    def top_dimensions(self, k: int) -> list[list[float]]:
        """First ``k`` components of each vector."""
        if k > self.dimensions:
            raise ValidationError(
                f"Cannot extract {k} dimensions from embeddings with only {self.dimensions} dimensions",
                "INVALID_ARGUMENT",
            )
        return [vec[:k] for vec in self.embeddings]

    def filter(self, predicate: Callable[[list[float], int], bool]) -> list[list[float]]:
        """Vectors for which ``predicate(vector, index)`` is true."""
        return [vec for index, vec in enumerate(self.embeddings) if predicate(vec, index)]

    def map_embeddings(self, transform: Callable[[list[float], int], Sequence[float]]) -> list[list[float]]:
        """Apply ``transform(vector, index)`` to each vector.

        Raises:
            ValidationError: If the transform returns something other than a
                list or tuple.
        """
        result: list[list[float]] = []
        for index, vec in enumerate(self.embeddings):
            transformed = transform(vec, index)
            if not isinstance(transformed, (list, tuple)):
                raise ValidationError(
                    f"Transformation must return an array, got: {type(transformed).__name__}",
                    "INVALID_ARGUMENT",
                )
            result.append(list(transformed))
        return result

    def slice(self, start: int, end: int | None = None) -> list[list[float]]:
        """Vectors from ``start`` to ``end`` inclusive; negative indexes count from the end."""
        count = self.batch_size
        if start < 0:
            start += count
        if end is None:
            end = count - 1
        elif end < 0:
            end += count
        if start < 0 or start >= count:
            raise IndexError(f"Start index {start} out of bounds for embeddings size {count}")
        if end < start or end >= count:
            raise IndexError(f"End index {end} out of bounds for embeddings size {count}")
        return self.embeddings[start : end + 1]

    def resize(
        self,
        new_dim: int,
        method: ResizeMethod | str = ResizeMethod.TRUNCATE,
        pad_value: float = 0.0,
    ) -> list[list[float]]:
        """Truncate or pad every vector to ``new_dim`` components.

        Both methods cut longer vectors and pad shorter ones with
        ``pad_value``; the method names the caller's intent.
        """
        if not isinstance(new_dim, int) or new_dim <= 0:
            raise ValidationError(f"New dimension must be positive, got: {new_dim}", "INVALID_ARGUMENT")
        if method not in list(ResizeMethod):
            raise ValidationError(
                f"Unknown resize method: {method}. Supported methods: truncate, pad",
                "INVALID_ARGUMENT",
            )
        if new_dim <= self.dimensions:
            return [vec[:new_dim] for vec in self.embeddings]
        padding = [pad_value] * (new_dim - self.dimensions)
        return [vec + padding for vec in self.embeddings]

    def combine(self, other: EmbeddingResponse) -> EmbeddingResponse:
        """Concatenate two responses into one batch, summing token usage."""
        if not isinstance(other, EmbeddingResponse):
            raise ValidationError("Can only combine with another EmbeddingResponse", "INVALID_ARGUMENT")
        if self.dimensions != other.dimensions:
            raise ValidationError(
                f"Cannot combine embeddings with different dimensions ({self.dimensions} vs {other.dimensions})",
                "INVALID_ARGUMENT",
            )
        sources = [source for source in (self.usage, other.usage) if source]
        usage = None
        if sources:
            usage = {
                "promptTokenCount": sum(source.get("promptTokenCount") or 0 for source in sources),
                "totalTokenCount": sum(source.get("totalTokenCount") or 0 for source in sources),
            }
        return EmbeddingResponse.from_vectors(self._vectors + other._vectors, usage)

    # ============================================================================
    # Clustering
    # ============================================================================

    def cluster(
        self,
        k: int,
        max_iterations: int = 100,
        metric: SimilarityMetric | str = SimilarityMetric.COSINE,
        *,
        seed: int | None = None,
    ) -> ClusterResult:
        """Group the embeddings into ``k`` clusters with k-means.

        Vectors are normalized first and centroids are seeded with
        k-means++. An empty cluster is re-seeded with the point farthest
        from every centroid.

        Args:
            k: Number of clusters, between 1 and the number of embeddings.
            max_iterations: Cap on assignment passes.
            metric: ``cosine`` or ``euclidean``.
            seed: Seed for centroid initialization (reproducible results).

        Raises:
            ValidationError: If ``k`` is out of range or the metric unknown.
        """
        count = self.batch_size
        if not isinstance(k, int) or k <= 0 or k > count:
            raise ValidationError(
                f"Number of clusters must be between 1 and {count}, got: {k}",
                "INVALID_ARGUMENT",
            )
        resolved = SimilarityMetric(metric) if metric in list(SimilarityMetric) else None
        if resolved is None:
            raise ValidationError(
                f"Unknown metric: {metric}. Supported metrics: cosine, euclidean",
                "INVALID_ARGUMENT",
            )

        rng = random.Random(seed)
        points = self.normalized_embeddings()
        centroids = self._kmeans_plus_plus(points, k, resolved, rng)
        assignments = [-1] * count
        iterations = 0
        changed = True

        while changed and iterations < max_iterations:
            changed = False
            for index, point in enumerate(points):
                scores = [vector_utils.similarity(point, centroid, resolved) for centroid in centroids]
                best = max(range(k), key=scores.__getitem__)
                if assignments[index] != best:
                    assignments[index] = best
                    changed = True

            for cluster_index in range(k):
                members = [points[i] for i, assigned in enumerate(assignments) if assigned == cluster_index]
                if members:
                    centroids[cluster_index] = vector_utils.normalize(vector_utils.average_vectors(members))
                else:
                    centroids[cluster_index] = list(points[self._farthest_point(points, centroids)])
            iterations += 1

        clusters: list[list[int]] = [[] for _ in range(k)]
        for index, assigned in enumerate(assignments):
            clusters[assigned].append(index)

        logger.debug("Clustered %d embeddings into %d groups in %d iterations", count, k, iterations)
        return ClusterResult(clusters=clusters, centroids=centroids, iterations=iterations, metric=resolved)

    @staticmethod
    def _kmeans_plus_plus(
        points: list[list[float]],
        k: int,
        metric: SimilarityMetric,
        rng: random.Random,
    ) -> list[list[float]]:
        centroids = [list(points[rng.randrange(len(points))])]
        while len(centroids) < k:
            weights = [
                (1.0 - max(vector_utils.similarity(point, centroid, metric) for centroid in centroids)) ** 2
                for point in points
            ]
            if sum(weights) <= 0.0:
                next_index = rng.randrange(len(points))
            else:
                next_index = rng.choices(range(len(points)), weights=weights, k=1)[0]
            centroids.append(list(points[next_index]))
        return centroids

    @staticmethod
    def _farthest_point(points: list[list[float]], centroids: list[list[float]]) -> int:
        farthest, max_distance = 0, float("-inf")
        for index, point in enumerate(points):
            if any(point == centroid for centroid in centroids):
                continue
            distance = 1.0 - min(vector_utils.cosine_similarity(point, centroid) for centroid in centroids)
            if distance > max_distance:
                farthest, max_distance = index, distance
        return farthest

    # ============================================================================
    # Export
    # ============================================================================

    def to_json(self, *, pretty: bool = False) -> str:
        data = {"embeddings": self.embeddings, "dimensions": self.dimensions, "count": self.batch_size}
        return json.dumps(data, indent=2 if pretty else None)

    def to_csv(self, *, include_header: bool = True) -> str:
        """Render one row per vector, optionally under a ``dim_0,dim_1,...`` header."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        if include_header:
            writer.writerow([f"dim_{i}" for i in range(self.dimensions)])
        writer.writerows(self._vectors)
        return buffer.getvalue().rstrip("\n")

    def save(
        self,
        path: str | Path,
        export_format: ExportFormat | str | None = None,
        *,
        pretty: bool = False,
        include_header: bool = True,
        include_metadata: bool = True,
    ) -> Path:
        """Write the embeddings to ``path`` as JSON or CSV.

        Args:
            path: Destination file. Parent directories are created.
            export_format: ``json`` or ``csv``; None infers it from the
                file extension.
            pretty: Indent JSON output.
            include_header: Write the CSV header row.
            include_metadata: Add a ``metadata`` object to JSON output.

        Returns:
            The path written.

        Raises:
            ValidationError: If the format is unknown, or with code
                ``IO_ERROR`` when the file cannot be written.
        """
        target = Path(path)
        resolved = _resolve_format(target, export_format)
        if resolved is ExportFormat.JSON:
            payload: dict[str, Any] = {"embeddings": self.embeddings}
            if include_metadata:
                payload["metadata"] = self.metadata()
            content = json.dumps(payload, indent=2 if pretty else None)
        else:
            content = self.to_csv(include_header=include_header)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ValidationError(f"Failed to save embeddings: {exc}", IO_ERROR) from exc

        logger.info("Saved %d embeddings to %s", self.batch_size, target)
        return target

    @classmethod
    def load(cls, path: str | Path, export_format: ExportFormat | str | None = None) -> EmbeddingResponse:
        """Read embeddings written by ``save`` (or a raw API response in JSON).

        Raises:
            ValidationError: If the format is unknown or the content does not
                parse, or with code ``IO_ERROR`` when the file cannot be read.
        """
        source = Path(path)
        resolved = _resolve_format(source, export_format)
        try:
            content = source.read_text(encoding="utf-8")
        except OSError as exc:
            raise ValidationError(f"Failed to load embeddings: {exc}", IO_ERROR) from exc

        if resolved is ExportFormat.JSON:
            try:
                data = json.loads(content)
            except json.JSONDecodeError as exc:
                raise ValidationError(f"Failed to parse JSON: {exc}", "INVALID_ARGUMENT") from exc
            if not isinstance(data, Mapping) or not isinstance(data.get("embeddings"), list):
                return cls(data)
            if data["embeddings"] and isinstance(data["embeddings"][0], Mapping):
                return cls(data)
            metadata = data.get("metadata") or {}
            usage = None
            if metadata.get("total_tokens") is not None:
                usage = {
                    "promptTokenCount": metadata.get("prompt_tokens") or 0,
                    "totalTokenCount": metadata["total_tokens"],
                }
            return cls.from_vectors(data["embeddings"], usage)

        rows = [row for row in csv.reader(io.StringIO(content)) if row]
        if rows and any(cell and cell[0].isalpha() for cell in rows[0]):
            rows = rows[1:]
        try:
            vectors = [[float(cell) for cell in row] for row in rows]
        except ValueError as exc:
            raise ValidationError(f"Failed to parse CSV: {exc}", "INVALID_ARGUMENT") from exc
        return cls.from_vectors(vectors)


def _resolve_format(path: Path, export_format: ExportFormat | str | None) -> ExportFormat:
    candidate = export_format if export_format is not None else path.suffix.lower().lstrip(".")
    if candidate not in list(ExportFormat):
        if export_format is None:
            raise ValidationError(
                f"Could not infer format from file extension: {candidate}",
                "INVALID_ARGUMENT",
            )
        raise ValidationError(
            f"Unknown format: {candidate}. Supported formats: json, csv",
            "INVALID_ARGUMENT",
        )
    return ExportFormat(candidate)


__all__ = [
    "INVALID_RESPONSE",
    "IO_ERROR",
    "ClusterResult",
    "EmbeddingResponse",
    "ExportFormat",
    "ResizeMethod",
]
