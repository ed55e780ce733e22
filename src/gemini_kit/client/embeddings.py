"""Embedding operations shared by the sync and async clients.

Single texts go to ``embedContent``; lists go to ``batchEmbedContents``.
Lists longer than the batch size are split into several batch calls and
the results are combined into one ``EmbeddingResponse`` (vectors in input
order, token usage summed).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from typing import Any

from gemini_kit.core.validators import validate_positive_integer
from gemini_kit.domain.embeddings import EmbeddingResponse
from gemini_kit.domain.requests import EmbeddingRequest

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

PostFn = Callable[[str, Mapping[str, Any]], dict[str, Any]]
AsyncPostFn = Callable[[str, Mapping[str, Any]], Awaitable[dict[str, Any]]]


def split_request(request: EmbeddingRequest, batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[EmbeddingRequest]:
    """Yield ``request`` itself, or one sub-request per ``batch_size`` texts.

    Raises:
        ValidationError: If ``batch_size`` is not a positive integer.
    """
    validate_positive_integer(batch_size, "Batch size")
    if not request.is_batch or len(request.texts) <= batch_size:
        yield request
        return

    for start in range(0, len(request.texts), batch_size):
        yield EmbeddingRequest(
            list(request.texts[start : start + batch_size]),
            request.model,
            task_type=request.task_type,
            dimensions=request.dimensions,
            title=request.title,
        )


def combine_responses(responses: Sequence[EmbeddingResponse]) -> EmbeddingResponse:
    """Fold per-batch responses into one, preserving order."""
    if len(responses) == 1:
        return responses[0]
    combined = responses[0]
    for response in responses[1:]:
        combined = combined.combine(response)
    return combined


def embed_sync(
    post: PostFn,
    request: EmbeddingRequest,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> EmbeddingResponse:
    """Embed ``request`` through a blocking ``post(path, body)`` callable.

    Args:
        post: Transport call returning the decoded JSON body.
        request: Validated embedding request.
        batch_size: Maximum texts per batchEmbedContents call.

    Returns:
        EmbeddingResponse covering every input text.

    Raises:
        ValidationError: If the API returns a malformed embedding payload.
        GeminiError: Mapped transport/API errors, unchanged.
    """
    responses = []
    for part in split_request(request, batch_size):
        data = post(part.endpoint, part.to_wire_shape())
        responses.append(EmbeddingResponse(data))
    if len(responses) > 1:
        logger.debug("Combined %d embedding batches for %d texts", len(responses), len(request.texts))
    return combine_responses(responses)


async def embed_async(
    post: AsyncPostFn,
    request: EmbeddingRequest,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> EmbeddingResponse:
    """``embed_sync`` for an awaitable ``post``. Batches run one after another."""
    responses = []
    for part in split_request(request, batch_size):
        data = await post(part.endpoint, part.to_wire_shape())
        responses.append(EmbeddingResponse(data))
    return combine_responses(responses)


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "combine_responses",
    "embed_async",
    "embed_sync",
    "split_request",
]
