"""Streaming accumulator for streamGenerateContent.

The accumulator consumes decoded chunks strictly in arrival order and
turns each into zero or more values for the caller, according to the
stream mode:

    - raw: the decoded chunk dict, unchanged
    - incremental: the full text received so far
    - delta: the chunk's own text

A chunk carrying a finish reason moves the stream from STREAMING to DONE.
When that terminal chunk also reports usage, a ``StreamSummary`` follows
the normal value. Chunks arriving after DONE, or after ``cancel()``, are
ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from gemini_kit.domain.responses import StreamResponse, Usage

logger = logging.getLogger(__name__)


class StreamMode(StrEnum):
    RAW = "raw"
    INCREMENTAL = "incremental"
    DELTA = "delta"

    @classmethod
    def parse(cls, mode: StreamMode | str) -> StreamMode:
        """Convert a mode name to a StreamMode.

        Raises:
            ValueError: If ``mode`` is not raw, incremental or delta.
        """
        try:
            return cls(mode)
        except ValueError:
            raise ValueError("Invalid stream_mode. Must be raw, incremental, or delta") from None


class StreamState(StrEnum):
    STREAMING = "streaming"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass(slots=True, frozen=True)
class StreamSummary:
    """Final value of a stream that reported token usage."""

    text: str
    finish_reason: str | None
    usage: Usage

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "finish_reason": self.finish_reason, "usage": self.usage.to_dict()}


StreamValue = str | Mapping[str, Any] | StreamSummary


class StreamAccumulator:
    """Turns stream chunks into caller-facing values for one stream.

    Attributes:
        mode: How each chunk is surfaced.
        state: STREAMING until a terminal chunk arrives (DONE) or
            ``cancel()`` is called (CANCELLED).
        finish_reason: Finish reason of the terminal chunk, once seen.
        usage: Usage reported by the terminal chunk, if any.
    """

    __slots__ = ("mode", "state", "finish_reason", "usage", "chunk_count", "_buffer")

    def __init__(self, mode: StreamMode | str = StreamMode.INCREMENTAL) -> None:
        self.mode = StreamMode.parse(mode)
        self.state = StreamState.STREAMING
        self.finish_reason: str | None = None
        self.usage: Usage | None = None
        self.chunk_count = 0
        self._buffer: list[str] = []

    @property
    def text(self) -> str:
        """Text accumulated so far (also after cancellation)."""
        return "".join(self._buffer)

    @property
    def is_done(self) -> bool:
        return self.state is StreamState.DONE

    @property
    def is_active(self) -> bool:
        return self.state is StreamState.STREAMING

    def cancel(self) -> None:
        if self.state is StreamState.STREAMING:
            self.state = StreamState.CANCELLED

    def feed(self, chunk: Mapping[str, Any]) -> list[StreamValue]:
        """Consume one decoded chunk.

        Args:
            chunk: One wire chunk (same shape as a generateContent body).

        Returns:
            The values to hand to the caller for this chunk, in order.
        """
        if self.state is not StreamState.STREAMING:
            logger.debug("Ignoring stream chunk received in state %s", self.state)
            return []

        response = StreamResponse.from_dict(chunk)
        self.chunk_count += 1
        if response.text:
            self._buffer.append(response.text)

        values: list[StreamValue] = []
        match self.mode:
            case StreamMode.RAW:
                values.append(chunk)
            case StreamMode.INCREMENTAL if response.text:
                values.append(self.text)
            case StreamMode.DELTA if response.text:
                values.append(response.text)

        if response.is_final:
            self.state = StreamState.DONE
            self.finish_reason = response.finish_reason
            self.usage = response.usage
            if response.usage is not None:
                values.append(StreamSummary(self.text, response.finish_reason, response.usage))

        return values

    def consume(self, chunks: Iterator[Mapping[str, Any]]) -> Iterator[StreamValue]:
        """Feed ``chunks`` in order, yielding values until done or cancelled."""
        for chunk in chunks:
            if self.state is not StreamState.STREAMING:
                break
            yield from self.feed(chunk)


__all__ = [
    "StreamAccumulator",
    "StreamMode",
    "StreamState",
    "StreamSummary",
    "StreamValue",
]
