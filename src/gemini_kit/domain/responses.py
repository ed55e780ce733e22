"""Response models for the Gemini API.

Responses wrap the decoded JSON body and derive typed values from it on
first access. Every accessor is null-safe: missing candidates, content or
parts yield None rather than raising, and the raw body is never mutated.

Key Models:
    - ContentResponse: generateContent result (text, usage, tools, JSON)
    - ChatResponse: ContentResponse for one conversation turn
    - StreamResponse: One streamGenerateContent chunk
    - Usage / FunctionCall / ExecutableCode / CodeExecutionResult
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

from gemini_kit.domain.exceptions import ValidationError
from gemini_kit.domain.value_objects import Role

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL | re.IGNORECASE)

VALID_OUTCOMES = ("OUTCOME_OK", "OUTCOME_ERROR")


# ============================================================================
# Wire helpers
# ============================================================================


def _first_candidate(data: Mapping[str, Any]) -> Mapping[str, Any] | None:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    candidate = candidates[0]
    return candidate if isinstance(candidate, Mapping) else None


def candidate_parts(data: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Return the parts of the first candidate, or an empty list."""
    candidate = _first_candidate(data)
    if candidate is None:
        return []
    content = candidate.get("content")
    if not isinstance(content, Mapping):
        return []
    parts = content.get("parts")
    if not isinstance(parts, list):
        return []
    return [part for part in parts if isinstance(part, Mapping)]


def extract_text(data: Mapping[str, Any]) -> str | None:
    """Join the text parts of the first candidate with a single space."""
    texts = [part["text"] for part in candidate_parts(data) if part.get("text") is not None]
    if not texts:
        return None
    return " ".join(str(text) for text in texts)


def extract_finish_reason(data: Mapping[str, Any]) -> str | None:
    candidate = _first_candidate(data)
    if candidate is None:
        return None
    return candidate.get("finishReason") or None


def parse_json_text(text: str | None) -> Any | None:
    """Parse JSON out of model text.

    Tries, in order: the whole text, a fenced code block, and the first
    balanced object or array embedded in the text.

    Returns:
        The parsed value, or None when nothing parses.
    """
    if not text:
        return None

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for match in _FENCED_JSON.finditer(text):
        try:
            return json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            continue

    decoder = json.JSONDecoder()
    for index, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            continue
        return value
    return None


# ============================================================================
# Value types
# ============================================================================


@dataclass(slots=True, frozen=True)
class Usage:
    """Token counts reported by the API.

    Attributes:
        prompt_tokens: Tokens in the request.
        completion_tokens: Tokens in the generated candidates.
        total_tokens: ``totalTokenCount`` when reported, otherwise
            prompt plus completion tokens.
    """

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_wire(cls, metadata: Any) -> Usage | None:
        """Build from ``usageMetadata``; None when it is absent."""
        if not isinstance(metadata, Mapping) or not metadata:
            return None
        prompt = int(metadata.get("promptTokenCount") or 0)
        completion = int(metadata.get("candidatesTokenCount") or 0)
        total = metadata.get("totalTokenCount")
        return cls(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=int(total) if total is not None else prompt + completion,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(slots=True, frozen=True)
class FunctionCall:
    """A function invocation requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValidationError("Function name cannot be empty", "INVALID_ARGUMENT")
        if not isinstance(self.args, Mapping):
            raise ValidationError(
                f"Function arguments must be a dict, got {type(self.args).__name__}",
                "INVALID_ARGUMENT",
            )
        object.__setattr__(self, "args", dict(self.args))

    @classmethod
    def from_part(cls, part: Mapping[str, Any]) -> FunctionCall | None:
        """Normalize either ``functionCall`` or ``function_call`` into one shape."""
        payload = part.get("functionCall") or part.get("function_call")
        if not isinstance(payload, Mapping):
            return None
        args = payload.get("args")
        if args is None:
            args = payload.get("arguments")
        if isinstance(args, str):
            args = parse_json_text(args)
        return cls(name=payload.get("name") or "", args=args or {})

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "args": dict(self.args)}


@dataclass(slots=True, frozen=True)
class ExecutableCode:
    """Code the model generated for the code execution tool."""

    language: str = "PYTHON"
    code: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"language": self.language, "code": self.code}


@dataclass(slots=True, frozen=True)
class CodeExecutionResult:
    """Output of code run by the code execution tool."""

    outcome: str = "OUTCOME_OK"
    output: str = ""

    def __post_init__(self) -> None:
        if self.outcome not in VALID_OUTCOMES:
            raise ValidationError(
                f"Invalid outcome: {self.outcome}. Must be one of: {', '.join(VALID_OUTCOMES)}",
                "INVALID_ARGUMENT",
            )
        if not isinstance(self.output, str):
            raise ValidationError(
                f"Output must be a string, got {type(self.output).__name__}",
                "INVALID_ARGUMENT",
            )

    @property
    def succeeded(self) -> bool:
        return self.outcome == "OUTCOME_OK"

    def to_dict(self) -> dict[str, str]:
        return {"outcome": self.outcome, "output": self.output}


# ============================================================================
# Responses
# ============================================================================


class ContentResponse:
    """Result of a generateContent call.

    Derived values are computed on first access and cached, so repeated
    reads return the identical object.

    Attributes:
        raw_response: The decoded response body, as received.
    """

    def __init__(self, raw_response: Mapping[str, Any] | None) -> None:
        self.raw_response: Mapping[str, Any] = raw_response if raw_response is not None else {}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ContentResponse:
        return cls(data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(finish_reason={self.finish_reason!r}, text={self.text!r})"

    @cached_property
    def text(self) -> str | None:
        """Text parts of the first candidate joined with a space, or None."""
        return extract_text(self.raw_response)

    @cached_property
    def finish_reason(self) -> str | None:
        return extract_finish_reason(self.raw_response)

    @cached_property
    def usage(self) -> Usage | None:
        return Usage.from_wire(self.raw_response.get("usageMetadata"))

    @property
    def prompt_tokens(self) -> int | None:
        return self.usage.prompt_tokens if self.usage else None

    @property
    def completion_tokens(self) -> int | None:
        return self.usage.completion_tokens if self.usage else None

    @property
    def total_tokens(self) -> int | None:
        return self.usage.total_tokens if self.usage else None

    @cached_property
    def function_call(self) -> FunctionCall | None:
        """First function call among the candidate parts, or None."""
        for part in candidate_parts(self.raw_response):
            if "functionCall" in part or "function_call" in part:
                try:
                    return FunctionCall.from_part(part)
                except ValidationError:
                    return None
        return None

    @cached_property
    def json_response(self) -> Any | None:
        """Parsed JSON payload for JSON-mode responses, or None.

        Falls back to a ``structuredValue`` part when the text does not
        parse.
        """
        parsed = parse_json_text(self.text)
        if parsed is not None:
            return parsed
        for part in candidate_parts(self.raw_response):
            if part.get("structuredValue") is not None:
                return part["structuredValue"]
        return None

    @cached_property
    def executable_code(self) -> ExecutableCode | None:
        for part in candidate_parts(self.raw_response):
            code = part.get("executableCode")
            if isinstance(code, Mapping):
                return ExecutableCode(
                    language=code.get("language") or "PYTHON",
                    code=code.get("code") or "",
                )
        return None

    @cached_property
    def code_execution_result(self) -> CodeExecutionResult | None:
        for part in candidate_parts(self.raw_response):
            result = part.get("codeExecutionResult")
            if isinstance(result, Mapping):
                try:
                    return CodeExecutionResult(
                        outcome=result.get("outcome") or "OUTCOME_OK",
                        output=result.get("output") or "",
                    )
                except ValidationError:
                    return None
        return None

    @property
    def has_text(self) -> bool:
        return bool(self.text)

    @property
    def has_function_call(self) -> bool:
        return self.function_call is not None

    @property
    def has_json_response(self) -> bool:
        return self.json_response is not None

    @property
    def has_executable_code(self) -> bool:
        return self.executable_code is not None

    @property
    def has_code_execution_result(self) -> bool:
        return self.code_execution_result is not None


class ChatResponse(ContentResponse):
    """A model reply within a conversation."""

    def to_message(self) -> dict[str, Any]:
        """Return the reply as a wire ``contents`` entry with role ``model``."""
        return {"role": str(Role.MODEL), "parts": [{"text": self.text or ""}]}


@dataclass(slots=True, frozen=True)
class StreamResponse:
    """One decoded chunk of a streamed generation.

    A chunk carrying a finish reason is the terminal chunk of its stream.
    """

    raw_chunk: Mapping[str, Any] = field(repr=False)
    text: str | None = None
    finish_reason: str | None = None
    usage: Usage | None = None

    @classmethod
    def from_dict(cls, chunk: Mapping[str, Any]) -> StreamResponse:
        return cls(
            raw_chunk=chunk,
            text=extract_text(chunk),
            finish_reason=extract_finish_reason(chunk),
            usage=Usage.from_wire(chunk.get("usageMetadata")),
        )

    @property
    def is_final(self) -> bool:
        return self.finish_reason is not None


__all__ = [
    "VALID_OUTCOMES",
    "ChatResponse",
    "CodeExecutionResult",
    "ContentResponse",
    "ExecutableCode",
    "FunctionCall",
    "StreamResponse",
    "Usage",
    "candidate_parts",
    "extract_finish_reason",
    "extract_text",
    "parse_json_text",
]
