"""Value objects for Gemini requests.

Immutable building blocks shared by the request models: generation
parameters, content parts, tools and safety settings. Each value object
validates itself in ``__post_init__`` and knows its own wire shape.

Key Value Objects:
    - GenerationParameters: Sampling and length controls
    - TextPart / ImagePart: Ordered request content
    - FunctionDeclaration / CodeExecution / Tool: Tool entries
    - ToolConfig: Function calling mode
    - SafetySetting: One (category, threshold) pair
"""

from __future__ import annotations

import base64
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from gemini_kit.core.validators import (
    validate_allowed_values,
    validate_not_empty,
    validate_positive_integer,
    validate_present,
    validate_probability,
    validate_string_array,
)
from gemini_kit.domain.exceptions import ValidationError

MAX_IMAGE_SIZE_BYTES = 10 * 1024 * 1024
"""Maximum raw size of an inline image (10MB)."""

SUPPORTED_IMAGE_MIME_TYPES: tuple[str, ...] = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
)

JSON_MIME_TYPE = "application/json"


# ============================================================================
# Enumerations
# ============================================================================


class HarmCategory(StrEnum):
    """Content categories the safety filter can block."""

    HARASSMENT = "HARM_CATEGORY_HARASSMENT"
    HATE_SPEECH = "HARM_CATEGORY_HATE_SPEECH"
    SEXUALLY_EXPLICIT = "HARM_CATEGORY_SEXUALLY_EXPLICIT"
    DANGEROUS_CONTENT = "HARM_CATEGORY_DANGEROUS_CONTENT"


class HarmBlockThreshold(StrEnum):
    """Probability threshold at which content is blocked.

    Attributes:
        BLOCK_NONE: Never block.
        BLOCK_LOW_AND_ABOVE: Block low, medium and high probability content.
        BLOCK_MEDIUM_AND_ABOVE: Block medium and high probability content.
        BLOCK_ONLY_HIGH: Block only high probability content.
    """

    BLOCK_NONE = "BLOCK_NONE"
    BLOCK_LOW_AND_ABOVE = "BLOCK_LOW_AND_ABOVE"
    BLOCK_MEDIUM_AND_ABOVE = "BLOCK_MEDIUM_AND_ABOVE"
    BLOCK_ONLY_HIGH = "BLOCK_ONLY_HIGH"


class FunctionCallingMode(StrEnum):
    """How the model is allowed to use declared functions."""

    AUTO = "AUTO"
    MANUAL = "MANUAL"
    NONE = "NONE"


class TaskType(StrEnum):
    """Intended downstream use of an embedding."""

    RETRIEVAL_QUERY = "RETRIEVAL_QUERY"
    RETRIEVAL_DOCUMENT = "RETRIEVAL_DOCUMENT"
    SEMANTIC_SIMILARITY = "SEMANTIC_SIMILARITY"
    CLASSIFICATION = "CLASSIFICATION"
    CLUSTERING = "CLUSTERING"


class Role(StrEnum):
    """Author of a conversation message."""

    USER = "user"
    MODEL = "model"
    SYSTEM = "system"


# ============================================================================
# Generation parameters
# ============================================================================


@dataclass(slots=True, frozen=True)
class GenerationParameters:
    """Sampling and length controls for a generation request.

    Every field is optional. A field set to None is omitted from the wire
    request; a field that is set must satisfy its own constraint.

    Attributes:
        temperature: Sampling temperature in [0.0, 1.0].
        max_tokens: Maximum output tokens (positive integer).
        top_p: Nucleus sampling probability in [0.0, 1.0].
        top_k: Top-k sampling cutoff (positive integer).
        stop_sequences: Strings that stop generation.
        system_instruction: Non-empty system instruction text.

    Raises:
        ValidationError: If any provided field violates its constraint.
    """

    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None
    stop_sequences: Sequence[str] | None = None
    system_instruction: str | None = None

    def __post_init__(self) -> None:
        validate_probability(self.temperature, "Temperature")
        validate_positive_integer(self.max_tokens, "Max tokens")
        validate_probability(self.top_p, "Top-p")
        validate_positive_integer(self.top_k, "Top-k")
        validate_string_array(self.stop_sequences, "Stop sequences")
        if self.stop_sequences is not None:
            for index, sequence in enumerate(self.stop_sequences):
                validate_not_empty(sequence, f"Stop sequences[{index}]")
            object.__setattr__(self, "stop_sequences", tuple(self.stop_sequences))
        validate_not_empty(self.system_instruction, "System instruction")

    @property
    def is_empty(self) -> bool:
        """True when no sampling parameter is set (system instruction aside)."""
        return not self.generation_config()

    def generation_config(self) -> dict[str, Any]:
        """Return the ``generationConfig`` wire object with present keys only."""
        config: dict[str, Any] = {}
        if self.temperature is not None:
            config["temperature"] = self.temperature
        if self.max_tokens is not None:
            config["maxOutputTokens"] = self.max_tokens
        if self.top_p is not None:
            config["topP"] = self.top_p
        if self.top_k is not None:
            config["topK"] = self.top_k
        if self.stop_sequences:
            config["stopSequences"] = list(self.stop_sequences)
        return config

    def system_instruction_wire(self) -> dict[str, Any] | None:
        """Return the ``systemInstruction`` wire object, or None."""
        if self.system_instruction is None:
            return None
        return {"parts": [{"text": self.system_instruction}]}


# ============================================================================
# Content parts
# ============================================================================


@dataclass(slots=True, frozen=True)
class TextPart:
    """A text segment of the request content."""

    text: str

    def __post_init__(self) -> None:
        validate_present(self.text, "Text")
        validate_not_empty(self.text, "Text")

    def to_wire(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(slots=True, frozen=True)
class ImagePart:
    """An inline image segment of the request content.

    Attributes:
        mime_type: One of SUPPORTED_IMAGE_MIME_TYPES.
        data: Raw image bytes, at most MAX_IMAGE_SIZE_BYTES.

    Raises:
        ValidationError: If the MIME type is unsupported, the data is
            empty, or the data exceeds the size limit.
    """

    mime_type: str
    data: bytes = field(repr=False)
    max_size_bytes: int = field(default=MAX_IMAGE_SIZE_BYTES, repr=False, compare=False)

    def __post_init__(self) -> None:
        validate_present(self.mime_type, "MIME type")
        validate_not_empty(self.mime_type, "MIME type")
        validate_allowed_values(self.mime_type, "MIME type", SUPPORTED_IMAGE_MIME_TYPES)
        if self.data is None:
            raise ValidationError("Image data cannot be None", "INVALID_ARGUMENT")
        if not isinstance(self.data, (bytes, bytearray)):
            raise ValidationError("Image data must be bytes", "INVALID_ARGUMENT")
        if not self.data:
            raise ValidationError("Image data cannot be empty", "INVALID_ARGUMENT")
        if len(self.data) > self.max_size_bytes:
            limit_mb = self.max_size_bytes / (1024 * 1024)
            raise ValidationError(
                f"Image size exceeds maximum of {limit_mb:g}MB ({len(self.data)} bytes)",
                "INVALID_ARGUMENT",
            )
        object.__setattr__(self, "data", bytes(self.data))

    @property
    def base64_data(self) -> str:
        """Return the image bytes encoded as standard base64."""
        return base64.b64encode(self.data).decode("ascii")

    def to_wire(self) -> dict[str, Any]:
        return {"inlineData": {"mimeType": self.mime_type, "data": self.base64_data}}


ContentPart = TextPart | ImagePart


# ============================================================================
# Tools
# ============================================================================


@dataclass(slots=True, frozen=True)
class FunctionDeclaration:
    """A function the model may ask the caller to invoke.

    Attributes:
        name: Non-empty function name.
        description: Non-empty description of what the function does.
        parameters: JSON-schema object describing the arguments; must carry
            a ``type`` key.
    """

    name: str
    description: str
    parameters: Mapping[str, Any]

    def __post_init__(self) -> None:
        validate_present(self.name, "Function name")
        validate_not_empty(self.name, "Function name")
        validate_present(self.description, "Function description")
        validate_not_empty(self.description, "Function description")
        if not isinstance(self.parameters, Mapping):
            raise ValidationError(
                f"Function parameters must be a dict, got {type(self.parameters).__name__}",
                "INVALID_ARGUMENT",
            )
        if "type" not in self.parameters:
            raise ValidationError("Function parameters must include a 'type' field", "INVALID_ARGUMENT")

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": dict(self.parameters),
        }


@dataclass(slots=True, frozen=True)
class CodeExecution:
    """Marker enabling the model's built-in code execution tool."""

    def to_wire(self) -> dict[str, Any]:
        return {}


@dataclass(slots=True, frozen=True)
class Tool:
    """One entry of a request's ``tools`` list.

    At least one of ``function_declaration`` or ``code_execution`` must be
    set.
    """

    function_declaration: FunctionDeclaration | None = None
    code_execution: CodeExecution | None = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check the entry carries a payload of the right type.

        Raises:
            ValidationError: If neither payload is set or a payload has the
                wrong type.
        """
        if self.function_declaration is None and self.code_execution is None:
            raise ValidationError(
                "Tool must define a function declaration or code execution",
                "INVALID_ARGUMENT",
            )
        if self.function_declaration is not None and not isinstance(
            self.function_declaration, FunctionDeclaration
        ):
            raise ValidationError(
                "Function declaration must be a FunctionDeclaration, "
                f"got {type(self.function_declaration).__name__}",
                "INVALID_ARGUMENT",
            )
        if self.code_execution is not None and not isinstance(self.code_execution, CodeExecution):
            raise ValidationError(
                f"Code execution must be a CodeExecution, got {type(self.code_execution).__name__}",
                "INVALID_ARGUMENT",
            )

    @classmethod
    def function(cls, name: str, description: str, parameters: Mapping[str, Any]) -> Tool:
        return cls(function_declaration=FunctionDeclaration(name, description, parameters))

    @classmethod
    def code(cls) -> Tool:
        return cls(code_execution=CodeExecution())

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {}
        if self.function_declaration is not None:
            wire["functionDeclarations"] = self.function_declaration.to_wire()
        if self.code_execution is not None:
            wire["code_execution"] = self.code_execution.to_wire()
        return wire


@dataclass(slots=True, frozen=True)
class ToolConfig:
    """Function calling configuration (``toolConfig`` on the wire)."""

    mode: FunctionCallingMode = FunctionCallingMode.AUTO

    def __post_init__(self) -> None:
        validate_present(self.mode, "Execution mode")
        validate_allowed_values(self.mode, "Execution mode", list(FunctionCallingMode))
        object.__setattr__(self, "mode", FunctionCallingMode(self.mode))

    def to_wire(self) -> dict[str, Any]:
        return {"function_calling_config": {"mode": str(self.mode)}}


# ============================================================================
# Safety
# ============================================================================


@dataclass(slots=True, frozen=True)
class SafetySetting:
    """Blocking threshold for one harm category."""

    category: HarmCategory
    threshold: HarmBlockThreshold

    def __post_init__(self) -> None:
        validate_present(self.category, "Category")
        validate_present(self.threshold, "Threshold")
        if self.category not in list(HarmCategory):
            allowed = ", ".join(HarmCategory)
            raise ValidationError(
                f"Invalid harm category: {self.category}. Must be one of: {allowed}",
                "INVALID_ARGUMENT",
            )
        if self.threshold not in list(HarmBlockThreshold):
            allowed = ", ".join(HarmBlockThreshold)
            raise ValidationError(
                f"Invalid threshold level: {self.threshold}. Must be one of: {allowed}",
                "INVALID_ARGUMENT",
            )
        object.__setattr__(self, "category", HarmCategory(self.category))
        object.__setattr__(self, "threshold", HarmBlockThreshold(self.threshold))

    def to_wire(self) -> dict[str, str]:
        return {"category": str(self.category), "threshold": str(self.threshold)}


__all__ = [
    "JSON_MIME_TYPE",
    "MAX_IMAGE_SIZE_BYTES",
    "SUPPORTED_IMAGE_MIME_TYPES",
    "CodeExecution",
    "ContentPart",
    "FunctionCallingMode",
    "FunctionDeclaration",
    "GenerationParameters",
    "HarmBlockThreshold",
    "HarmCategory",
    "ImagePart",
    "Role",
    "SafetySetting",
    "TaskType",
    "TextPart",
    "Tool",
    "ToolConfig",
]
