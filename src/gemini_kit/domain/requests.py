"""Request models for the Gemini API.

Request models accept raw caller values, validate them on construction
(before any network call), and expose ``to_wire_shape()`` which returns the
exact JSON body the API expects. ``ContentRequest`` is also a fluent
builder: content parts, tools, safety settings and JSON mode can be added
after construction, and everything is validated again at serialization
time.

Key Models:
    - ContentRequest: Text, multimodal, tool and JSON-mode generation
    - ChatRequest: One user turn appended to a conversation history
    - EmbeddingRequest: Single or batch text embedding
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

from gemini_kit.core.config import get_settings
from gemini_kit.core.validators import (
    validate_allowed_values,
    validate_not_empty,
    validate_positive_integer,
    validate_present,
    validate_string,
)
from gemini_kit.domain.exceptions import ValidationError
from gemini_kit.domain.value_objects import (
    JSON_MIME_TYPE,
    MAX_IMAGE_SIZE_BYTES,
    ContentPart,
    FunctionCallingMode,
    GenerationParameters,
    HarmBlockThreshold,
    HarmCategory,
    ImagePart,
    Role,
    SafetySetting,
    TaskType,
    TextPart,
    Tool,
    ToolConfig,
)
from gemini_kit.infrastructure.image_loading import fetch_image_url, read_image_file

if TYPE_CHECKING:
    from gemini_kit.core.config import GeminiConfig

logger = logging.getLogger(__name__)

MODELS_PREFIX = "models/"


def _default_model(config: GeminiConfig | None, *, embedding: bool = False) -> str:
    cfg = config or get_settings().gemini
    return cfg.default_embedding_model if embedding else cfg.default_model


def strip_models_prefix(model: str) -> str:
    """Return ``model`` without a leading ``models/``."""
    return model[len(MODELS_PREFIX) :] if model.startswith(MODELS_PREFIX) else model


def model_path(model: str) -> str:
    """Return the ``models/{id}`` resource path for ``model``."""
    return f"{MODELS_PREFIX}{strip_models_prefix(model)}"


def content_endpoint(model: str, *, stream: bool = False) -> str:
    """Return the generateContent (or streamGenerateContent) path for ``model``."""
    method = "streamGenerateContent" if stream else "generateContent"
    return f"{model_path(model)}:{method}"


def _validate_model(model: Any) -> None:
    validate_present(model, "Model name")
    validate_not_empty(model, "Model name")


def _validate_prompt(prompt: Any) -> None:
    validate_present(prompt, "Prompt")
    validate_string(prompt, "Prompt")
    validate_not_empty(prompt, "Prompt")


# ============================================================================
# Content generation
# ============================================================================


class ContentRequest:
    """A generateContent request.

    The prompt becomes content part 0. Further text and image parts, tools,
    a tool config, safety settings and JSON mode can be chained on before
    the request is sent::

        request = (
            ContentRequest("Describe this image", temperature=0.2)
            .add_image_from_file("cat.png")
            .block_only_high_risk_content()
        )
        body = request.to_wire_shape()

    Attributes:
        prompt: Prompt text (part 0).
        model: Model identifier without the ``models/`` prefix.
        parameters: Validated generation parameters.
    """

    __slots__ = (
        "prompt",
        "model",
        "parameters",
        "max_image_size_bytes",
        "_parts",
        "_tools",
        "_tool_config",
        "_safety_settings",
        "_json_mode",
        "_response_schema",
    )

    def __init__(
        self,
        prompt: str,
        model: str | None = None,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
        stop_sequences: Sequence[str] | None = None,
        system_instruction: str | None = None,
        config: GeminiConfig | None = None,
        max_image_size_bytes: int = MAX_IMAGE_SIZE_BYTES,
    ) -> None:
        """Validate and build a content request.

        Args:
            prompt: Prompt text. Required, non-empty string.
            model: Model name. None uses ``config.default_model`` (or the
                cached default settings when no config is passed).
            temperature: Sampling temperature in [0.0, 1.0].
            max_tokens: Maximum output tokens.
            top_p: Nucleus sampling probability in [0.0, 1.0].
            top_k: Top-k cutoff.
            stop_sequences: Strings that stop generation.
            system_instruction: System instruction text.
            config: Configuration supplying the default model.
            max_image_size_bytes: Size cap for image parts.

        Raises:
            ValidationError: If the prompt, model or any parameter is invalid.
        """
        _validate_prompt(prompt)
        resolved_model = model if model is not None else _default_model(config)
        _validate_model(resolved_model)

        self.prompt = prompt
        self.model = strip_models_prefix(resolved_model)
        self.parameters = GenerationParameters(
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=top_p,
            top_k=top_k,
            stop_sequences=stop_sequences,
            system_instruction=system_instruction,
        )
        self.max_image_size_bytes = max_image_size_bytes
        self._parts: list[ContentPart] = [TextPart(prompt)]
        self._tools: list[Tool] = []
        self._tool_config: ToolConfig | None = None
        self._safety_settings: dict[HarmCategory, SafetySetting] = {}
        self._json_mode = False
        self._response_schema: dict[str, Any] | None = None

    def __repr__(self) -> str:
        return (
            f"ContentRequest(model={self.model!r}, parts={len(self._parts)}, "
            f"tools={len(self._tools)}, json_mode={self._json_mode})"
        )

    # ------------------------------------------------------------------ state

    @property
    def parts(self) -> tuple[ContentPart, ...]:
        return tuple(self._parts)

    @property
    def tools(self) -> tuple[Tool, ...]:
        return tuple(self._tools)

    @property
    def tool_config(self) -> ToolConfig | None:
        return self._tool_config

    @property
    def safety_settings(self) -> tuple[SafetySetting, ...]:
        return tuple(self._safety_settings.values())

    @property
    def json_mode(self) -> bool:
        return self._json_mode

    @property
    def response_schema(self) -> dict[str, Any] | None:
        return self._response_schema

    @property
    def system_instruction(self) -> str | None:
        return self.parameters.system_instruction

    @property
    def is_multimodal(self) -> bool:
        """True when the request has more than one part or any image part."""
        if not self._parts:
            return False
        return len(self._parts) > 1 or any(not isinstance(part, TextPart) for part in self._parts)

    # --------------------------------------------------------------- content

    def add_text(self, text: str) -> Self:
        """Append a text part."""
        validate_present(text, "Text content")
        validate_not_empty(text, "Text content")
        self._parts.append(TextPart(text))
        return self

    def add_image_from_bytes(self, image_bytes: bytes, mime_type: str) -> Self:
        """Append an inline image part.

        Args:
            image_bytes: Raw image bytes (base64-encoded at serialization).
            mime_type: One of image/jpeg, image/png, image/gif, image/webp.

        Raises:
            ValidationError: If the type is unsupported, the bytes are empty
                or exceed the size cap.
        """
        self._parts.append(
            ImagePart(mime_type=mime_type, data=image_bytes, max_size_bytes=self.max_image_size_bytes)
        )
        logger.debug("Attached %s image (%d bytes) as part %d", mime_type, len(image_bytes), len(self._parts))
        return self

    def add_image_from_file(self, file_path: str | Path) -> Self:
        """Read an image file and append it as an inline part."""
        image = read_image_file(file_path)
        return self.add_image_from_bytes(image.data, image.mime_type)

    def add_image_from_url(self, url: str, *, timeout: float = 30.0) -> Self:
        """Download an image and append it as an inline part."""
        image = fetch_image_url(url, timeout=timeout)
        return self.add_image_from_bytes(image.data, image.mime_type)

    # ----------------------------------------------------------------- tools

    def add_function(self, name: str, description: str, parameters: Mapping[str, Any]) -> Self:
        """Declare a function the model may call."""
        self._tools.append(Tool.function(name, description, parameters))
        return self

    def add_tool(self, tool: Tool) -> Self:
        if not isinstance(tool, Tool):
            raise ValidationError(f"Tool must be a Tool, got {type(tool).__name__}", "INVALID_ARGUMENT")
        self._tools.append(tool)
        return self

    def enable_code_execution(self) -> Self:
        """Add the code execution tool (once)."""
        if not any(tool.code_execution is not None for tool in self._tools):
            self._tools.append(Tool.code())
        return self

    def set_tool_config(self, mode: FunctionCallingMode | str = FunctionCallingMode.AUTO) -> Self:
        """Set the function calling mode (AUTO, MANUAL or NONE)."""
        self._tool_config = ToolConfig(mode)  # type: ignore[arg-type]
        return self

    def enable_json_mode(self, schema: Mapping[str, Any] | None = None) -> Self:
        """Ask for a JSON response, optionally constrained by ``schema``.

        Args:
            schema: JSON schema for the response (``responseSchema``). None
                sends only the JSON MIME type.
        """
        if schema is not None and not isinstance(schema, Mapping):
            raise ValidationError(
                f"Response schema must be a dict, got {type(schema).__name__}",
                "INVALID_ARGUMENT",
            )
        self._json_mode = True
        self._response_schema = dict(schema) if schema is not None else None
        return self

    def disable_json_mode(self) -> Self:
        self._json_mode = False
        self._response_schema = None
        return self

    # ---------------------------------------------------------------- safety

    def add_safety_setting(
        self,
        category: HarmCategory | str,
        threshold: HarmBlockThreshold | str,
    ) -> Self:
        """Set the threshold for one category, replacing any earlier value."""
        setting = SafetySetting(category, threshold)  # type: ignore[arg-type]
        self._safety_settings[setting.category] = setting
        return self

    def set_default_safety_settings(self, threshold: HarmBlockThreshold | str) -> Self:
        """Apply ``threshold`` to every harm category."""
        for category in HarmCategory:
            self.add_safety_setting(category, threshold)
        return self

    def block_all_harmful_content(self) -> Self:
        return self.set_default_safety_settings(HarmBlockThreshold.BLOCK_LOW_AND_ABOVE)

    def block_only_high_risk_content(self) -> Self:
        return self.set_default_safety_settings(HarmBlockThreshold.BLOCK_ONLY_HIGH)

    def remove_safety_settings(self) -> Self:
        self._safety_settings.clear()
        return self

    # ------------------------------------------------------------- serialize

    def validate(self) -> None:
        """Re-check state mutated after construction.

        Raises:
            ValidationError: If a part, tool, tool config, safety setting or
                the JSON schema is malformed.
        """
        _validate_prompt(self.prompt)
        _validate_model(self.model)
        if not self._parts:
            raise ValidationError("Content parts cannot be empty", "INVALID_ARGUMENT")
        for index, part in enumerate(self._parts):
            if not isinstance(part, (TextPart, ImagePart)):
                raise ValidationError(
                    f"Content part {index} has an invalid type: {type(part).__name__}",
                    "INVALID_ARGUMENT",
                )
        for index, tool in enumerate(self._tools):
            if not isinstance(tool, Tool):
                raise ValidationError(
                    f"Tool at index {index} must be a Tool, got {type(tool).__name__}",
                    "INVALID_ARGUMENT",
                )
            tool.validate()
        if self._tool_config is not None and not isinstance(self._tool_config, ToolConfig):
            raise ValidationError(
                f"Tool config must be a ToolConfig, got {type(self._tool_config).__name__}",
                "INVALID_ARGUMENT",
            )
        for category, setting in self._safety_settings.items():
            if not isinstance(setting, SafetySetting) or setting.category != category:
                raise ValidationError(f"Invalid safety setting for {category}", "INVALID_ARGUMENT")
        if self._response_schema is not None and not self._json_mode:
            raise ValidationError("Response schema requires JSON mode", "INVALID_ARGUMENT")

    def to_wire_shape(self) -> dict[str, Any]:
        """Serialize to the generateContent JSON body.

        Only present fields are emitted: ``generationConfig`` is omitted when
        no generation parameter is set and JSON mode is off, and likewise
        for ``systemInstruction``, ``tools``, ``toolConfig`` and
        ``safetySettings``. The result is a fresh dict on every call.

        Returns:
            The request body (model excluded; it is part of the URL path).

        Raises:
            ValidationError: If mutated state is no longer valid.
        """
        self.validate()

        body: dict[str, Any] = {"contents": [{"parts": [part.to_wire() for part in self._parts]}]}

        generation_config = self.parameters.generation_config()
        if self._json_mode:
            generation_config["responseMimeType"] = JSON_MIME_TYPE
            if self._response_schema is not None:
                generation_config["responseSchema"] = dict(self._response_schema)
        if generation_config:
            body["generationConfig"] = generation_config

        system_instruction = self.parameters.system_instruction_wire()
        if system_instruction is not None:
            body["systemInstruction"] = system_instruction

        if self._tools:
            body["tools"] = [tool.to_wire() for tool in self._tools]
        if self._tool_config is not None:
            body["toolConfig"] = self._tool_config.to_wire()
        if self._safety_settings:
            body["safetySettings"] = [setting.to_wire() for setting in self._safety_settings.values()]

        return body


# ============================================================================
# Chat
# ============================================================================


class ChatRequest:
    """A single user turn in a multi-turn conversation."""

    __slots__ = ("content", "model", "user_id", "parameters", "timestamp")

    def __init__(
        self,
        content: str,
        model: str | None = None,
        user_id: str | None = None,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
        stop_sequences: Sequence[str] | None = None,
        system_instruction: str | None = None,
        config: GeminiConfig | None = None,
    ) -> None:
        validate_present(content, "Content")
        validate_not_empty(content, "Content")
        resolved_model = model if model is not None else _default_model(config)
        _validate_model(resolved_model)
        validate_string(user_id, "User ID")

        self.content = content
        self.model = strip_models_prefix(resolved_model)
        self.user_id = user_id
        self.parameters = GenerationParameters(
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=top_p,
            top_k=top_k,
            stop_sequences=stop_sequences,
            system_instruction=system_instruction,
        )
        self.timestamp = datetime.now(UTC)

    def to_message(self) -> dict[str, Any]:
        """Return this turn as a wire ``contents`` entry."""
        return {"role": str(Role.USER), "parts": [{"text": self.content}]}

    def to_wire_shape(self, history: Sequence[Mapping[str, Any]] = ()) -> dict[str, Any]:
        """Serialize the prior ``history`` plus this turn.

        Args:
            history: Earlier turns in wire form (``{"role", "parts"}``),
                oldest first, not including this turn.
        """
        body: dict[str, Any] = {"contents": [dict(message) for message in history] + [self.to_message()]}
        generation_config = self.parameters.generation_config()
        if generation_config:
            body["generationConfig"] = generation_config
        system_instruction = self.parameters.system_instruction_wire()
        if system_instruction is not None:
            body["systemInstruction"] = system_instruction
        return body


# ============================================================================
# Embeddings
# ============================================================================


class EmbeddingRequest:
    """An embedContent or batchEmbedContents request.

    Attributes:
        texts: Input texts (one for a single request).
        model: Embedding model without the ``models/`` prefix.
        task_type: Intended use of the embedding.
        dimensions: Requested output dimensionality, or None.
        title: Document title (single requests only), or None.
    """

    __slots__ = ("texts", "model", "task_type", "dimensions", "title", "_batch")

    def __init__(
        self,
        text: str | Sequence[str],
        model: str | None = None,
        *,
        task_type: TaskType | str = TaskType.RETRIEVAL_DOCUMENT,
        dimensions: int | None = None,
        title: str | None = None,
        config: GeminiConfig | None = None,
    ) -> None:
        """Validate and build an embedding request.

        Args:
            text: One text, or a list of texts for a batch request.
            model: Embedding model. None uses the configured default.
            task_type: One of the TaskType values.
            dimensions: Optional positive output dimensionality.
            title: Optional document title.
            config: Configuration supplying the default embedding model.

        Raises:
            ValidationError: If the input is empty or any option is invalid.
        """
        if text is None:
            raise ValidationError("Text cannot be None", "INVALID_ARGUMENT")

        match text:
            case str():
                validate_not_empty(text, "Text")
                self.texts: tuple[str, ...] = (text,)
                self._batch = False
            case list() | tuple():
                if not text:
                    raise ValidationError("Text array cannot be empty", "INVALID_ARGUMENT")
                for index, item in enumerate(text):
                    if not isinstance(item, str) or not item:
                        raise ValidationError(
                            f"Text at index {index} cannot be None or empty",
                            "INVALID_ARGUMENT",
                        )
                self.texts = tuple(text)
                self._batch = True
            case _:
                raise ValidationError("Text must be a string or a list of strings", "INVALID_ARGUMENT")

        resolved_model = model if model is not None else _default_model(config, embedding=True)
        _validate_model(resolved_model)
        validate_present(task_type, "Task type")
        validate_allowed_values(task_type, "Task type", list(TaskType))
        validate_positive_integer(dimensions, "Dimensions")
        validate_not_empty(title, "Title")

        self.model = strip_models_prefix(resolved_model)
        self.task_type = TaskType(task_type)
        self.dimensions = dimensions
        self.title = title

    @property
    def is_batch(self) -> bool:
        return self._batch

    @property
    def endpoint(self) -> str:
        """embedContent path for one text, batchEmbedContents for a list."""
        method = "batchEmbedContents" if self._batch else "embedContent"
        return f"{model_path(self.model)}:{method}"

    @property
    def text(self) -> str:
        """The first (or only) input text."""
        return self.texts[0]

    def _content(self, text: str, *, with_title: bool) -> dict[str, Any]:
        content: dict[str, Any] = {"parts": [{"text": text}]}
        if with_title and self.title is not None:
            content["title"] = self.title
        return content

    def to_wire_shape(self) -> dict[str, Any]:
        """Serialize to the embedContent or batchEmbedContents body."""
        if self._batch:
            return {
                "requests": [
                    {
                        "model": f"{MODELS_PREFIX}{self.model}",
                        "content": self._content(text, with_title=False),
                        "taskType": str(self.task_type),
                    }
                    for text in self.texts
                ]
            }

        body: dict[str, Any] = {
            "content": self._content(self.text, with_title=True),
            "taskType": str(self.task_type),
        }
        if self.dimensions is not None:
            body["dimensions"] = self.dimensions
        return body


__all__ = [
    "MODELS_PREFIX",
    "ChatRequest",
    "ContentRequest",
    "EmbeddingRequest",
    "content_endpoint",
    "model_path",
    "strip_models_prefix",
]
