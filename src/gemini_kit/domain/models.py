"""Model metadata returned by the ``models`` endpoints.

``Model.from_api_data`` turns one entry of the ``models`` listing (or a
``models/{id}`` lookup) into an immutable record with derived
capabilities, token limits and suggested use cases. ``ModelList`` is a
sequence of models with filtering helpers and the pagination token of the
page it came from.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

_VERSION_PATTERNS = (
    re.compile(r"[-_](\d+\.\d+)[-_]"),
    re.compile(r"\s(\d+\.\d+)(?:\s|$)"),
)

_METHOD_CAPABILITIES = {
    "generateText": "text",
    "generateMessage": "chat",
    "embedContent": "embedding",
}


def _extract_version(data: Mapping[str, Any]) -> str | None:
    explicit = data.get("version")
    if isinstance(explicit, str) and explicit:
        return explicit
    display_name = data.get("displayName")
    if not isinstance(display_name, str):
        return None
    for pattern in _VERSION_PATTERNS:
        match = pattern.search(display_name)
        if match:
            return match.group(1)
    return None


def _extract_capabilities(data: Mapping[str, Any]) -> tuple[str, ...]:
    methods = data.get("supportedGenerationMethods") or []
    capabilities = [capability for method, capability in _METHOD_CAPABILITIES.items() if method in methods]
    input_setting = data.get("inputSetting") or {}
    if "generateContent" in methods and input_setting.get("supportMultiModal"):
        capabilities.append("vision")
    order = ("text", "chat", "vision", "embedding")
    return tuple(sorted(capabilities, key=order.index))


def _extract_use_cases(description: str | None) -> tuple[str, ...]:
    if not description:
        return ()
    use_cases: list[str] = []
    if "chat" in description:
        use_cases.append("conversational_ai")
    if "vision" in description or "image" in description:
        use_cases.append("image_understanding")
    if "embedding" in description:
        use_cases.extend(("semantic_search", "clustering"))
    return tuple(use_cases)


@dataclass(slots=True, frozen=True)
class Model:
    """Metadata for one model.

    Attributes:
        id: Model id without the ``models/`` prefix, e.g. "gemini-2.0-flash".
        name: Display name.
        version: Version string from the API, or parsed from the display
            name ("Gemini 1.5 Pro" gives "1.5").
        description: Free-text description.
        capabilities: Subset of text, chat, vision and embedding.
        limitations: ``input_token_limit`` / ``output_token_limit`` when
            reported.
        use_cases: Use cases suggested by the description.
        supported_generation_methods: API methods the model accepts.
        base_model_id: Base model the entry derives from, if reported.
        raw_data: The API entry the model was built from.
    """

    id: str | None
    name: str | None = None
    version: str | None = None
    description: str | None = None
    capabilities: tuple[str, ...] = ()
    limitations: Mapping[str, int] = field(default_factory=dict)
    use_cases: tuple[str, ...] = ()
    supported_generation_methods: tuple[str, ...] = ()
    base_model_id: str | None = None
    raw_data: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_api_data(cls, data: Mapping[str, Any]) -> Model:
        resource_name = data.get("name")
        limitations = {
            key: data[wire_key]
            for key, wire_key in (("input_token_limit", "inputTokenLimit"), ("output_token_limit", "outputTokenLimit"))
            if data.get(wire_key)
        }
        description = data.get("description")
        return cls(
            id=resource_name.split("/")[-1] if isinstance(resource_name, str) else None,
            name=data.get("displayName"),
            version=_extract_version(data),
            description=description,
            capabilities=_extract_capabilities(data),
            limitations=limitations,
            use_cases=_extract_use_cases(description),
            supported_generation_methods=tuple(data.get("supportedGenerationMethods") or ()),
            base_model_id=data.get("baseModelId"),
            raw_data=data,
        )

    @property
    def input_token_limit(self) -> int | None:
        return self.limitations.get("input_token_limit")

    @property
    def output_token_limit(self) -> int | None:
        return self.limitations.get("output_token_limit")

    def supports(self, capability: str) -> bool:
        return capability.lower() in self.capabilities

    def supports_method(self, method: str) -> bool:
        return method in self.supported_generation_methods

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "capabilities": list(self.capabilities),
            "limitations": dict(self.limitations),
            "use_cases": list(self.use_cases),
            "supported_generation_methods": list(self.supported_generation_methods),
        }


class ModelList(Sequence[Model]):
    """An ordered list of models, optionally one page of a listing.

    Attributes:
        models: The models, in API order.
        next_page_token: Token for the next page, or None on the last page.
    """

    __slots__ = ("models", "next_page_token")

    def __init__(self, models: Sequence[Model] = (), next_page_token: str | None = None) -> None:
        self.models: list[Model] = list(models)
        self.next_page_token = next_page_token or None

    @classmethod
    def from_api_data(cls, data: Mapping[str, Any]) -> ModelList:
        entries = data.get("models") or []
        return cls(
            [Model.from_api_data(entry) for entry in entries if isinstance(entry, Mapping)],
            next_page_token=data.get("nextPageToken"),
        )

    def __repr__(self) -> str:
        return f"ModelList(size={len(self.models)}, next_page_token={self.next_page_token!r})"

    def __getitem__(self, index):  # type: ignore[override]
        if isinstance(index, slice):
            return ModelList(self.models[index])
        return self.models[index]

    def __len__(self) -> int:
        return len(self.models)

    def __iter__(self) -> Iterator[Model]:
        return iter(self.models)

    @property
    def has_more_pages(self) -> bool:
        return self.next_page_token is not None

    def add(self, model: Model) -> ModelList:
        self.models.append(model)
        return self

    def find_by_id(self, model_id: str) -> Model | None:
        model_id = model_id.split("/")[-1]
        return next((model for model in self.models if model.id == model_id), None)

    def filter_by_capability(self, capability: str) -> ModelList:
        return ModelList([model for model in self.models if model.supports(capability)])

    def filter_by_method(self, method: str) -> ModelList:
        return ModelList([model for model in self.models if model.supports_method(method)])

    def filter_by_version(self, version: str) -> ModelList:
        return ModelList([model for model in self.models if model.version == version])

    def filter_by_base_model_id(self, base_model_id: str) -> ModelList:
        return ModelList([model for model in self.models if model.base_model_id == base_model_id])

    def filter_by_name(self, pattern: str | re.Pattern[str]) -> ModelList:
        """Models whose display name matches ``pattern`` (case-insensitive for strings)."""
        regex = re.compile(pattern, re.IGNORECASE) if isinstance(pattern, str) else pattern
        return ModelList([model for model in self.models if model.name and regex.search(model.name)])

    def text_models(self) -> ModelList:
        return self.filter_by_capability("text")

    def chat_models(self) -> ModelList:
        return self.filter_by_capability("chat")

    def vision_models(self) -> ModelList:
        return self.filter_by_capability("vision")

    def embedding_models(self) -> ModelList:
        return self.filter_by_capability("embedding")

    def to_list(self) -> list[dict[str, Any]]:
        return [model.to_dict() for model in self.models]


__all__ = ["Model", "ModelList"]
