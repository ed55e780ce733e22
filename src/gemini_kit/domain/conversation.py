"""Conversation domain entities.

A ``Conversation`` is an ordered list of ``Message`` turns plus an id,
title, optional system instruction and timestamps. Conversations are plain
data: the HTTP round trip lives in ``gemini_kit.client.conversations``.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from gemini_kit.core.validators import validate_allowed_values, validate_not_empty, validate_present
from gemini_kit.domain.value_objects import Role


def _now() -> datetime:
    return datetime.now(UTC)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return _now()


@dataclass(slots=True, frozen=True)
class Message:
    """One turn of a conversation.

    Attributes:
        content: Non-empty message text.
        role: user, model or system.
        timestamp: When the message was created (UTC).
    """

    content: str
    role: Role
    timestamp: datetime = field(default_factory=_now, compare=False)

    def __post_init__(self) -> None:
        validate_present(self.content, "Content")
        validate_not_empty(self.content, "Content")
        validate_present(self.role, "Role")
        validate_allowed_values(self.role, "Role", list(Role))
        object.__setattr__(self, "role", Role(self.role))

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(content, Role.USER)

    @classmethod
    def model(cls, content: str) -> Message:
        return cls(content, Role.MODEL)

    @property
    def is_user(self) -> bool:
        return self.role is Role.USER

    @property
    def is_model(self) -> bool:
        return self.role is Role.MODEL

    def to_wire(self) -> dict[str, Any]:
        """Return the message as a wire ``contents`` entry."""
        return {"role": str(self.role), "parts": [{"text": self.content}]}

    def to_dict(self) -> dict[str, Any]:
        return {**self.to_wire(), "timestamp": self.timestamp.isoformat()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Message:
        """Rebuild a message from ``to_dict`` output or a wire entry."""
        parts = data.get("parts") or []
        texts = [part["text"] for part in parts if isinstance(part, Mapping) and part.get("text") is not None]
        return cls(
            content=" ".join(texts),
            role=data.get("role"),  # type: ignore[arg-type]
            timestamp=_parse_timestamp(data.get("timestamp")),
        )


@dataclass(slots=True)
class Conversation:
    """A titled, ordered history of messages.

    Attributes:
        id: Opaque identifier (a UUID4 string unless supplied).
        title: Optional human-readable title.
        messages: Turns, oldest first.
        system_instruction: Instruction sent with every turn, if any.
        created_at: Creation time (UTC).
        updated_at: Time of the last change (UTC).
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    title: str | None = None
    messages: list[Message] = field(default_factory=list)
    system_instruction: str | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        validate_not_empty(self.system_instruction, "System instruction")
        if self.updated_at is None:
            self.updated_at = self.created_at

    def _touch(self) -> None:
        self.updated_at = _now()

    def add_message(self, message: Message) -> Message:
        self.messages.append(message)
        self._touch()
        return message

    def add_user_message(self, content: str) -> Message:
        return self.add_message(Message.user(content))

    def add_model_message(self, content: str) -> Message:
        return self.add_message(Message.model(content))

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def has_messages(self) -> bool:
        return bool(self.messages)

    def history_wire(self) -> list[dict[str, Any]]:
        """All messages as wire ``contents`` entries, oldest first."""
        return [message.to_wire() for message in self.messages]

    def set_title(self, title: str | None) -> None:
        self.title = title
        self._touch()

    def clear(self) -> Conversation:
        """Drop every message, keeping id, title and instruction."""
        self.messages = []
        self._touch()
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "updated_at": (self.updated_at or self.created_at).isoformat(),
            "messages": [message.to_dict() for message in self.messages],
            "system_instruction": self.system_instruction,
        }

    def to_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Conversation:
        created_at = _parse_timestamp(data.get("created_at"))
        updated_raw = data.get("updated_at")
        messages = data.get("messages") if isinstance(data.get("messages"), list) else []
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            title=data.get("title"),
            messages=[Message.from_dict(item) for item in messages],
            system_instruction=data.get("system_instruction"),
            created_at=created_at,
            updated_at=_parse_timestamp(updated_raw) if updated_raw else created_at,
        )

    @classmethod
    def from_json(cls, payload: str) -> Conversation:
        return cls.from_dict(json.loads(payload))


__all__ = ["Conversation", "Message"]
