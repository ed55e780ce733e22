"""Multi-turn chat on top of ``GeminiClient``.

``Chat`` sends a user turn together with the earlier turns of its
``Conversation`` and records the model's answer. ``ConversationService``
manages conversations by id through a ``ConversationStore``; the
in-memory store keeps snapshots, so a loaded conversation is a copy and
changes only persist through ``save``.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from gemini_kit.domain.conversation import Conversation
from gemini_kit.domain.exceptions import GeminiError
from gemini_kit.domain.requests import ChatRequest

if TYPE_CHECKING:
    from gemini_kit.client.sync import GeminiClient
    from gemini_kit.domain.responses import ChatResponse

logger = logging.getLogger(__name__)


@runtime_checkable
class ConversationStore(Protocol):
    """Persistence boundary for conversations, keyed by conversation id."""

    def save(self, conversation: Conversation) -> None: ...

    def load(self, conversation_id: str) -> Conversation | None: ...

    def list(self) -> list[dict[str, Any]]: ...

    def delete(self, conversation_id: str) -> bool: ...


class InMemoryConversationStore:
    """Process-local ``ConversationStore``. Thread-safe."""

    __slots__ = ("_records", "_lock")

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def save(self, conversation: Conversation) -> None:
        with self._lock:
            self._records[conversation.id] = conversation.to_dict()

    def load(self, conversation_id: str) -> Conversation | None:
        with self._lock:
            record = self._records.get(conversation_id)
        return Conversation.from_dict(record) if record is not None else None

    def list(self) -> list[dict[str, Any]]:
        """Summaries (id, title, timestamps, message count), newest update first."""
        with self._lock:
            records = list(self._records.values())
        summaries = [
            {
                "id": record["id"],
                "title": record["title"],
                "created_at": record["created_at"],
                "updated_at": record["updated_at"],
                "message_count": len(record["messages"]),
            }
            for record in records
        ]
        return sorted(summaries, key=lambda summary: summary["updated_at"], reverse=True)

    def delete(self, conversation_id: str) -> bool:
        with self._lock:
            return self._records.pop(conversation_id, None) is not None


class Chat:
    """One conversation bound to a client.

    Attributes:
        conversation: The conversation turns are recorded in.
        client: Client used to send turns.
    """

    __slots__ = ("conversation", "client")

    def __init__(self, client: GeminiClient, conversation: Conversation | None = None) -> None:
        self.client = client
        self.conversation = conversation or Conversation()

    @classmethod
    def new_conversation(
        cls,
        client: GeminiClient,
        title: str | None = None,
        system_instruction: str | None = None,
    ) -> Chat:
        return cls(client, Conversation(title=title, system_instruction=system_instruction))

    def set_system_instruction(self, instruction: str | None) -> Chat:
        self.conversation.system_instruction = instruction
        return self

    def send_message(self, content: str, model: str | None = None, **params: Any) -> ChatResponse:
        """Send a user turn and record the reply.

        The user message is recorded before the call; the model message is
        recorded only when the response has text.

        Args:
            content: User message text.
            model: Model name. None uses the client's default model.
            **params: ChatRequest options. ``system_instruction`` overrides
                the conversation's instruction for this turn.

        Raises:
            ValidationError: If ``content`` or an option is invalid.
            GeminiError: The mapped error kind for transport/API failures.
        """
        if params.get("system_instruction") is None and self.conversation.system_instruction:
            params["system_instruction"] = self.conversation.system_instruction
        request = ChatRequest(content, model, config=self.client.config, **params)

        history = self.conversation.history_wire()
        self.conversation.add_user_message(content)
        response = self.client.chat(request, history)
        if response.has_text:
            self.conversation.add_model_message(response.text)  # type: ignore[arg-type]
        return response


class ConversationService:
    """Create, continue and manage stored conversations.

    Attributes:
        client: Client used to send turns.
        store: Where conversations are kept.
    """

    __slots__ = ("client", "store")

    def __init__(self, client: GeminiClient, store: ConversationStore | None = None) -> None:
        self.client = client
        self.store = store if store is not None else InMemoryConversationStore()

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self.store.load(conversation_id)
        if conversation is None:
            raise GeminiError(f"Conversation not found: {conversation_id}")
        return conversation

    def create_conversation(self, title: str | None = None, system_instruction: str | None = None) -> Conversation:
        conversation = Conversation(title=title, system_instruction=system_instruction)
        self.store.save(conversation)
        logger.debug("Created conversation %s", conversation.id)
        return conversation

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self.store.load(conversation_id)

    def send_message(
        self,
        conversation_id: str,
        content: str,
        model: str | None = None,
        **params: Any,
    ) -> tuple[ChatResponse, Conversation]:
        """Send a turn in a stored conversation and save the result.

        Returns:
            The response and the updated conversation.

        Raises:
            GeminiError: If the conversation does not exist, or the mapped
                error kind when the call fails (nothing is saved then).
        """
        conversation = self._require(conversation_id)
        response = Chat(self.client, conversation).send_message(content, model, **params)
        self.store.save(conversation)
        return response, conversation

    def list_conversations(self) -> list[dict[str, Any]]:
        return self.store.list()

    def delete_conversation(self, conversation_id: str) -> bool:
        return self.store.delete(conversation_id)

    def update_conversation_title(self, conversation_id: str, title: str | None) -> Conversation:
        conversation = self._require(conversation_id)
        conversation.set_title(title)
        self.store.save(conversation)
        return conversation

    def clear_conversation(self, conversation_id: str) -> Conversation:
        conversation = self._require(conversation_id)
        conversation.clear()
        self.store.save(conversation)
        return conversation


__all__ = [
    "Chat",
    "ConversationService",
    "ConversationStore",
    "InMemoryConversationStore",
]
