"""Client interfaces for the Gemini API."""

from gemini_kit.client.async_client import AsyncGeminiClient
from gemini_kit.client.conversations import (
    Chat,
    ConversationService,
    ConversationStore,
    InMemoryConversationStore,
)
from gemini_kit.client.model_info import ModelInfoService
from gemini_kit.client.sync import GeminiClient, TextStream
from gemini_kit.client.transport import GeminiTransport

__all__ = [
    "AsyncGeminiClient",
    "Chat",
    "ConversationService",
    "ConversationStore",
    "GeminiClient",
    "GeminiTransport",
    "InMemoryConversationStore",
    "ModelInfoService",
    "TextStream",
]
