"""gemini_kit - Python client library for the Gemini generative language API."""

from gemini_kit.domain.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConfigurationError,
    ContentBlockedError,
    GeminiError,
    InvalidModelError,
    InvalidStreamFormatError,
    RateLimitError,
    RequestError,
    ResourceNotFoundError,
    ServerError,
    StreamingError,
    StreamingInterruptedError,
    StreamingTimeoutError,
    ValidationError,
)
from gemini_kit.core.config import (
    ClientConfig,
    GeminiConfig,
    ImageConfig,
    Settings,
    get_settings,
    reset_settings,
)
from gemini_kit.domain.value_objects import (
    FunctionCallingMode,
    HarmBlockThreshold,
    HarmCategory,
    Role,
    TaskType,
)
from gemini_kit.domain.requests import ChatRequest, ContentRequest, EmbeddingRequest
from gemini_kit.domain.responses import ChatResponse, ContentResponse, FunctionCall, StreamResponse, Usage
from gemini_kit.domain.embeddings import EmbeddingResponse
from gemini_kit.domain.streaming import StreamAccumulator, StreamMode, StreamSummary
from gemini_kit.domain.conversation import Conversation, Message
from gemini_kit.domain.models import Model, ModelList
from gemini_kit.core.resilience import (
    CircuitBreakerConfig,
    ResilientGeminiClient,
    RetryConfig,
    RetryController,
)
from gemini_kit.client import (
    AsyncGeminiClient,
    Chat,
    ConversationService,
    GeminiClient,
    InMemoryConversationStore,
    ModelInfoService,
    TextStream,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncGeminiClient",
    "AuthenticationError",
    "BadRequestError",
    "Chat",
    "ChatRequest",
    "ChatResponse",
    "CircuitBreakerConfig",
    "ClientConfig",
    "ConfigurationError",
    "ContentBlockedError",
    "ContentRequest",
    "ContentResponse",
    "Conversation",
    "ConversationService",
    "EmbeddingRequest",
    "EmbeddingResponse",
    "FunctionCall",
    "FunctionCallingMode",
    "GeminiClient",
    "GeminiConfig",
    "GeminiError",
    "HarmBlockThreshold",
    "HarmCategory",
    "ImageConfig",
    "InMemoryConversationStore",
    "InvalidModelError",
    "InvalidStreamFormatError",
    "Message",
    "Model",
    "ModelInfoService",
    "ModelList",
    "RateLimitError",
    "RequestError",
    "ResilientGeminiClient",
    "ResourceNotFoundError",
    "RetryConfig",
    "RetryController",
    "Role",
    "ServerError",
    "Settings",
    "StreamAccumulator",
    "StreamMode",
    "StreamResponse",
    "StreamSummary",
    "StreamingError",
    "StreamingInterruptedError",
    "StreamingTimeoutError",
    "TaskType",
    "TextStream",
    "Usage",
    "ValidationError",
    "get_settings",
    "reset_settings",
]
