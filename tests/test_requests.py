"""
Behavioral tests for request models and their wire shapes.
"""

import base64
import logging

import pytest

from gemini_kit import (
    ChatRequest,
    ContentRequest,
    EmbeddingRequest,
    FunctionCallingMode,
    GeminiConfig,
    HarmBlockThreshold,
    HarmCategory,
    TaskType,
    ValidationError,
)
from gemini_kit.domain.requests import content_endpoint, model_path, strip_models_prefix
from gemini_kit.domain.value_objects import SafetySetting, Tool

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16

WEATHER_FUNCTION = {
    "name": "get_weather",
    "description": "Get the weather for a city",
    "parameters": {"type": "object", "properties": {"city": {"type": "string"}}, "required": ["city"]},
}


@pytest.fixture
def config():
    return GeminiConfig(api_key="k", default_model="default-model", default_embedding_model="default-embedding")


class TestModelPaths:
    """Tests for model name helpers."""

    def test_prefix_is_optional(self):
        """Test that both spellings resolve to the same path."""
        assert model_path("gemini-2.0-flash") == "models/gemini-2.0-flash"
        assert model_path("models/gemini-2.0-flash") == "models/gemini-2.0-flash"
        assert strip_models_prefix("models/x") == "x"

    def test_content_endpoints(self):
        """Test the generate and stream endpoints."""
        assert content_endpoint("m") == "models/m:generateContent"
        assert content_endpoint("models/m", stream=True) == "models/m:streamGenerateContent"


class TestContentRequest:
    """Tests for ContentRequest construction and serialization."""

    def test_end_to_end_wire_shape(self, config):
        """Test the minimal prompt-plus-temperature body."""
        request = ContentRequest("Tell me a story", "model-x", temperature=0.7, config=config)
        assert request.to_wire_shape() == {
            "contents": [{"parts": [{"text": "Tell me a story"}]}],
            "generationConfig": {"temperature": 0.7},
        }

    def test_absent_fields_are_omitted(self, config):
        """Test that only the contents key appears for a bare prompt."""
        body = ContentRequest("Hi", config=config).to_wire_shape()
        assert body == {"contents": [{"parts": [{"text": "Hi"}]}]}

    def test_default_model_comes_from_config(self, config):
        """Test that the configured default model is used."""
        assert ContentRequest("Hi", config=config).model == "default-model"

    def test_models_prefix_is_stripped(self, config):
        """Test that the stored model has no resource prefix."""
        assert ContentRequest("Hi", "models/gemini-pro", config=config).model == "gemini-pro"

    @pytest.mark.parametrize(
        ("prompt", "message"),
        [
            (None, "Prompt cannot be None"),
            ("", "Prompt cannot be empty"),
            (123, "Prompt must be a string"),
        ],
    )
    def test_invalid_prompt(self, config, prompt, message):
        """Test that the prompt is validated before anything else."""
        with pytest.raises(ValidationError, match=message):
            ContentRequest(prompt, config=config)

    def test_empty_model_is_rejected(self, config):
        """Test that an empty model name fails validation."""
        with pytest.raises(ValidationError, match="Model name cannot be empty"):
            ContentRequest("Hi", "", config=config)

    def test_invalid_parameter_is_rejected(self, config):
        """Test that generation parameters are checked at construction."""
        with pytest.raises(ValidationError, match="Temperature must be at most 1.0"):
            ContentRequest("Hi", temperature=1.5, config=config)

    @pytest.mark.parametrize("param", ["temperature", "top_p"])
    def test_nan_parameter_is_rejected(self, config, param):
        """Test that NaN never reaches the wire as a bare JSON token."""
        with pytest.raises(ValidationError, match="must be a finite number"):
            ContentRequest("Hi", config=config, **{param: float("nan")})

    def test_all_parameters_serialized(self, config):
        """Test every generation field and the system instruction."""
        request = ContentRequest(
            "Hi",
            config=config,
            temperature=0.2,
            max_tokens=64,
            top_p=0.8,
            top_k=10,
            stop_sequences=["STOP"],
            system_instruction="Be terse",
        )
        body = request.to_wire_shape()
        assert body["generationConfig"] == {
            "temperature": 0.2,
            "maxOutputTokens": 64,
            "topP": 0.8,
            "topK": 10,
            "stopSequences": ["STOP"],
        }
        assert body["systemInstruction"] == {"parts": [{"text": "Be terse"}]}

    def test_wire_shape_returns_fresh_dict(self, config):
        """Test that mutating one body does not affect the next."""
        request = ContentRequest("Hi", config=config, temperature=0.1)
        first = request.to_wire_shape()
        first["generationConfig"]["temperature"] = 0.9
        assert request.to_wire_shape()["generationConfig"]["temperature"] == 0.1


class TestMultimodalContent:
    """Tests for text and image parts."""

    def test_single_text_part_is_not_multimodal(self, config):
        """Test the multimodal flag for a plain prompt."""
        assert not ContentRequest("Hi", config=config).is_multimodal

    def test_extra_text_part_is_multimodal(self, config):
        """Test that a second part makes the request multimodal."""
        request = ContentRequest("Hi", config=config).add_text("more")
        assert request.is_multimodal
        assert request.to_wire_shape()["contents"][0]["parts"] == [{"text": "Hi"}, {"text": "more"}]

    def test_image_part_is_base64_encoded(self, config):
        """Test the inlineData wire shape."""
        request = ContentRequest("Describe", config=config).add_image_from_bytes(PNG_BYTES, "image/png")
        parts = request.to_wire_shape()["contents"][0]["parts"]
        assert parts[1] == {
            "inlineData": {"mimeType": "image/png", "data": base64.b64encode(PNG_BYTES).decode("ascii")}
        }
        assert request.is_multimodal

    def test_attached_image_is_logged(self, config, caplog):
        """Test that attaching an image emits a debug record with its size."""
        with caplog.at_level(logging.DEBUG, logger="gemini_kit.domain.requests"):
            ContentRequest("Describe", config=config).add_image_from_bytes(PNG_BYTES, "image/png")
        assert f"Attached image/png image ({len(PNG_BYTES)} bytes) as part 2" in caplog.messages

    def test_parts_keep_insertion_order(self, config):
        """Test that parts are serialized in the order they were added."""
        request = (
            ContentRequest("first", config=config)
            .add_image_from_bytes(PNG_BYTES, "image/png")
            .add_text("third")
        )
        parts = request.to_wire_shape()["contents"][0]["parts"]
        assert parts[0] == {"text": "first"}
        assert "inlineData" in parts[1]
        assert parts[2] == {"text": "third"}

    def test_unsupported_mime_type(self, config):
        """Test that only the four image types are accepted."""
        with pytest.raises(ValidationError, match="MIME type must be one of"):
            ContentRequest("Hi", config=config).add_image_from_bytes(PNG_BYTES, "image/bmp")

    def test_empty_image(self, config):
        """Test that empty image data is rejected."""
        with pytest.raises(ValidationError, match="Image data cannot be empty"):
            ContentRequest("Hi", config=config).add_image_from_bytes(b"", "image/png")

    def test_oversized_image(self, config):
        """Test that the size cap is enforced."""
        request = ContentRequest("Hi", config=config, max_image_size_bytes=1024)
        with pytest.raises(ValidationError, match="Image size exceeds maximum"):
            request.add_image_from_bytes(b"x" * 2048, "image/jpeg")

    def test_empty_text_part(self, config):
        """Test that an empty text part is rejected."""
        with pytest.raises(ValidationError, match="Text content cannot be empty"):
            ContentRequest("Hi", config=config).add_text("")


class TestToolsAndModes:
    """Tests for tools, tool config, JSON mode and safety settings."""

    def test_function_declaration_wire_shape(self, config):
        """Test the functionDeclarations entry."""
        request = ContentRequest("Weather?", config=config).add_function(**WEATHER_FUNCTION)
        assert request.to_wire_shape()["tools"] == [{"functionDeclarations": WEATHER_FUNCTION}]

    def test_function_parameters_need_type(self, config):
        """Test that a parameters schema without a type is rejected."""
        with pytest.raises(ValidationError, match="must include a 'type' field"):
            ContentRequest("Hi", config=config).add_function("f", "does f", {"properties": {}})

    def test_function_name_required(self, config):
        """Test that a function needs a name."""
        with pytest.raises(ValidationError, match="Function name cannot be empty"):
            ContentRequest("Hi", config=config).add_function("", "desc", {"type": "object"})

    def test_tool_needs_a_payload(self):
        """Test that an empty tool is rejected."""
        with pytest.raises(ValidationError, match="Tool must define"):
            Tool()

    def test_code_execution_added_once(self, config):
        """Test that enabling code execution twice adds one tool."""
        request = ContentRequest("Hi", config=config).enable_code_execution().enable_code_execution()
        assert request.to_wire_shape()["tools"] == [{"code_execution": {}}]

    def test_tool_config_mode(self, config):
        """Test the toolConfig wire shape."""
        request = ContentRequest("Hi", config=config).set_tool_config(FunctionCallingMode.MANUAL)
        assert request.to_wire_shape()["toolConfig"] == {"function_calling_config": {"mode": "MANUAL"}}

    def test_tool_config_rejects_unknown_mode(self, config):
        """Test that only AUTO, MANUAL and NONE are accepted."""
        with pytest.raises(ValidationError, match="Execution mode must be one of"):
            ContentRequest("Hi", config=config).set_tool_config("SOMETIMES")

    def test_json_mode_sets_mime_type(self, config):
        """Test that JSON mode adds responseMimeType even without parameters."""
        body = ContentRequest("Hi", config=config).enable_json_mode().to_wire_shape()
        assert body["generationConfig"] == {"responseMimeType": "application/json"}

    def test_json_mode_with_schema(self, config):
        """Test that a caller schema is sent as responseSchema."""
        schema = {"type": "object", "properties": {"name": {"type": "string"}}}
        body = ContentRequest("Hi", config=config, temperature=0.1).enable_json_mode(schema).to_wire_shape()
        assert body["generationConfig"] == {
            "temperature": 0.1,
            "responseMimeType": "application/json",
            "responseSchema": schema,
        }

    def test_disable_json_mode(self, config):
        """Test that disabling JSON mode removes the config."""
        request = ContentRequest("Hi", config=config).enable_json_mode({"type": "object"}).disable_json_mode()
        assert "generationConfig" not in request.to_wire_shape()

    def test_safety_setting_replaces_same_category(self, config):
        """Test that one setting is kept per category."""
        request = (
            ContentRequest("Hi", config=config)
            .add_safety_setting(HarmCategory.HARASSMENT, HarmBlockThreshold.BLOCK_NONE)
            .add_safety_setting("HARM_CATEGORY_HARASSMENT", "BLOCK_ONLY_HIGH")
        )
        assert request.to_wire_shape()["safetySettings"] == [
            {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_ONLY_HIGH"}
        ]

    def test_block_all_covers_every_category(self, config):
        """Test the strict safety preset."""
        settings = ContentRequest("Hi", config=config).block_all_harmful_content().to_wire_shape()["safetySettings"]
        assert {entry["category"] for entry in settings} == {str(category) for category in HarmCategory}
        assert {entry["threshold"] for entry in settings} == {"BLOCK_LOW_AND_ABOVE"}

    def test_remove_safety_settings(self, config):
        """Test that clearing safety settings omits the key."""
        request = ContentRequest("Hi", config=config).block_only_high_risk_content().remove_safety_settings()
        assert "safetySettings" not in request.to_wire_shape()

    def test_invalid_safety_category(self):
        """Test that unknown categories name the allowed values."""
        with pytest.raises(ValidationError, match="Invalid harm category: HARM_CATEGORY_UNKNOWN"):
            SafetySetting("HARM_CATEGORY_UNKNOWN", "BLOCK_NONE")

    def test_invalid_safety_threshold(self):
        """Test that unknown thresholds are rejected."""
        with pytest.raises(ValidationError, match="Invalid threshold level: SOMETIMES"):
            SafetySetting("HARM_CATEGORY_HARASSMENT", "SOMETIMES")


class TestChatRequest:
    """Tests for ChatRequest."""

    def test_history_precedes_new_turn(self, config):
        """Test that prior turns come first and the new turn is last."""
        history = [
            {"role": "user", "parts": [{"text": "Hi"}]},
            {"role": "model", "parts": [{"text": "Hello!"}]},
        ]
        body = ChatRequest("How are you?", config=config).to_wire_shape(history)
        assert body["contents"] == history + [{"role": "user", "parts": [{"text": "How are you?"}]}]

    def test_parameters_and_instruction(self, config):
        """Test generationConfig and systemInstruction on a chat turn."""
        body = ChatRequest("Hi", config=config, max_tokens=10, system_instruction="Pirate").to_wire_shape()
        assert body["generationConfig"] == {"maxOutputTokens": 10}
        assert body["systemInstruction"] == {"parts": [{"text": "Pirate"}]}

    def test_empty_content_is_rejected(self, config):
        """Test that an empty message fails."""
        with pytest.raises(ValidationError, match="Content cannot be empty"):
            ChatRequest("", config=config)

    def test_user_id_must_be_string(self, config):
        """Test the user id type check."""
        with pytest.raises(ValidationError, match="User ID must be a string"):
            ChatRequest("Hi", user_id=7, config=config)


class TestEmbeddingRequest:
    """Tests for EmbeddingRequest."""

    def test_single_text_wire_shape(self, config):
        """Test the embedContent body."""
        request = EmbeddingRequest("hello", config=config, dimensions=256, title="Doc")
        assert not request.is_batch
        assert request.endpoint == "models/default-embedding:embedContent"
        assert request.to_wire_shape() == {
            "content": {"parts": [{"text": "hello"}], "title": "Doc"},
            "taskType": "RETRIEVAL_DOCUMENT",
            "dimensions": 256,
        }

    def test_batch_wire_shape(self, config):
        """Test the batchEmbedContents body."""
        request = EmbeddingRequest(["a", "b"], "emb", task_type=TaskType.CLUSTERING, config=config)
        assert request.is_batch
        assert request.endpoint == "models/emb:batchEmbedContents"
        assert request.to_wire_shape() == {
            "requests": [
                {"model": "models/emb", "content": {"parts": [{"text": "a"}]}, "taskType": "CLUSTERING"},
                {"model": "models/emb", "content": {"parts": [{"text": "b"}]}, "taskType": "CLUSTERING"},
            ]
        }

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            (None, "Text cannot be None"),
            ("", "Text cannot be empty"),
            ([], "Text array cannot be empty"),
            (["ok", ""], "Text at index 1 cannot be None or empty"),
            (42, "Text must be a string or a list of strings"),
        ],
    )
    def test_invalid_text(self, config, text, message):
        """Test input validation for single and batch requests."""
        with pytest.raises(ValidationError, match=message):
            EmbeddingRequest(text, config=config)

    def test_unknown_task_type(self, config):
        """Test that the task type is validated."""
        with pytest.raises(ValidationError, match="Task type must be one of"):
            EmbeddingRequest("hi", config=config, task_type="SUMMARIZE")

    def test_dimensions_must_be_positive(self, config):
        """Test that dimensions are validated."""
        with pytest.raises(ValidationError, match="Dimensions must be positive"):
            EmbeddingRequest("hi", config=config, dimensions=0)
