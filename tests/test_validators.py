"""
Behavioral tests for the primitive validators and generation parameters.
"""

import pytest

from gemini_kit import ValidationError
from gemini_kit.core.validators import (
    INVALID_ARGUMENT,
    validate_allowed_values,
    validate_array,
    validate_integer,
    validate_not_empty,
    validate_numeric,
    validate_positive_integer,
    validate_present,
    validate_probability,
    validate_string,
    validate_string_array,
)
from gemini_kit.domain.value_objects import GenerationParameters


class TestPrimitiveValidators:
    """Tests for the shared validation helpers."""

    @pytest.mark.parametrize(
        "validator",
        [
            validate_string,
            validate_not_empty,
            validate_numeric,
            validate_integer,
            validate_positive_integer,
            validate_probability,
            validate_array,
            validate_string_array,
        ],
    )
    def test_none_means_not_provided(self, validator):
        """Test that optional validators accept None."""
        validator(None, "Field")

    def test_present_rejects_none(self):
        """Test that a required value cannot be None."""
        with pytest.raises(ValidationError) as exc_info:
            validate_present(None, "Prompt")
        assert exc_info.value.message == "Prompt cannot be None"
        assert exc_info.value.code == INVALID_ARGUMENT

    def test_string_type_is_checked(self):
        """Test that non-strings are rejected with the field name."""
        with pytest.raises(ValidationError, match="Prompt must be a string"):
            validate_string(42, "Prompt")

    def test_empty_string_is_rejected(self):
        """Test that an empty string is rejected."""
        with pytest.raises(ValidationError, match="Title cannot be empty"):
            validate_not_empty("", "Title")

    def test_numeric_bounds_are_inclusive(self):
        """Test that the bounds themselves are accepted."""
        validate_numeric(0.0, "Temperature", min_value=0.0, max_value=1.0)
        validate_numeric(1.0, "Temperature", min_value=0.0, max_value=1.0)

    def test_numeric_below_minimum(self):
        """Test that values below the minimum name the bound."""
        with pytest.raises(ValidationError, match="Temperature must be at least 0.0"):
            validate_numeric(-0.1, "Temperature", min_value=0.0)

    def test_numeric_above_maximum(self):
        """Test that values above the maximum name the bound."""
        with pytest.raises(ValidationError, match="Top-p must be at most 1.0"):
            validate_probability(1.5, "Top-p")

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_numbers_are_rejected(self, value):
        """Test that NaN and infinities fail even though no bound rejects them."""
        with pytest.raises(ValidationError, match="Temperature must be a finite number"):
            validate_numeric(value, "Temperature", min_value=0.0, max_value=1.0)

    def test_booleans_are_not_numbers(self):
        """Test that True/False are not accepted as numbers."""
        with pytest.raises(ValidationError, match="must be a number"):
            validate_numeric(True, "Temperature")

    def test_integer_rejects_float(self):
        """Test that floats are not integers."""
        with pytest.raises(ValidationError, match="Max tokens must be an integer"):
            validate_integer(1.5, "Max tokens")

    @pytest.mark.parametrize("value", [0, -3])
    def test_positive_integer_rejects_non_positive(self, value):
        """Test that zero and negatives are rejected."""
        with pytest.raises(ValidationError, match="Top-k must be positive"):
            validate_positive_integer(value, "Top-k")

    def test_array_rejects_string(self):
        """Test that a string is not an array."""
        with pytest.raises(ValidationError, match="Stop sequences must be an array"):
            validate_array("stop", "Stop sequences")

    def test_string_array_reports_index(self):
        """Test that the failing element is reported by index."""
        with pytest.raises(ValidationError, match=r"Stop sequences\[1\] must be a string"):
            validate_string_array(["ok", 3], "Stop sequences")

    def test_allowed_values_lists_choices(self):
        """Test that the allowed values appear in the message."""
        with pytest.raises(ValidationError, match="Mode must be one of: a, b"):
            validate_allowed_values("c", "Mode", ["a", "b"])


class TestGenerationParameters:
    """Tests for GenerationParameters validation and wire output."""

    def test_empty_parameters_produce_no_config(self):
        """Test that nothing is emitted when nothing is set."""
        params = GenerationParameters()
        assert params.is_empty
        assert params.generation_config() == {}
        assert params.system_instruction_wire() is None

    def test_wire_keys_are_renamed(self):
        """Test that fields map to their wire names."""
        params = GenerationParameters(temperature=0.5, max_tokens=100, top_p=0.9, top_k=40, stop_sequences=["END"])
        assert params.generation_config() == {
            "temperature": 0.5,
            "maxOutputTokens": 100,
            "topP": 0.9,
            "topK": 40,
            "stopSequences": ["END"],
        }

    def test_stop_sequences_are_frozen(self):
        """Test that stop sequences are copied into a tuple."""
        source = ["a"]
        params = GenerationParameters(stop_sequences=source)
        source.append("b")
        assert params.stop_sequences == ("a",)

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"temperature": 1.1}, "Temperature must be at most 1.0"),
            ({"temperature": -0.5}, "Temperature must be at least 0.0"),
            ({"max_tokens": 0}, "Max tokens must be positive"),
            ({"top_p": 2}, "Top-p must be at most 1.0"),
            ({"top_p": float("nan")}, "Top-p must be a finite number"),
            ({"top_k": -1}, "Top-k must be positive"),
            ({"stop_sequences": [""]}, r"Stop sequences\[0\] cannot be empty"),
            ({"system_instruction": ""}, "System instruction cannot be empty"),
        ],
    )
    def test_invalid_values_are_rejected(self, kwargs, message):
        """Test that each constraint is enforced at construction."""
        with pytest.raises(ValidationError, match=message):
            GenerationParameters(**kwargs)

    def test_system_instruction_wire_shape(self):
        """Test the systemInstruction wire object."""
        params = GenerationParameters(system_instruction="Be brief")
        assert params.system_instruction_wire() == {"parts": [{"text": "Be brief"}]}
        assert params.is_empty
