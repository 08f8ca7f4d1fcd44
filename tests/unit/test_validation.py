"""Unit tests for prompt validation."""

import pytest

from toolforge.client.validation import DEFAULT_MAX_PROMPT_LENGTH, ValidationError, validate_prompt


class TestValidationError:
    """Tests for ValidationError exception."""

    def test_validation_error_is_exception(self):
        assert issubclass(ValidationError, Exception)

    def test_validation_error_message(self):
        msg = "Custom validation error"
        with pytest.raises(ValidationError, match=msg):
            raise ValidationError(msg)


class TestValidatePrompt:
    """Tests for validate_prompt function."""

    def test_valid_prompt_returned_trimmed(self):
        assert validate_prompt("  a sunset over mountains  ") == "a sunset over mountains"

    def test_empty_prompt_rejected(self):
        with pytest.raises(ValidationError, match="Please enter a prompt"):
            validate_prompt("")

    def test_none_prompt_rejected(self):
        with pytest.raises(ValidationError, match="Please enter a prompt"):
            validate_prompt(None)

    def test_whitespace_only_rejected(self):
        with pytest.raises(ValidationError, match="Please enter a prompt"):
            validate_prompt(" \n\t ")

    def test_max_length_accepted(self):
        prompt = "x" * DEFAULT_MAX_PROMPT_LENGTH
        assert validate_prompt(prompt) == prompt

    def test_over_max_length_rejected_not_truncated(self):
        with pytest.raises(ValidationError, match="at most 300"):
            validate_prompt("x" * 301)

    def test_length_measured_after_trimming(self):
        prompt = "  " + "x" * 300 + "  "
        assert len(validate_prompt(prompt)) == 300

    def test_custom_bound(self):
        with pytest.raises(ValidationError):
            validate_prompt("abcdef", max_length=5)
