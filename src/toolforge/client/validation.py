"""Validation utilities for ToolForge prompt intake."""

import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_PROMPT_LENGTH = 300


class ValidationError(Exception):
    """User-friendly validation error.

    This exception is raised when user input fails validation.
    The message is intended to be displayed directly to the user.
    """

    pass


def validate_prompt(prompt: str | None, max_length: int = DEFAULT_MAX_PROMPT_LENGTH) -> str:
    """Validate a prompt before a request is created.

    Over-long prompts are rejected rather than truncated, so the text that
    is paid for is exactly the text that is generated.

    Args:
        prompt: Raw user text
        max_length: Maximum length after trimming

    Returns:
        The trimmed prompt

    Raises:
        ValidationError: If the prompt is empty, whitespace-only or too long
    """
    text = (prompt or "").strip()
    if not text:
        raise ValidationError("Please enter a prompt")
    if len(text) > max_length:
        logger.debug(f"Rejected prompt of length {len(text)} (max {max_length})")
        raise ValidationError(f"Prompt must be at most {max_length} characters, got {len(text)}")
    return text
