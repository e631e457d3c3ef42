"""Validation utilities for Memeforge UI inputs."""

import logging

from .models import MAX_PROMPT_LENGTH

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """User-friendly validation error.

    This exception is raised when user input fails validation.
    The message is intended to be displayed directly to the user.
    """

    pass


def validate_prompt(prompt: str | None, max_length: int = MAX_PROMPT_LENGTH) -> str:
    """Validate the meme prompt.

    Args:
        prompt: Prompt text from the UI
        max_length: Maximum allowed prompt length in characters

    Returns:
        The prompt, unchanged

    Raises:
        ValidationError: If the prompt is empty or too long
    """
    if prompt is None or not prompt.strip():
        raise ValidationError("Please describe the meme you want to generate")

    if len(prompt) > max_length:
        raise ValidationError(
            f"Prompt is too long ({len(prompt)} characters). Maximum is {max_length} characters."
        )

    return prompt


def validate_image_index(index: int | None, available: int) -> int:
    """Validate a gallery selection index.

    Args:
        index: Selected index from the gallery, 0-based
        available: Number of images currently shown

    Returns:
        The validated index

    Raises:
        ValidationError: If nothing is selected or the index is out of range
    """
    if index is None:
        raise ValidationError("Select an image to download")
    if not 0 <= index < available:
        raise ValidationError(f"Image {index + 1} is not available")
    return index
