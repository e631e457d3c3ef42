"""Pydantic request models for the Memeforge API.

Models
------
GenerateRequest
    Payload for ``POST /api/generate`` — the prompt for one batch run.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class GenerateRequest(BaseModel):
    """Request body for the ``POST /api/generate`` endpoint.

    Attributes:
        prompt: Meme description as typed by the user.  Prompts that are not
            plain English letters get the style suffix appended server-side.
        include_images: Embed base64 image payloads in every streamed
            snapshot.  ``False`` streams only status and progress.
    """

    prompt: str = Field(
        ...,
        max_length=2000,
        description="Meme description (e.g. 'a cute dog smiling, cartoon style').",
    )
    include_images: bool = Field(
        default=True,
        description="Embed base64 image payloads in streamed snapshots.",
    )

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, value: str) -> str:
        """Reject prompts that are empty or whitespace only."""
        if not value.strip():
            raise ValueError("prompt must not be blank")
        return value
