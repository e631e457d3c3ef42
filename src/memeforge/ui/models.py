"""Data models for Memeforge UI session state."""

import logging
from dataclasses import dataclass, field
from typing import Any

from memeforge.core.models import GenerationJob, ImageResult

logger = logging.getLogger(__name__)


@dataclass
class UIState:
    """Session state for the Gradio UI.

    Each user gets their own UIState instance.  The state only remembers the
    latest job snapshot published by the orchestrator; a new run replaces it.

    Attributes
    ----------
    job : GenerationJob | None
        Latest snapshot of the current (or last) generation run
    orchestrator : Any | None
        BatchGenerationOrchestrator instance, created lazily
    gallery_indices : list[int]
        Job index shown at each gallery position (undecodable images are skipped)
    last_download : str | None
        Path of the most recently downloaded image
    """

    job: GenerationJob | None = None
    orchestrator: Any | None = None  # BatchGenerationOrchestrator instance
    last_download: str | None = None
    gallery_indices: list[int] = field(default_factory=list)

    @property
    def is_generating(self) -> bool:
        """True while a run is in flight."""
        return self.job is not None and self.job.in_flight

    def job_index_for(self, position: int) -> int:
        """Map a gallery position to the job index of the image shown there."""
        if 0 <= position < len(self.gallery_indices):
            return self.gallery_indices[position]
        return position

    def image_at(self, index: int) -> ImageResult | None:
        """Return the image at ``index`` of the current job, if any."""
        if self.job is None or not 0 <= index < len(self.job.images):
            return None
        return self.job.images[index]

    def __repr__(self) -> str:
        """String representation for debugging."""
        status = self.job.status.value if self.job else "idle"
        images = len(self.job.images) if self.job else 0
        return f"UIState(status={status}, images={images})"


# UI Constants
PROMPT_HINT = "Tip: English prompts work best, e.g. a cute dog smiling, cartoon style"
PROMPT_PLACEHOLDER = "Describe the meme you want..."
MAX_PROMPT_LENGTH = 2000
