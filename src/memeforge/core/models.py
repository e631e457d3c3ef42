"""Data models for generation runs.

All models here are transient: they live in process memory for the duration
of one run and are never persisted.  :class:`GenerationJob` is immutable; the
orchestrator publishes a new snapshot on every state transition so readers
never observe a half-updated job.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from .errors import GenerationFailure

logger = logging.getLogger(__name__)


class AttemptOutcome(str, Enum):
    """Outcome of a single network attempt."""

    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient-failure"
    TERMINAL_FAILURE = "terminal-failure"


class JobStatus(str, Enum):
    """Lifecycle of a generation run: pending → running → succeeded | failed."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class InferenceRequest:
    """Descriptor of one HTTP request to the inference endpoint."""

    url: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    json_body: Any = None


@dataclass(frozen=True)
class RequestAttempt:
    """Record of one network attempt within a retry budget.

    Attributes:
        index: 0-based attempt ordinal
        timestamp: When the attempt was issued
        outcome: Success, transient failure (will retry) or terminal failure
        cause: Error text for failed attempts
    """

    index: int
    timestamp: datetime
    outcome: AttemptOutcome
    cause: str | None = None


@dataclass(frozen=True)
class ImageResult:
    """One generated image and its position in the batch."""

    index: int
    data: bytes

    @property
    def base64(self) -> str:
        """Image payload encoded as base64 text."""
        return base64.b64encode(self.data).decode("ascii")

    @property
    def filename(self) -> str:
        """Download filename; the visible ordinal is 1-based."""
        return download_filename(self.index)

    @property
    def data_url(self) -> str:
        """Inline ``data:`` URL for direct rendering in a browser."""
        return f"data:image/png;base64,{self.base64}"


@dataclass(frozen=True)
class GenerationJob:
    """Snapshot of one user-triggered generation run.

    Attributes
    ----------
    prompt : str
        Prompt as typed by the user
    normalized_prompt : str
        Prompt actually sent to the model (style suffix applied if needed)
    target_count : int
        Number of images requested
    images : tuple[ImageResult, ...]
        Images produced so far, in generation order
    progress : int
        Completion percentage published with this snapshot (0-100)
    status : JobStatus
        Current lifecycle state
    failure : GenerationFailure | None
        Classified terminal failure, set only when status is FAILED
    """

    prompt: str
    normalized_prompt: str
    target_count: int = 4
    images: tuple[ImageResult, ...] = ()
    progress: int = 0
    status: JobStatus = JobStatus.PENDING
    failure: GenerationFailure | None = None

    @property
    def in_flight(self) -> bool:
        """True while the run is still producing images."""
        return self.status is JobStatus.RUNNING

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)

    def started(self) -> GenerationJob:
        """Return the running snapshot of this job."""
        return replace(self, status=JobStatus.RUNNING, progress=0, failure=None)

    def with_image(self, image: ImageResult) -> GenerationJob:
        """Return a snapshot with ``image`` appended and progress advanced.

        Raises:
            ValueError: If the image is out of order or the batch is full
        """
        if len(self.images) >= self.target_count:
            raise ValueError(f"Batch already holds {self.target_count} images")
        if image.index != len(self.images):
            raise ValueError(f"Expected image {len(self.images)}, got image {image.index}")

        images = self.images + (image,)
        progress = len(images) * 100 // self.target_count
        return replace(self, images=images, progress=progress)

    def succeeded(self) -> GenerationJob:
        """Return the terminal success snapshot (progress resets to 0)."""
        return replace(self, status=JobStatus.SUCCEEDED, progress=0)

    def failed(self, failure: GenerationFailure) -> GenerationJob:
        """Return the terminal failure snapshot, keeping published images."""
        return replace(self, status=JobStatus.FAILED, progress=0, failure=failure)

    def to_dict(self, include_images: bool = True) -> dict:
        """Serialise the snapshot for JSON transport.

        Args:
            include_images: Embed base64 payloads (False sends only the count)

        Returns:
            JSON-serialisable dictionary
        """
        data = {
            "prompt": self.prompt,
            "normalized_prompt": self.normalized_prompt,
            "target_count": self.target_count,
            "image_count": len(self.images),
            "progress": self.progress,
            "status": self.status.value,
            "in_flight": self.in_flight,
            "error": self.failure.to_dict() if self.failure else None,
        }
        if include_images:
            data["images"] = [
                {"index": img.index, "filename": img.filename, "base64": img.base64}
                for img in self.images
            ]
        return data


def download_filename(index: int, prefix: str = "meme") -> str:
    """Build the download filename for a 0-based image index.

    Example:
        >>> download_filename(2)
        'meme_3.png'
    """
    return f"{prefix}_{index + 1}.png"
