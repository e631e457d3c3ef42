"""Meme generation handlers."""

import logging
from collections.abc import AsyncIterator

from PIL import Image

from memeforge.core.config import config
from memeforge.core.downloads import DownloadError, decode_image
from memeforge.core.models import GenerationJob, JobStatus
from memeforge.core.orchestrator import BatchGenerationOrchestrator

from ..models import UIState
from ..validation import ValidationError, validate_prompt

logger = logging.getLogger(__name__)

READY_MESSAGE = "*Ready to generate memes*"


def get_orchestrator(state: UIState) -> BatchGenerationOrchestrator:
    """Return the session's orchestrator, creating it on first use.

    Args:
        state: UI state

    Returns:
        BatchGenerationOrchestrator bound to the global configuration
    """
    if state.orchestrator is None:
        logger.info("Creating BatchGenerationOrchestrator for session")
        state.orchestrator = BatchGenerationOrchestrator(config)
    return state.orchestrator


def render_gallery(
    job: GenerationJob | None, state: UIState | None = None
) -> list[tuple[Image.Image, str]]:
    """Convert the job's images into Gradio gallery items.

    Images that cannot be decoded are skipped with a warning so one bad
    payload does not hide the others.  When ``state`` is given, the job index
    behind each gallery position is stored on it so a later selection maps
    back to the right image.

    Args:
        job: Current job snapshot, or None
        state: UI state receiving the position → job index mapping

    Returns:
        List of (image, caption) tuples in generation order
    """
    items = []
    indices = []
    images = job.images if job is not None else ()
    for image in images:
        try:
            items.append((decode_image(image.data), f"Meme {image.index + 1}"))
        except DownloadError as e:
            logger.warning(f"Could not display image {image.index + 1}: {e}")
            continue
        indices.append(image.index)

    if state is not None:
        state.gallery_indices = indices
    return items


def format_status(job: GenerationJob | None) -> str:
    """Build the status line shown under the generate button.

    Args:
        job: Current job snapshot, or None

    Returns:
        Markdown status text
    """
    if job is None or job.status is JobStatus.PENDING:
        return READY_MESSAGE

    done = len(job.images)
    if job.status is JobStatus.RUNNING:
        return f"⏳ **Generating... {job.progress}%** ({done}/{job.target_count} images)"

    if job.status is JobStatus.SUCCEEDED:
        return (
            f"✅ **Generation complete!** {done} memes ready. "
            f"Click an image to download it."
        )

    if done:
        return f"❌ **Generation failed** after {done} of {job.target_count} images"
    return "❌ **Generation failed**"


def format_error(job: GenerationJob | None) -> str:
    """Build the error panel text for a failed job.

    Args:
        job: Current job snapshot, or None

    Returns:
        Markdown error text, or an empty string if there is no failure
    """
    if job is None or job.failure is None:
        return ""

    failure = job.failure
    # Markdown needs two trailing spaces for a hard line break.
    message = failure.message.replace("\n", "  \n")
    text = f"❌ {message}"
    if failure.hint:
        text += f"\n\n*{failure.hint}*"
    return text


async def generate_memes(
    prompt: str, state: UIState
) -> AsyncIterator[tuple[list[tuple[Image.Image, str]], str, str, UIState]]:
    """Generate a batch of memes, streaming each snapshot to the UI.

    Every yielded tuple refreshes the gallery, the status line and the error
    panel, so finished images appear while the rest are still generating.

    Args:
        prompt: Prompt text from the UI
        state: UI state

    Yields:
        Tuple of (gallery_items, status_markdown, error_markdown, updated_state)
    """
    if state is None:
        state = UIState()

    try:
        validate_prompt(prompt)
    except ValidationError as e:
        logger.warning(f"Validation error: {e}")
        yield render_gallery(state.job, state), format_status(state.job), f"❌ {e}", state
        return

    orchestrator = get_orchestrator(state)

    try:
        async for job in orchestrator.stream(prompt):
            state.job = job
            yield render_gallery(job, state), format_status(job), format_error(job), state
    except Exception as e:
        logger.error(f"Error generating memes: {e}", exc_info=True)
        error_msg = (
            f"❌ **Error**\n\nAn unexpected error occurred. "
            f"Check logs for details.\n\n`{str(e)}`"
        )
        yield render_gallery(state.job, state), READY_MESSAGE, error_msg, state
