"""Image download handlers."""

import logging

import gradio as gr

from memeforge.core.config import config
from memeforge.core.downloads import DownloadError, save_image

from ..models import UIState
from ..validation import ValidationError, validate_image_index

logger = logging.getLogger(__name__)


def download_image(state: UIState, index: int | None) -> tuple[str | None, str, UIState]:
    """Save the image at ``index`` of the current job as a PNG file.

    Args:
        state: UI state
        index: 0-based gallery index of the image

    Returns:
        Tuple of (file_path_or_None, info_markdown, updated_state)
    """
    available = len(state.job.images) if state.job else 0

    try:
        validate_image_index(index, available)
        image = state.image_at(index)
        path = save_image(image, index, config.outputs_dir)
    except ValidationError as e:
        logger.warning(f"Download rejected: {e}")
        return None, f"❌ {e}", state
    except DownloadError as e:
        logger.error(f"Download failed: {e}")
        return None, f"❌ **Download failed**\n\n{e}", state

    state.last_download = str(path)
    return str(path), f"💾 Saved **{path.name}**", state


def download_selected(state: UIState, evt: gr.SelectData) -> tuple[str | None, str, UIState]:
    """Handle a gallery selection by downloading the selected image.

    The gallery position is mapped back to a job index, since images that
    could not be displayed leave no tile behind.

    Args:
        state: UI state
        evt: Gradio selection event (``evt.index`` is the gallery position)

    Returns:
        Tuple of (file_path_or_None, info_markdown, updated_state)
    """
    index = evt.index
    # Some Gradio versions report (row, col) for grid selections.
    if isinstance(index, (list, tuple)):
        index = index[0]
    if index is not None:
        index = state.job_index_for(index)
    return download_image(state, index)
