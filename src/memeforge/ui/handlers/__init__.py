"""UI event handlers organized by feature area.

This package provides handlers for all Gradio UI events:
- generation: Streaming meme generation and status formatting
- download: Saving a selected image as a PNG file
"""

from .download import (
    download_image,
    download_selected,
)
from .generation import (
    format_error,
    format_status,
    generate_memes,
    get_orchestrator,
    render_gallery,
)

__all__ = [
    # Generation handlers
    "format_error",
    "format_status",
    "generate_memes",
    "get_orchestrator",
    "render_gallery",
    # Download handlers
    "download_image",
    "download_selected",
]
