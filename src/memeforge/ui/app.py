"""Gradio UI for Memeforge."""

import logging

import gradio as gr

from memeforge.core.config import config

from .handlers import download_selected, generate_memes
from .handlers.generation import READY_MESSAGE
from .models import PROMPT_HINT, PROMPT_PLACEHOLDER, UIState

logger = logging.getLogger(__name__)

CUSTOM_CSS = """
.error-panel {
    background: #fff3f3;
    border-radius: 8px;
    padding: 8px 12px;
}
"""


def create_ui() -> gr.Blocks:
    """Create the single-page meme generator UI.

    Returns:
        Gradio Blocks app
    """
    app = gr.Blocks(title="Memeforge - AI Meme Generator")

    with app:
        # Session state - one instance per user
        ui_state = gr.State(UIState())

        gr.Markdown(
            """
            # 😄 AI Meme Generator
            ### Describe a meme, get four takes on it
            """
        )

        with gr.Group():
            prompt_input = gr.Textbox(
                label="Describe the meme you want",
                placeholder=PROMPT_PLACEHOLDER,
                lines=3,
                info=PROMPT_HINT,
            )
            generate_btn = gr.Button(
                f"Generate {config.total_images} memes",
                variant="primary",
            )

        status_output = gr.Markdown(value=READY_MESSAGE)
        error_output = gr.Markdown(value="", elem_classes=["error-panel"])

        gallery = gr.Gallery(
            label="Memes",
            columns=4,
            rows=1,
            height=400,
            object_fit="cover",
        )

        with gr.Row():
            with gr.Column(scale=2):
                download_file = gr.File(label="Download", interactive=False)
            with gr.Column(scale=1):
                download_info = gr.Markdown(value="*Click an image to download it*")

        # Streaming handler: each snapshot refreshes gallery, status and errors
        generate_btn.click(
            fn=generate_memes,
            inputs=[prompt_input, ui_state],
            outputs=[gallery, status_output, error_output, ui_state],
        )

        gallery.select(
            fn=download_selected,
            inputs=[ui_state],
            outputs=[download_file, download_info, ui_state],
        )

    return app


def main():
    """Launch the Gradio UI on its own, without the REST API."""
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Starting Memeforge UI...")
    logger.info(f"Configuration: {config.model_dump()}")

    if not config.has_valid_credential():
        logger.warning("No HuggingFace API key configured; generation will fail until one is set")

    app = create_ui()

    logger.info(f"Launching Gradio UI on {config.server_host}:{config.server_port}")

    app.launch(
        server_name=config.server_host,
        server_port=config.server_port,
        show_error=True,
        inbrowser=False,
        css=CUSTOM_CSS,
    )


if __name__ == "__main__":
    main()
