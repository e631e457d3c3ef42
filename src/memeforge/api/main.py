"""Memeforge — FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, the REST API routes, mounts the Gradio UI, and
provides the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :data:`memeforge.core.config.config`
  (``MEMEFORGE_*`` environment variables and ``.env``).
- **Image generation** is performed by
  :class:`~memeforge.core.orchestrator.BatchGenerationOrchestrator`, created
  once at startup with a shared ``httpx.AsyncClient``.
- **Progress** is streamed as newline-delimited JSON: one line per job
  snapshot, so clients can render partial output while the batch runs.
- **The UI** is the Gradio app from :mod:`memeforge.ui.app`, mounted at
  ``/ui``.

Endpoints
---------
========  ====================  ==========================================
Method    Path                  Purpose
========  ====================  ==========================================
GET       ``/``                 Redirect to the Gradio UI
GET       ``/api/health``       Liveness check
GET       ``/api/config``       Model, generation and retry settings
POST      ``/api/generate``     Stream job snapshots for one batch (NDJSON)
========  ====================  ==========================================

Usage
-----
CLI (installed entry point)::

    memeforge

Direct invocation::

    python -m memeforge.api.main
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import gradio as gr
import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse, StreamingResponse

from memeforge import __version__
from memeforge.api.models import GenerateRequest
from memeforge.core.config import config
from memeforge.core.orchestrator import BatchGenerationOrchestrator
from memeforge.ui.app import create_ui

logger = logging.getLogger(__name__)

UI_PATH = "/ui"

# ---------------------------------------------------------------------------
# Application lifecycle: shared HTTP client setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Opens a shared ``httpx.AsyncClient`` and stores a
        :class:`BatchGenerationOrchestrator` on ``app.state``.  Timeouts are
        enforced by the requester, so the client itself has none.

    On shutdown:
        Closes the HTTP client and its connection pool.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    # --- Startup -----------------------------------------------------------
    client = httpx.AsyncClient(timeout=None)
    app.state.orchestrator = BatchGenerationOrchestrator(config, client=client)
    logger.info(f"Orchestrator ready for {config.inference_url}")
    if not config.has_valid_credential():
        logger.warning("No HuggingFace API key configured; generation requests will fail")

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    await client.aclose()
    logger.info("HTTP client closed on shutdown.")


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Memeforge",
    description="AI meme generator backed by a hosted text-to-image model.",
    version=__version__,
    lifespan=lifespan,
)

# Allow cross-origin requests so a separately served frontend can stream
# from the API during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Streaming helper.
# ---------------------------------------------------------------------------


async def _stream_snapshots(
    orchestrator: BatchGenerationOrchestrator,
    prompt: str,
    include_images: bool,
) -> AsyncIterator[str]:
    """Serialise every job snapshot as one NDJSON line.

    Args:
        orchestrator: Orchestrator that runs the batch.
        prompt: Validated user prompt.
        include_images: Embed base64 payloads in each line.

    Yields:
        JSON documents terminated by a newline.
    """
    async for job in orchestrator.stream(prompt):
        yield json.dumps(job.to_dict(include_images=include_images)) + "\n"


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/", include_in_schema=False)
async def index() -> RedirectResponse:
    """Redirect the bare root to the Gradio UI."""
    return RedirectResponse(url=UI_PATH)


@app.get("/api/health")
async def health() -> dict:
    """Return a minimal liveness payload."""
    return {"status": "ok", "version": __version__}


@app.get("/api/config")
async def get_config() -> dict:
    """Return the generation configuration for clients.

    The API key itself is never returned, only whether a usable one is set.

    Returns:
        Dictionary with model, generation parameters, retry settings and
        credential status.
    """
    return {
        "version": __version__,
        "model_id": config.model_id,
        "inference_url": config.inference_url,
        "total_images": config.total_images,
        "parameters": {
            "num_inference_steps": config.num_inference_steps,
            "guidance_scale": config.guidance_scale,
            "width": config.width,
            "height": config.height,
        },
        "style_suffix": config.style_suffix,
        "retry": {
            "max_retries": config.max_retries,
            "attempt_timeout_s": config.attempt_timeout_s,
            "batch_deadline_s": config.batch_deadline_s,
            "non_retriable_statuses": config.non_retriable_statuses,
        },
        "concurrency": config.concurrency,
        "has_credential": config.has_valid_credential(),
    }


@app.post("/api/generate")
async def generate_memes(req: GenerateRequest, request: Request) -> StreamingResponse:
    """Generate a batch of memes and stream progress as NDJSON.

    Each line is one :class:`~memeforge.core.models.GenerationJob` snapshot:
    a ``running`` snapshot, one snapshot per finished image, then a terminal
    ``succeeded`` or ``failed`` snapshot.  Failures are reported in-band in
    the ``error`` field of the terminal line, so the HTTP status is 200 once
    streaming has started.

    Args:
        req: Validated :class:`GenerateRequest` payload.
        request: Incoming request (used to reach ``app.state``).

    Returns:
        Streaming NDJSON response.
    """
    orchestrator: BatchGenerationOrchestrator = request.app.state.orchestrator
    logger.info(f"API generate request: {req.prompt!r}")
    return StreamingResponse(
        _stream_snapshots(orchestrator, req.prompt, req.include_images),
        media_type="application/x-ndjson",
    )


# Mount the Gradio UI after the API routes so they take precedence.
app = gr.mount_gradio_app(app, create_ui(), path=UI_PATH)


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~memeforge.core.config.config` (which
    loads from ``MEMEFORGE_SERVER_HOST`` and ``MEMEFORGE_SERVER_PORT``
    environment variables).  Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``memeforge`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "memeforge.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
