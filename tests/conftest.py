"""Shared pytest fixtures for Memeforge tests."""

import io
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import httpx
import pytest
from PIL import Image

from memeforge.core.config import MemeforgeConfig
from memeforge.ui.models import UIState


@pytest.fixture
def anyio_backend() -> str:
    """Run async tests on asyncio only (the core uses asyncio primitives)."""
    return "asyncio"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> MemeforgeConfig:
    """Create a test configuration with a temporary outputs directory.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        MemeforgeConfig instance for testing
    """
    return MemeforgeConfig(
        _env_file=None,
        huggingface_api_key="hf_test_key",
        api_base_url="https://inference.test/models",
        model_id="CompVis/stable-diffusion-v1-4",
        outputs_dir=str(temp_dir / "outputs"),
        max_retries=3,
        attempt_timeout_s=30.0,
        batch_deadline_s=60.0,
        concurrency=1,
        non_retriable_statuses=[],
    )


@pytest.fixture
def png_bytes() -> bytes:
    """Return a small valid PNG image.

    Returns:
        PNG-encoded bytes of an 8x8 image
    """
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(255, 128, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def sleeps() -> list[float]:
    """List that collects every backoff delay requested by a fake sleep."""
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]) -> Callable:
    """Async sleep replacement that records delays instead of waiting.

    Args:
        sleeps: List receiving each requested delay

    Returns:
        Coroutine function with the asyncio.sleep signature
    """

    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def make_client() -> Callable[[Callable], httpx.AsyncClient]:
    """Factory building an AsyncClient backed by a MockTransport handler.

    Returns:
        Function taking a request handler and returning an AsyncClient
    """

    def _make(handler: Callable) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=None)

    return _make


@pytest.fixture
def ui_state() -> UIState:
    """Create empty UI state for testing.

    Returns:
        UIState instance
    """
    return UIState()


@pytest.fixture
def test_client(test_config: MemeforgeConfig, png_bytes: bytes, fake_sleep: Callable):
    """FastAPI TestClient wired to a mocked inference endpoint.

    The application lifespan runs as usual; the orchestrator it creates is
    then replaced by one that talks to an ``httpx.MockTransport`` answering
    every request with ``png_bytes``.  Tests may swap
    ``client.app.state.orchestrator`` to script other responses.

    Yields:
        TestClient instance
    """
    from fastapi.testclient import TestClient

    from memeforge.api.main import app
    from memeforge.core.orchestrator import BatchGenerationOrchestrator

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})

    with patch("memeforge.api.main.config", test_config):
        with TestClient(app) as client:
            app.state.orchestrator = BatchGenerationOrchestrator(
                test_config, transport=httpx.MockTransport(handler), sleep=fake_sleep
            )
            yield client
