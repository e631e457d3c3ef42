"""Batch generation orchestrator.

:class:`BatchGenerationOrchestrator` produces ``total_images`` images for one
prompt by driving the inference endpoint through
:class:`~memeforge.core.requester.RetryingRequester`.

Run lifecycle
-------------
1. **Credential check** — a missing or placeholder API key fails the run with
   ``missing-credential`` before any network activity.
2. **Prompt normalisation** — see :mod:`memeforge.core.prompt_builder`.
3. **Image loop** — for each image index the retrying call is raced against
   an outer deadline (``batch_deadline_s``).  If the deadline wins, the
   retrying call is cancelled and the image fails with ``request-timeout``.
4. **Publication** — every finished image yields a new
   :class:`~memeforge.core.models.GenerationJob` snapshot with the image
   appended and progress advanced, so the UI can render partial output
   before the batch completes.
5. **Termination** — the first failure stops the batch (remaining images are
   not requested), is classified once, and yields a ``failed`` snapshot that
   still carries the images published so far.  Terminal snapshots always
   report progress 0.

Ordering
--------
With the default ``concurrency=1`` the requests are strictly sequential:
image ``i + 1`` is never requested before image ``i`` has resolved.  With a
higher concurrency the requests overlap, but images are still published in
request order and a failure cancels every outstanding request.

Usage
-----
::

    orchestrator = BatchGenerationOrchestrator(config)

    async for job in orchestrator.stream("a cat wearing sunglasses"):
        print(job.status, job.progress, len(job.images))

    # Or just wait for the terminal snapshot
    job = await orchestrator.generate("a cat wearing sunglasses")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx

from .config import MemeforgeConfig
from .errors import MemeforgeError, MissingCredentialError, RequestTimeoutError, build_failure
from .models import GenerationJob, ImageResult, InferenceRequest
from .prompt_builder import build_payload, normalize_prompt
from .requester import RetryingRequester

logger = logging.getLogger(__name__)


class EmptyImageError(MemeforgeError):
    """The endpoint answered 2xx but returned no image data."""


class BatchGenerationOrchestrator:
    """Drive a batch of image requests and publish progress snapshots.

    The orchestrator holds no per-run state; each call to :meth:`stream` or
    :meth:`generate` starts a fresh job that supersedes any previous one.
    """

    def __init__(
        self,
        config: MemeforgeConfig,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialise the orchestrator.

        Args:
            config: Application configuration; the credential is read from it
                at the start of every run
            client: Shared HTTP client.  If None, a client is opened per run.
            transport: Transport for per-run clients (useful for testing)
            sleep: Backoff sleep passed to every requester
        """
        self._config = config
        self._client = client
        self._transport = transport
        self._sleep = sleep

    # -- Public interface ---------------------------------------------------

    async def stream(self, raw_prompt: str) -> AsyncIterator[GenerationJob]:
        """Run one batch and yield a snapshot on every state transition.

        Yields, in order: a ``running`` snapshot, one snapshot per finished
        image, and a terminal ``succeeded`` or ``failed`` snapshot.  A
        missing credential yields only the terminal ``failed`` snapshot.

        Args:
            raw_prompt: Prompt as typed by the user

        Yields:
            Immutable GenerationJob snapshots
        """
        cfg = self._config
        job = GenerationJob(
            prompt=raw_prompt,
            normalized_prompt=normalize_prompt(raw_prompt, cfg.style_suffix),
            target_count=cfg.total_images,
        )

        if not cfg.has_valid_credential():
            logger.error("HuggingFace API key missing or still set to the placeholder")
            yield job.failed(build_failure(MissingCredentialError()))
            return

        job = job.started()
        logger.info(
            f"Generating {job.target_count} images for prompt: {job.normalized_prompt!r}"
        )
        yield job

        request = self._build_request(job.normalized_prompt)

        try:
            async with self._open_client() as client:
                async for image in self._produce(client, request, job.target_count):
                    job = job.with_image(image)
                    logger.info(
                        f"Image {image.index + 1}/{job.target_count} complete ({job.progress}%)"
                    )
                    yield job
        except Exception as e:
            failure = build_failure(e)
            logger.error(f"Generation failed [{failure.category.value}]: {e}", exc_info=True)
            yield job.failed(failure)
            return

        logger.info(f"Generation complete: {len(job.images)} images")
        yield job.succeeded()

    async def generate(
        self,
        raw_prompt: str,
        on_update: Callable[[GenerationJob], Any] | None = None,
    ) -> GenerationJob:
        """Run one batch to completion.

        Args:
            raw_prompt: Prompt as typed by the user
            on_update: Called with every snapshot, terminal one included

        Returns:
            The terminal snapshot (status ``succeeded`` or ``failed``)

        Raises:
            RuntimeError: If the stream ended without yielding a snapshot
        """
        job: GenerationJob | None = None
        async for job in self.stream(raw_prompt):
            if on_update is not None:
                on_update(job)
        if job is None:
            raise RuntimeError("Generation stream ended without a snapshot")
        return job

    # -- Internals ----------------------------------------------------------

    def _build_request(self, prompt: str) -> InferenceRequest:
        cfg = self._config
        return InferenceRequest(
            url=cfg.inference_url,
            method="POST",
            headers={
                "Authorization": f"Bearer {cfg.api_key_value()}",
                "Content-Type": "application/json",
                "Accept": "image/png",
            },
            json_body=build_payload(
                prompt,
                num_inference_steps=cfg.num_inference_steps,
                guidance_scale=cfg.guidance_scale,
                width=cfg.width,
                height=cfg.height,
            ),
        )

    @asynccontextmanager
    async def _open_client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a per-run client closed afterwards."""
        if self._client is not None:
            yield self._client
            return

        # Timeouts are enforced by the requester, not by httpx.
        async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
            yield client

    async def _produce(
        self,
        client: httpx.AsyncClient,
        request: InferenceRequest,
        count: int,
    ) -> AsyncIterator[ImageResult]:
        """Yield ``count`` images in request order."""
        concurrency = self._config.concurrency

        if concurrency <= 1:
            for index in range(count):
                yield await self._generate_one(client, request, index)
            return

        semaphore = asyncio.Semaphore(concurrency)

        async def bounded(index: int) -> ImageResult:
            async with semaphore:
                return await self._generate_one(client, request, index)

        tasks = [asyncio.create_task(bounded(index)) for index in range(count)]
        try:
            for task in tasks:
                yield await task
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _generate_one(
        self,
        client: httpx.AsyncClient,
        request: InferenceRequest,
        index: int,
    ) -> ImageResult:
        """Request one image, bounded by the outer deadline.

        Raises:
            RequestTimeoutError: The outer deadline expired first
            EmptyImageError: The endpoint returned an empty body
            MemeforgeError: Any failure propagated by the requester
        """
        cfg = self._config
        requester = RetryingRequester(
            client,
            non_retriable_statuses=cfg.non_retriable_statuses,
            sleep=self._sleep,
        )

        logger.debug(f"Requesting image {index + 1}/{cfg.total_images}")
        try:
            response = await asyncio.wait_for(
                requester.attempt(
                    request,
                    max_retries=cfg.max_retries,
                    attempt_timeout=cfg.attempt_timeout_s,
                ),
                timeout=cfg.batch_deadline_s,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Image {index + 1} exceeded the {cfg.batch_deadline_s:g}s deadline; "
                f"cancelled after {len(requester.history)} failed attempt(s)"
            )
            raise RequestTimeoutError(cfg.batch_deadline_s) from e

        data = response.content
        if not data:
            raise EmptyImageError(f"Empty image payload for image {index + 1}")

        return ImageResult(index=index, data=data)
