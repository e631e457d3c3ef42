"""Tests for memeforge.core.orchestrator — batch generation.

Tests cover:
- Credential precondition (missing and placeholder keys, zero network calls).
- Request payload: normalised prompt and fixed inference parameters.
- Snapshot sequence: ordering, progress values and terminal reset.
- Abort-on-failure semantics with partial results retained.
- Classification of terminal failures.
- Outer deadline racing the retrying call.
- Bounded-concurrency fan-out preserving request order.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from memeforge.core.config import MemeforgeConfig
from memeforge.core.errors import ErrorCategory
from memeforge.core.models import JobStatus
from memeforge.core.orchestrator import BatchGenerationOrchestrator


def _orchestrator(config, handler, fake_sleep) -> BatchGenerationOrchestrator:
    return BatchGenerationOrchestrator(
        config, transport=httpx.MockTransport(handler), sleep=fake_sleep
    )


async def _collect(orchestrator, prompt):
    return [job async for job in orchestrator.stream(prompt)]


class TestCredentialCheck:
    """Tests for the credential precondition."""

    @pytest.mark.anyio
    @pytest.mark.parametrize("key", [None, "", "   ", "hf_xxx"])
    async def test_missing_credential_fails_without_network(self, temp_dir, fake_sleep, key):
        """No key or the placeholder key fails immediately with zero calls."""
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(200, content=b"img")

        cfg = MemeforgeConfig(
            _env_file=None,
            huggingface_api_key=key,
            outputs_dir=str(temp_dir / "outputs"),
        )

        snapshots = await _collect(_orchestrator(cfg, handler, fake_sleep), "happy dog")

        assert calls["n"] == 0
        assert len(snapshots) == 1
        job = snapshots[0]
        assert job.status is JobStatus.FAILED
        assert job.failure.category is ErrorCategory.MISSING_CREDENTIAL
        assert job.progress == 0
        assert job.images == ()

    @pytest.mark.anyio
    async def test_credential_read_at_call_time(self, test_config, fake_sleep, png_bytes):
        """Changing the config after construction affects the next run."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=png_bytes)

        orchestrator = _orchestrator(test_config, handler, fake_sleep)
        test_config.huggingface_api_key = None

        job = await orchestrator.generate("happy dog")

        assert job.failure.category is ErrorCategory.MISSING_CREDENTIAL


class TestRequestPayload:
    """Tests for the request sent to the inference endpoint."""

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "prompt,expected",
        [
            ("happy dog", "happy dog"),
            ("开心的狗", "开心的狗 (meme style, funny, humorous, high quality)"),
        ],
    )
    async def test_inputs_field(self, test_config, fake_sleep, png_bytes, prompt, expected):
        """The inputs field carries the normalised prompt."""
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, content=png_bytes)

        await _orchestrator(test_config, handler, fake_sleep).generate(prompt)

        assert len(bodies) == 4
        assert all(body["inputs"] == expected for body in bodies)

    @pytest.mark.anyio
    async def test_fixed_parameters_and_auth(self, test_config, fake_sleep, png_bytes):
        """Inference parameters and bearer auth match the configuration."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=png_bytes)

        await _orchestrator(test_config, handler, fake_sleep).generate("happy dog")

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://inference.test/models/CompVis/stable-diffusion-v1-4"
        assert request.headers["Authorization"] == "Bearer hf_test_key"
        assert json.loads(request.content)["parameters"] == {
            "num_inference_steps": 30,
            "guidance_scale": 7.5,
            "width": 512,
            "height": 512,
        }


class TestSuccessfulRun:
    """Tests for a batch where every request succeeds."""

    @pytest.mark.anyio
    async def test_four_images_in_order(self, test_config, fake_sleep):
        """Each image keeps the payload of its own request, in request order."""
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(200, content=f"image-{calls['n']}".encode())

        job = await _orchestrator(test_config, handler, fake_sleep).generate("happy dog")

        assert job.status is JobStatus.SUCCEEDED
        assert [img.index for img in job.images] == [0, 1, 2, 3]
        assert [img.data for img in job.images] == [
            b"image-1",
            b"image-2",
            b"image-3",
            b"image-4",
        ]
        assert all(img.data for img in job.images)

    @pytest.mark.anyio
    async def test_progress_sequence(self, test_config, fake_sleep, png_bytes):
        """Progress goes 0, 25, 50, 75, 100 and resets to 0 at the end."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=png_bytes)

        snapshots = await _collect(_orchestrator(test_config, handler, fake_sleep), "cat")

        assert [s.progress for s in snapshots] == [0, 25, 50, 75, 100, 0]
        assert [s.status for s in snapshots] == [JobStatus.RUNNING] * 5 + [JobStatus.SUCCEEDED]
        assert [len(s.images) for s in snapshots] == [0, 1, 2, 3, 4, 4]
        assert snapshots[-1].in_flight is False

    @pytest.mark.anyio
    async def test_on_update_receives_every_snapshot(self, test_config, fake_sleep, png_bytes):
        """generate() forwards each snapshot to the callback."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=png_bytes)

        seen = []
        job = await _orchestrator(test_config, handler, fake_sleep).generate(
            "cat", on_update=seen.append
        )

        assert len(seen) == 6
        assert seen[-1] is job

    @pytest.mark.anyio
    async def test_generate_requires_a_snapshot(self, test_config):
        """generate() raises instead of returning None if the stream is empty."""

        async def empty_stream(raw_prompt):
            return
            yield

        orchestrator = BatchGenerationOrchestrator(test_config)
        with patch.object(orchestrator, "stream", empty_stream):
            with pytest.raises(RuntimeError, match="without a snapshot"):
                await orchestrator.generate("cat")

    @pytest.mark.anyio
    async def test_sequential_requests_never_overlap(self, test_config, fake_sleep, png_bytes):
        """With concurrency 1, a request starts only after the previous one finished."""
        active = {"now": 0, "max": 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
            await asyncio.sleep(0.01)
            active["now"] -= 1
            return httpx.Response(200, content=png_bytes)

        await _orchestrator(test_config, handler, fake_sleep).generate("cat")

        assert active["max"] == 1

    @pytest.mark.anyio
    async def test_shared_client_is_used(self, test_config, fake_sleep, make_client, png_bytes):
        """A client passed at construction is used for every request."""
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(200, content=png_bytes)

        async with make_client(handler) as client:
            orchestrator = BatchGenerationOrchestrator(test_config, client=client, sleep=fake_sleep)
            job = await orchestrator.generate("cat")
            assert not client.is_closed

        assert job.status is JobStatus.SUCCEEDED
        assert calls["n"] == 4


class TestFailedRun:
    """Tests for batches that stop on a terminal failure."""

    @pytest.mark.anyio
    async def test_failure_aborts_remaining_images(self, test_config, fake_sleep, png_bytes):
        """A failing third image stops the batch; earlier images stay published."""
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] <= 2:
                return httpx.Response(200, content=png_bytes)
            return httpx.Response(500, json={"error": "boom"})

        snapshots = await _collect(_orchestrator(test_config, handler, fake_sleep), "cat")
        job = snapshots[-1]

        # Two successes, then three attempts for image 3, then nothing more.
        assert calls["n"] == 5
        assert job.status is JobStatus.FAILED
        assert len(job.images) == 2
        assert job.progress == 0
        assert job.in_flight is False
        assert [s.progress for s in snapshots] == [0, 25, 50, 0]

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "status,category",
        [
            (503, ErrorCategory.MODEL_LOADING),
            (429, ErrorCategory.RATE_LIMITED),
            (401, ErrorCategory.INVALID_CREDENTIAL),
            (500, ErrorCategory.UNKNOWN),
        ],
    )
    async def test_status_classification(self, test_config, fake_sleep, status, category):
        """The final status code decides the failure category."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status)

        job = await _orchestrator(test_config, handler, fake_sleep).generate("cat")

        assert job.failure.category is category
        assert job.failure.status_code == status

    @pytest.mark.anyio
    async def test_503_on_final_retry_is_model_loading(self, test_config, fake_sleep):
        """Transient errors followed by a 503 on the last attempt → model-loading."""
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] < 3:
                raise httpx.ConnectError("reset", request=request)
            return httpx.Response(503)

        job = await _orchestrator(test_config, handler, fake_sleep).generate("cat")

        assert job.failure.category is ErrorCategory.MODEL_LOADING
        assert job.failure.hint is not None

    @pytest.mark.anyio
    async def test_unknown_keeps_original_message(self, test_config, fake_sleep):
        """Unknown failures carry the original error text."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(418)

        job = await _orchestrator(test_config, handler, fake_sleep).generate("cat")

        assert job.failure.category is ErrorCategory.UNKNOWN
        assert "status: 418" in job.failure.message
        assert job.failure.detail == "HTTP error! status: 418"

    @pytest.mark.anyio
    async def test_network_failure(self, test_config, fake_sleep):
        """Unreachable endpoint → network-unreachable."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route to host", request=request)

        job = await _orchestrator(test_config, handler, fake_sleep).generate("cat")

        assert job.failure.category is ErrorCategory.NETWORK_UNREACHABLE

    @pytest.mark.anyio
    async def test_empty_body_is_failure(self, test_config, fake_sleep):
        """A 2xx response without image data fails the batch."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"")

        job = await _orchestrator(test_config, handler, fake_sleep).generate("cat")

        assert job.status is JobStatus.FAILED
        assert job.failure.category is ErrorCategory.UNKNOWN
        assert job.images == ()

    @pytest.mark.anyio
    async def test_auth_failure_fails_fast_when_configured(self, test_config, fake_sleep):
        """With 401 non-retriable, one call is made before classification."""
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(401)

        cfg = test_config.model_copy(update={"non_retriable_statuses": [401]})
        job = await _orchestrator(cfg, handler, fake_sleep).generate("cat")

        assert calls["n"] == 1
        assert job.failure.category is ErrorCategory.INVALID_CREDENTIAL


class TestOuterDeadline:
    """Tests for the hard deadline raced against the retrying call."""

    @pytest.mark.anyio
    async def test_deadline_wins_and_cancels_request(self, test_config, fake_sleep):
        """A request slower than the deadline fails with request-timeout."""
        started = {"n": 0}
        finished = {"n": 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            started["n"] += 1
            await asyncio.sleep(5)
            finished["n"] += 1
            return httpx.Response(200, content=b"too-late")

        cfg = test_config.model_copy(update={"batch_deadline_s": 0.05})
        job = await _orchestrator(cfg, handler, fake_sleep).generate("cat")
        await asyncio.sleep(0.05)

        assert job.failure.category is ErrorCategory.REQUEST_TIMEOUT
        assert job.failure.detail == "request timed out"
        assert started["n"] == 1
        assert finished["n"] == 0

    @pytest.mark.anyio
    async def test_exhausted_attempt_timeouts_are_unknown(self, test_config, fake_sleep):
        """Attempt timeouts that exhaust the budget before the deadline are unknown."""

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        cfg = test_config.model_copy(update={"attempt_timeout_s": 0.01, "max_retries": 2})
        job = await _orchestrator(cfg, handler, fake_sleep).generate("cat")

        assert job.failure.category is ErrorCategory.UNKNOWN
        assert "attempt timed out after 0.01s" in job.failure.message


class TestConcurrentFanOut:
    """Tests for bounded-concurrency generation."""

    @pytest.mark.anyio
    async def test_results_published_in_request_order(self, test_config, fake_sleep):
        """Requests finishing in reverse order are still published by index."""
        arrivals = {"n": 0}
        completed = []

        async def handler(request: httpx.Request) -> httpx.Response:
            arrival = arrivals["n"]
            arrivals["n"] += 1
            # Later arrivals finish first.
            await asyncio.sleep(0.01 * (4 - arrival))
            completed.append(arrival)
            return httpx.Response(200, content=f"image-{arrival}".encode())

        cfg = test_config.model_copy(update={"concurrency": 4})
        snapshots = await _collect(_orchestrator(cfg, handler, fake_sleep), "cat")
        job = snapshots[-1]

        assert completed == [3, 2, 1, 0]
        assert job.status is JobStatus.SUCCEEDED
        assert [img.index for img in job.images] == [0, 1, 2, 3]
        assert sorted(img.data for img in job.images) == [
            b"image-0",
            b"image-1",
            b"image-2",
            b"image-3",
        ]
        assert [s.progress for s in snapshots] == [0, 25, 50, 75, 100, 0]
        assert [len(s.images) for s in snapshots] == [0, 1, 2, 3, 4, 4]

    @pytest.mark.anyio
    async def test_concurrency_limit_respected(self, test_config, fake_sleep, png_bytes):
        """No more than `concurrency` requests are in flight at once."""
        active = {"now": 0, "max": 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
            await asyncio.sleep(0.01)
            active["now"] -= 1
            return httpx.Response(200, content=png_bytes)

        cfg = test_config.model_copy(update={"concurrency": 2})
        await _orchestrator(cfg, handler, fake_sleep).generate("cat")

        assert active["max"] == 2

    @pytest.mark.anyio
    async def test_failure_cancels_outstanding_requests(self, test_config, fake_sleep, png_bytes):
        """The first failure stops the batch and cancels sibling requests."""
        arrivals = {"n": 0}
        finished = []

        async def handler(request: httpx.Request) -> httpx.Response:
            arrival = arrivals["n"]
            arrivals["n"] += 1
            if arrival == 0:
                return httpx.Response(503)
            await asyncio.sleep(5)
            finished.append(arrival)
            return httpx.Response(200, content=png_bytes)

        cfg = test_config.model_copy(update={"concurrency": 4, "max_retries": 1})
        job = await _orchestrator(cfg, handler, fake_sleep).generate("cat")

        assert job.status is JobStatus.FAILED
        assert job.failure.category is ErrorCategory.MODEL_LOADING
        assert job.images == ()
        assert finished == []
