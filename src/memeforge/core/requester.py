"""Retrying HTTP requester for the inference endpoint.

:class:`RetryingRequester` executes one request reliably under transient
failure conditions.  Each attempt is bounded by its own timeout; failed
attempts are retried after a linear backoff capped at two seconds:

    attempt 0 fails → wait 0.5 s
    attempt 1 fails → wait 1.0 s
    attempt 2 fails → wait 1.5 s
    ...         → wait at most 2.0 s

Every non-2xx status is treated as a failure, and so is every other
httpx error (decoding, redirect loops).  httpx does not raise for error
statuses on its own, so the status is checked explicitly and converted into
:class:`~memeforge.core.errors.HttpStatusError`.  By default all failures are
retried uniformly (401 and 429 included); statuses listed in
``non_retriable_statuses`` fail immediately instead.

Worst-case wall-clock time for one call is bounded by
``max_retries * (attempt_timeout + 2.0)`` seconds.

Cancellation
------------
If the task awaiting :meth:`RetryingRequester.attempt` is cancelled (for
example because an outer deadline expired), the in-flight HTTP call or the
pending backoff sleep is cancelled with it.  No attempt outlives its caller.

Usage
-----
::

    async with httpx.AsyncClient() as client:
        requester = RetryingRequester(client)
        response = await requester.attempt(
            InferenceRequest(url=url, headers=headers, json_body=payload)
        )
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime

import httpx

from .errors import (
    AttemptTimeoutError,
    HttpStatusError,
    NetworkUnreachableError,
    RequestFailedError,
)
from .models import AttemptOutcome, InferenceRequest, RequestAttempt

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_ATTEMPT_TIMEOUT_S = 30.0

# Backoff schedule: 0.5 s per failed attempt, capped.
BACKOFF_STEP_S = 0.5
BACKOFF_CAP_S = 2.0

# Longest response body kept on an HttpStatusError
_BODY_SNIPPET_LIMIT = 500


def backoff_delay(attempt_index: int) -> float:
    """Return the wait in seconds after the attempt at ``attempt_index`` fails.

    Args:
        attempt_index: 0-based index of the attempt that just failed

    Returns:
        ``min(0.5 * (attempt_index + 1), 2.0)``
    """
    return min(BACKOFF_STEP_S * (attempt_index + 1), BACKOFF_CAP_S)


def _body_snippet(response: httpx.Response) -> str:
    try:
        return response.text[:_BODY_SNIPPET_LIMIT]
    except UnicodeDecodeError:
        return ""


class RetryingRequester:
    """Execute one HTTP request with a per-attempt timeout and bounded retries.

    Attributes:
        history: Attempts made by the most recent :meth:`attempt` call
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        non_retriable_statuses: Iterable[int] = (),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialise the requester.

        Args:
            client: Shared async HTTP client used for every attempt
            non_retriable_statuses: HTTP statuses that are raised without retrying
            sleep: Coroutine used for backoff waits (injectable for tests)
        """
        self._client = client
        self._non_retriable = frozenset(non_retriable_statuses)
        self._sleep = sleep
        self.history: list[RequestAttempt] = []

    async def attempt(
        self,
        request: InferenceRequest,
        max_retries: int = DEFAULT_MAX_RETRIES,
        attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT_S,
    ) -> httpx.Response:
        """Issue ``request`` until it succeeds or the attempt budget runs out.

        Args:
            request: Request descriptor (url, method, headers, JSON body)
            max_retries: Maximum number of network calls, initial call included
            attempt_timeout: Seconds before an attempt is cancelled

        Returns:
            The first successful (2xx) response

        Raises:
            HttpStatusError: Last attempt returned a non-2xx status
            NetworkUnreachableError: Last attempt could not reach the endpoint
            AttemptTimeoutError: Last attempt exceeded ``attempt_timeout``
            RequestFailedError: Last attempt failed inside the HTTP client
            ValueError: If ``max_retries`` is less than 1
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")

        self.history = []

        for i in range(max_retries):
            logger.info(f"Request attempt {i + 1}/{max_retries}: {request.method} {request.url}")
            timestamp = datetime.now()

            try:
                response = await self._send_once(request, attempt_timeout)
            except (
                HttpStatusError,
                NetworkUnreachableError,
                AttemptTimeoutError,
                RequestFailedError,
            ) as e:
                is_last = i == max_retries - 1
                fail_fast = (
                    isinstance(e, HttpStatusError) and e.status_code in self._non_retriable
                )
                terminal = is_last or fail_fast
                self.history.append(
                    RequestAttempt(
                        index=i,
                        timestamp=timestamp,
                        outcome=(
                            AttemptOutcome.TERMINAL_FAILURE
                            if terminal
                            else AttemptOutcome.TRANSIENT_FAILURE
                        ),
                        cause=str(e),
                    )
                )
                logger.warning(f"Request failed ({i + 1}/{max_retries}): {e}")

                if terminal:
                    raise

                await self._sleep(backoff_delay(i))
                continue

            self.history.append(
                RequestAttempt(index=i, timestamp=timestamp, outcome=AttemptOutcome.SUCCESS)
            )
            return response

        # Unreachable: the loop either returns or raises on its last attempt.
        raise AssertionError("retry loop exited without a result")

    async def _send_once(self, request: InferenceRequest, timeout: float) -> httpx.Response:
        """Issue a single call, converting every failure into a core error."""
        try:
            response = await asyncio.wait_for(
                self._client.request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    json=request.json_body,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise AttemptTimeoutError(timeout) from e
        except httpx.TimeoutException as e:
            raise AttemptTimeoutError(timeout) from e
        except httpx.TransportError as e:
            raise NetworkUnreachableError(f"Failed to fetch: {e}") from e
        except httpx.HTTPError as e:
            raise RequestFailedError(str(e) or type(e).__name__) from e

        if not response.is_success:
            raise HttpStatusError(response.status_code, _body_snippet(response))

        return response
