"""Error types and failure classification for Memeforge.

Failures are raised as typed exceptions inside the core and converted into a
single :class:`GenerationFailure` value once a batch has stopped.  Each
exception carries the data needed for classification (status code, timeout
marker), so categories are matched by type and value rather than by searching
message text.

Taxonomy
--------
============================  ================================================
Category                      Raised when
============================  ================================================
``missing-credential``        No API key configured, or the placeholder key
``network-unreachable``       Connection, DNS or proxy failure on every attempt
``model-loading``             HTTP 503 (model cold start)
``rate-limited``              HTTP 429
``invalid-credential``        HTTP 401
``request-timeout``           Outer deadline for one image expired
``unknown``                   Anything else; keeps the original message
============================  ================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """User-facing failure categories for a generation run."""

    MISSING_CREDENTIAL = "missing-credential"
    NETWORK_UNREACHABLE = "network-unreachable"
    MODEL_LOADING = "model-loading"
    RATE_LIMITED = "rate-limited"
    INVALID_CREDENTIAL = "invalid-credential"
    REQUEST_TIMEOUT = "request-timeout"
    UNKNOWN = "unknown"


class MemeforgeError(Exception):
    """Base class for all Memeforge core errors."""


class MissingCredentialError(MemeforgeError):
    """No usable HuggingFace API key is configured."""

    def __init__(self) -> None:
        super().__init__("HuggingFace API key is not configured")


class HttpStatusError(MemeforgeError):
    """The inference endpoint answered with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the endpoint
        body: Short snippet of the response body, if any
    """

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP error! status: {status_code}")


class NetworkUnreachableError(MemeforgeError):
    """The request never reached the endpoint (connect, DNS or proxy failure)."""


class AttemptTimeoutError(MemeforgeError):
    """A single attempt exceeded its per-attempt timeout and was cancelled."""

    def __init__(self, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        super().__init__(f"attempt timed out after {timeout_s:g}s")


class RequestFailedError(MemeforgeError):
    """Any other HTTP client failure (bad encoding, redirect loop, ...).

    The message keeps the client's own error text.
    """


class RequestTimeoutError(MemeforgeError):
    """The outer deadline for one image expired before the request finished."""

    MESSAGE = "request timed out"

    def __init__(self, deadline_s: float | None = None) -> None:
        self.deadline_s = deadline_s
        super().__init__(self.MESSAGE)


# Status code → category, checked in this order after the network check.
_STATUS_CATEGORIES: tuple[tuple[int, ErrorCategory], ...] = (
    (503, ErrorCategory.MODEL_LOADING),
    (429, ErrorCategory.RATE_LIMITED),
    (401, ErrorCategory.INVALID_CREDENTIAL),
)

USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.MISSING_CREDENTIAL: (
        "Please set your HuggingFace API key first!\n"
        "1. Get an API key at https://huggingface.co/settings/tokens\n"
        "2. Put it in the .env file as MEMEFORGE_HUGGINGFACE_API_KEY"
    ),
    ErrorCategory.NETWORK_UNREACHABLE: (
        "Network connection failed. Please check the following:\n"
        "1. Make sure your proxy or VPN client is running\n"
        "2. Confirm the proxy port in its settings (e.g. 7890)\n"
        "3. Make sure the system proxy is enabled\n"
        "4. Set the proxy address to 127.0.0.1 and the port you confirmed\n"
        "5. Set HTTPS_PROXY if the proxy is not picked up automatically\n"
        "6. If it still fails, restart the proxy client"
    ),
    ErrorCategory.MODEL_LOADING: "The model is loading, please wait 1-2 minutes and try again",
    ErrorCategory.RATE_LIMITED: "Too many requests, please wait a moment and try again",
    ErrorCategory.INVALID_CREDENTIAL: (
        "Invalid API key! Please check that the API key is set correctly"
    ),
    ErrorCategory.REQUEST_TIMEOUT: (
        "The request timed out, please try again. If this keeps happening, "
        "check your network connection or switch proxy nodes"
    ),
    ErrorCategory.UNKNOWN: "Error while generating images: {message}",
}

MODEL_LOADING_HINT = "The model needs to load on first use, which can take 1-2 minutes"


@dataclass(frozen=True)
class GenerationFailure:
    """Terminal failure of a generation run.

    Attributes:
        category: Classified failure category
        message: Human-readable, actionable message for the user
        detail: Original error text, preserved for the ``unknown`` fallback
        status_code: HTTP status if the failure came from a response
    """

    category: ErrorCategory
    message: str
    detail: str = ""
    status_code: int | None = None

    @property
    def hint(self) -> str | None:
        """Extra guidance shown under the message, if any."""
        if self.category is ErrorCategory.MODEL_LOADING:
            return MODEL_LOADING_HINT
        return None

    def to_dict(self) -> dict:
        """Serialise for JSON responses."""
        return {
            "category": self.category.value,
            "message": self.message,
            "detail": self.detail,
            "status_code": self.status_code,
        }


def classify_error(error: BaseException) -> ErrorCategory:
    """Map a terminal error onto exactly one category.

    First match wins: network failure, then 503, 429 and 401 status codes,
    then the outer deadline.  Everything else, exhausted per-attempt
    timeouts included, is ``unknown``.

    Args:
        error: Exception that stopped the batch

    Returns:
        The matching :class:`ErrorCategory`
    """
    if isinstance(error, MissingCredentialError):
        return ErrorCategory.MISSING_CREDENTIAL

    if isinstance(error, NetworkUnreachableError):
        return ErrorCategory.NETWORK_UNREACHABLE

    if isinstance(error, HttpStatusError):
        for status, category in _STATUS_CATEGORIES:
            if error.status_code == status:
                return category
        return ErrorCategory.UNKNOWN

    if isinstance(error, RequestTimeoutError):
        return ErrorCategory.REQUEST_TIMEOUT

    return ErrorCategory.UNKNOWN


def build_failure(error: BaseException) -> GenerationFailure:
    """Classify ``error`` and attach the user-facing message.

    Args:
        error: Exception that stopped the batch

    Returns:
        GenerationFailure carrying category, message and original detail
    """
    category = classify_error(error)
    detail = str(error) or type(error).__name__
    template = USER_MESSAGES[category]
    message = template.format(message=detail) if category is ErrorCategory.UNKNOWN else template
    return GenerationFailure(
        category=category,
        message=message,
        detail=detail,
        status_code=getattr(error, "status_code", None),
    )
