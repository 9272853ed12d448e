"""
Failure classification.

Maps a caught exception to an ``ErrorKind`` so the retry loop can decide
whether to retry, rotate models, fall back to another provider or abort.
The checks run from most to least reliable signal:

    1. exception type (litellm's OpenAI-compatible exception hierarchy)
    2. an HTTP ``status_code`` attribute
    3. message patterns, for SDKs and proxies that only give us text

``ProviderError`` wrappers are unwrapped first, so the SDK exception decides.
"""

from __future__ import annotations

import re

import litellm

from choicestory.textgen.models import ErrorKind, ProviderError

# Ordered: more specific classes must precede their bases.
_TYPE_KINDS: tuple[tuple[type[BaseException], ErrorKind], ...] = (
    (litellm.AuthenticationError, ErrorKind.AUTH_ERROR),
    (litellm.PermissionDeniedError, ErrorKind.AUTH_ERROR),
    (litellm.NotFoundError, ErrorKind.MODEL_UNAVAILABLE),
    (litellm.RateLimitError, ErrorKind.RATE_LIMITED),
    (litellm.Timeout, ErrorKind.TRANSIENT),
    (litellm.APIConnectionError, ErrorKind.TRANSIENT),
    (litellm.ServiceUnavailableError, ErrorKind.TRANSIENT),
    (litellm.InternalServerError, ErrorKind.TRANSIENT),
    (TimeoutError, ErrorKind.TRANSIENT),
    (ConnectionError, ErrorKind.TRANSIENT),
)

_STATUS_KINDS: dict[int, ErrorKind] = {
    401: ErrorKind.AUTH_ERROR,
    403: ErrorKind.AUTH_ERROR,
    404: ErrorKind.MODEL_UNAVAILABLE,
    408: ErrorKind.TRANSIENT,
    429: ErrorKind.RATE_LIMITED,
}

# Checked in this order; auth wins over everything else. Status codes only
# match as whole numbers, never inside request IDs or durations.
_MESSAGE_PATTERNS: tuple[tuple[ErrorKind, re.Pattern[str]], ...] = (
    (
        ErrorKind.AUTH_ERROR,
        re.compile(
            r"unregistered callers|api[ _]key|authentication|permission denied"
            r"|unauthorized|\b40[13]\b"
        ),
    ),
    (ErrorKind.MODEL_UNAVAILABLE, re.compile(r"not found|unsupported|not supported")),
    (
        ErrorKind.RATE_LIMITED,
        re.compile(r"rate ?limit|\b429\b|quota|resource exhausted|too many requests"),
    ),
    (
        ErrorKind.TRANSIENT,
        re.compile(
            r"timeout|timed out|temporarily|unavailable|overloaded|connection"
            r"|\b50[023]\b"
        ),
    ),
)


def _unwrap(exc: BaseException) -> list[BaseException]:
    """Return the exception chain, innermost cause first."""
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        if isinstance(current, ProviderError) and current.cause is not None:
            current = current.cause
        else:
            current = current.__cause__
    chain.reverse()
    return chain


def _kind_from_type(exc: BaseException) -> ErrorKind | None:
    for exc_type, kind in _TYPE_KINDS:
        if isinstance(exc, exc_type):
            return kind
    return None


def _kind_from_status(exc: BaseException) -> ErrorKind | None:
    status = getattr(exc, "status_code", None)
    if not isinstance(status, int):
        return None
    if status in _STATUS_KINDS:
        return _STATUS_KINDS[status]
    if 500 <= status < 600:
        return ErrorKind.TRANSIENT
    return None


def classify_message(message: str) -> ErrorKind:
    """Classify an error by its message text alone."""
    lowered = message.lower()
    for kind, pattern in _MESSAGE_PATTERNS:
        if pattern.search(lowered):
            return kind
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Classify a failed provider call.

    Args:
        exc: The exception raised by a provider client

    Returns:
        The ErrorKind that decides how the failure is handled
    """
    chain = _unwrap(exc)

    for link in chain:
        kind = _kind_from_type(link)
        if kind is not None:
            return kind

    for link in chain:
        kind = _kind_from_status(link)
        if kind is not None:
            return kind

    for link in chain:
        kind = classify_message(str(link))
        if kind is not ErrorKind.UNKNOWN:
            return kind

    return ErrorKind.UNKNOWN


def is_retryable(kind: ErrorKind) -> bool:
    """Auth failures are the only kind never worth retrying."""
    return kind is not ErrorKind.AUTH_ERROR
