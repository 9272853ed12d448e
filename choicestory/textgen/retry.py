"""
Retry loop with model rotation and exponential backoff.

One loop serves both the primary text provider and the prompt summarizer.
Two budgets are tracked independently:

    models:   an ordered candidate list; a MODEL_UNAVAILABLE failure moves
               to the next candidate without consuming an attempt
    attempts: every other failure consumes one; between attempts we sleep
               initial_delay_ms * 2^(attempt-1)

Rotating models never resets the attempt counter. Once the last candidate
reports MODEL_UNAVAILABLE, further failures on it consume attempts like any
other error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from choicestory.textgen.classification import classify_error
from choicestory.textgen.models import (
    AuthenticationFailed,
    ErrorKind,
    GenerationAttempt,
    ProviderError,
    ProviderRole,
    RetriesExhausted,
)

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    """Attempt budget and exponential backoff schedule."""

    max_attempts: int = 3
    initial_delay_ms: int = 1000

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_ms < 0:
            raise ValueError("initial_delay_ms cannot be negative")

    def delay_ms(self, attempt: int) -> int:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        return self.initial_delay_ms * 2 ** (attempt - 1)

    def delay_seconds(self, attempt: int) -> float:
        return self.delay_ms(attempt) / 1000

    def with_max_attempts(self, max_attempts: int) -> BackoffPolicy:
        return BackoffPolicy(max_attempts=max_attempts, initial_delay_ms=self.initial_delay_ms)


async def run_with_rotation(
    call: Callable[[str], Awaitable[str]],
    models: Sequence[str],
    policy: BackoffPolicy,
    *,
    provider: ProviderRole = ProviderRole.PRIMARY,
    provider_name: str = "",
    sleep: SleepFn = asyncio.sleep,
) -> tuple[str, str, int]:
    """
    Call ``call(model)`` until it returns text or a budget runs out.

    Args:
        call: Coroutine function taking a model name and returning generated text
        models: Candidate models, most preferred first (must be non-empty)
        policy: Attempt budget and backoff schedule
        provider: Role of the provider being called, for attempt records
        provider_name: Provider name, for logs and errors
        sleep: Awaitable sleep, injectable for tests

    Returns:
        (text, model that produced it, number of calls made)

    Raises:
        AuthenticationFailed: On the first AUTH_ERROR; nothing is retried
        RetriesExhausted: When the attempt budget is spent
        ValueError: If ``models`` is empty
    """
    if not models:
        raise ValueError("At least one model candidate is required")

    model_index = 0
    attempt = 0
    calls = 0

    while True:
        model = models[model_index]
        calls += 1
        record = GenerationAttempt(
            provider=provider,
            provider_name=provider_name,
            model=model,
            attempt_number=attempt + 1,
        )
        logger.info(
            f"[{record.provider_name}] Using model {record.model} "
            f"(attempt {record.attempt_number}/{policy.max_attempts})"
        )

        try:
            text = await call(model)
            if not text or not text.strip():
                raise ProviderError(
                    f"{provider_name} returned an empty response", provider=provider_name
                )
            return text, model, calls
        except Exception as e:
            kind = classify_error(e)
            logger.warning(f"[{provider_name}] {model} failed ({kind.value}): {e}")

            if kind is ErrorKind.AUTH_ERROR:
                raise AuthenticationFailed(
                    f"Authentication error with {provider_name}: {e}",
                    error=e,
                    kind=kind,
                    model=model,
                    calls=calls,
                ) from e

            if kind is ErrorKind.MODEL_UNAVAILABLE and model_index < len(models) - 1:
                model_index += 1
                logger.info(f"[{provider_name}] Switching to next model: {models[model_index]}")
                continue

            attempt += 1
            if attempt >= policy.max_attempts:
                raise RetriesExhausted(
                    f"{provider_name} failed after {attempt} attempts: {e}",
                    error=e,
                    kind=kind,
                    model=model,
                    calls=calls,
                ) from e

            delay = policy.delay_seconds(attempt)
            logger.info(f"[{provider_name}] Retrying in {delay:.1f}s")
            await sleep(delay)
