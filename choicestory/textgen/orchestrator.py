"""
Text Generation Orchestrator.

Turns a GenerationRequest into a GenerationOutcome using two providers:

    prompt guard (optional)  →  condensed prompt if over the ceiling
                                      ↓
    primary provider         →  retry loop with model rotation + backoff
        success              →  Success(primary)
        auth failure         →  AuthFailure(primary)   (secondary never called)
        retries exhausted    ↓
    secondary provider       →  one call, fixed model, no retries
        success              →  Success(secondary)
        auth failure         →  AuthFailure(secondary)
        any other failure    →  AllProvidersExhausted (both errors attached)

Provider failures never escape ``generate``; the caller always gets an
outcome it can render. Exactly one provider call is in flight at a time and
the orchestrator keeps no state between calls, so a single instance can
serve concurrent requests. Cancelling the awaiting task abandons the call at
whichever network wait or backoff sleep it is in.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from choicestory.textgen.classification import classify_error
from choicestory.textgen.models import (
    AuthenticationFailed,
    ErrorKind,
    GenerationAttempt,
    GenerationOutcome,
    GenerationRequest,
    ProviderRole,
    RetriesExhausted,
)
from choicestory.textgen.prompt_guard import PromptLengthGuard
from choicestory.textgen.providers import PrimaryTextProvider, SecondaryTextProvider
from choicestory.textgen.retry import BackoffPolicy, SleepFn, run_with_rotation

logger = logging.getLogger(__name__)


class TextGenerationOrchestrator:
    """
    Generates text with a primary provider and falls back to a secondary one.

    Args:
        primary: Primary provider client (supports several named models)
        secondary: Fallback provider client
        primary_models: Primary model candidates, most preferred first
        secondary_model: Fixed model for the single fallback call
        retry_policy: Primary attempt budget and backoff (default: 3 attempts, 1000ms)
        secondary_temperature: Sampling temperature for the fallback call
        prompt_guard: Optional length guard applied before the first attempt
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        primary: PrimaryTextProvider,
        secondary: SecondaryTextProvider,
        primary_models: Sequence[str],
        secondary_model: str,
        retry_policy: BackoffPolicy | None = None,
        secondary_temperature: float = 0.7,
        prompt_guard: PromptLengthGuard | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        if not primary_models:
            raise ValueError("At least one primary model is required")

        self._primary = primary
        self._secondary = secondary
        self._primary_models = list(primary_models)
        self._secondary_model = secondary_model
        self._retry_policy = retry_policy or BackoffPolicy()
        self._secondary_temperature = secondary_temperature
        self._prompt_guard = prompt_guard
        self._sleep = sleep

    async def generate_text(
        self,
        prompt: str,
        max_output_tokens: int | None = None,
    ) -> GenerationOutcome:
        """
        Convenience wrapper that builds the GenerationRequest.

        Raises:
            pydantic.ValidationError: If the prompt is empty or the token budget invalid
        """
        request = GenerationRequest(prompt=prompt, max_output_tokens=max_output_tokens)
        return await self.generate(request)

    async def generate(self, request: GenerationRequest) -> GenerationOutcome:
        """
        Generate text for ``request``.

        Args:
            request: Validated generation request

        Returns:
            GenerationOutcome; failures are reported in the outcome, not raised
        """
        prompt = request.prompt
        if self._prompt_guard is not None:
            prompt = await self._prompt_guard.ensure_length(prompt)

        logger.info(
            f"Generating text with {self._primary.name} "
            f"(prompt {len(prompt)} chars, max tokens {request.max_output_tokens}, "
            f"language {request.language}, user {request.user_id or 'anonymous'})"
        )

        async def call_primary(model: str) -> str:
            return await self._primary.generate(
                model=model,
                prompt_parts=[prompt],
                max_output_tokens=request.max_output_tokens,
            )

        try:
            text, model, calls = await run_with_rotation(
                call_primary,
                self._primary_models,
                self._retry_policy,
                provider=ProviderRole.PRIMARY,
                provider_name=self._primary.name,
                sleep=self._sleep,
            )
        except AuthenticationFailed as e:
            logger.error(f"[{self._primary.name}] Authentication error: check the API key configuration")
            return self._auth_failure(ProviderRole.PRIMARY, self._primary.name, e.model, e.calls)
        except RetriesExhausted as e:
            logger.warning(
                f"{self._primary.name} failed after {e.calls} calls, "
                f"falling back to {self._secondary.name}"
            )
            return await self._fallback(request, prompt, e)

        logger.info(f"Generated {len(text)} chars with {self._primary.name}/{model}")
        return GenerationOutcome(
            success=True,
            text=text.strip(),
            provider=ProviderRole.PRIMARY,
            provider_name=self._primary.name,
            model=model,
            attempts=calls,
        )

    async def _fallback(
        self,
        request: GenerationRequest,
        prompt: str,
        primary_failure: RetriesExhausted,
    ) -> GenerationOutcome:
        """Single, non-retried call to the secondary provider."""
        name = self._secondary.name
        model = self._secondary_model
        calls = primary_failure.calls + 1

        record = GenerationAttempt(
            provider=ProviderRole.SECONDARY,
            provider_name=name,
            model=model,
            attempt_number=1,
        )
        logger.info(f"[{record.provider_name}] Using model {record.model} (single attempt)")

        try:
            text = await self._secondary.generate(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                max_output_tokens=request.max_output_tokens,
                temperature=self._secondary_temperature,
            )
            if not text or not text.strip():
                raise ValueError(f"{name} returned an empty response")
        except Exception as e:
            kind = classify_error(e)
            logger.error(f"[{name}] Fallback failed ({kind.value}): {e}")

            if kind is ErrorKind.AUTH_ERROR:
                return self._auth_failure(ProviderRole.SECONDARY, name, model, calls)

            primary_name = self._primary.name
            details = {primary_name: str(primary_failure.error), name: str(e)}
            return GenerationOutcome(
                success=False,
                error_kind=kind,
                provider=ProviderRole.SECONDARY,
                provider_name=name,
                model=model,
                message=(
                    f"Text generation failed. Both {primary_name} and {name} failed to "
                    f"generate text. {primary_name}: {details[primary_name]}; "
                    f"{name}: {details[name]}"
                ),
                details=details,
                attempts=calls,
            )

        logger.info(f"Generated {len(text)} chars with {name}/{model}")
        return GenerationOutcome(
            success=True,
            text=text.strip(),
            provider=ProviderRole.SECONDARY,
            provider_name=name,
            model=model,
            attempts=calls,
        )

    @staticmethod
    def _auth_failure(
        role: ProviderRole,
        name: str,
        model: str,
        calls: int,
    ) -> GenerationOutcome:
        return GenerationOutcome(
            success=False,
            error_kind=ErrorKind.AUTH_ERROR,
            provider=role,
            provider_name=name,
            model=model,
            message=(
                f"Text generation failed: could not authenticate with {name}. "
                "Please check the API key configuration."
            ),
            attempts=calls,
        )
