"""
Prompt-length guard.

Prompts over the character ceiling are condensed by the primary provider
with instructions that favour character and scene details over prose. When
summarization cannot get under the ceiling, the prompt is hard-truncated.
Truncation cannot fail, so ``ensure_length`` always returns a prompt that
fits and never raises for provider trouble.

Summarization flow:
    attempt at target_length (own retry loop, own model list)
        fits            → done
        still too long  → retry once per reduced target (target * 0.8)
                          until the target drops below min_target_length
        any failure     → truncate to max_length - 3 and append "..."
"""

from __future__ import annotations

import asyncio
import logging
import math

from choicestory.config.settings import PromptGuardSettings
from choicestory.textgen.models import ProviderRole, RetryLoopError, SummarizationError
from choicestory.textgen.providers import PrimaryTextProvider
from choicestory.textgen.retry import BackoffPolicy, SleepFn, run_with_rotation

logger = logging.getLogger(__name__)

ELLIPSIS = "..."

SUMMARIZATION_TEMPLATE = """You are an expert at condensing children's storybook image generation prompts while preserving character consistency and scene integrity.

TASK: Summarize the following image generation prompt to approximately {target_length} characters with ABSOLUTE PRIORITY on character and scene details.

CRITICAL PRESERVATION PRIORITIES (in order):
1. MAIN CHARACTER: Keep EVERY detail about the main character - age, gender, physical appearance, clothing, facial expressions, pose, emotions
2. SCENE SETTING: Preserve the complete scene description - location, environment, background elements, time of day
3. CHARACTER INTERACTIONS: Any interactions with objects, other characters, or environment elements
4. LIGHTING & MOOD: Atmosphere, lighting conditions, emotional tone of the scene
5. ARTISTIC STYLE: Children's book illustration style, art direction, color palette
6. SUPPORTING ELEMENTS: Secondary characters, important objects, props that affect the story

WHAT TO REMOVE/CONDENSE:
- Redundant adjectives and flowery language
- Overly detailed descriptions of minor background elements
- Repetitive phrasing
- Verbose explanations that don't add visual information
- Multiple similar descriptive words (keep the most important one)

MAINTAIN STORY CONSISTENCY: This image must match the character and world established in previous story pages.

ORIGINAL PROMPT ({original_length} characters):
{prompt}

Return ONLY the condensed prompt text that maintains character and scene integrity for children's storybook illustration."""


def build_summarization_prompt(prompt: str, target_length: int) -> str:
    """Build the summarization instruction for ``prompt``."""
    return SUMMARIZATION_TEMPLATE.format(
        target_length=target_length,
        original_length=len(prompt),
        prompt=prompt,
    )


def truncate_prompt(prompt: str, max_length: int) -> str:
    """Cut ``prompt`` to ``max_length`` characters, ending with an ellipsis."""
    if len(prompt) <= max_length:
        return prompt
    return prompt[: max_length - len(ELLIPSIS)] + ELLIPSIS


class PromptLengthGuard:
    """
    Keeps prompts under a fixed character ceiling.

    Args:
        client: Primary text provider used for summarization
        settings: Ceiling, targets and summarizer budget
        backoff: Backoff schedule shared with the main retry loop; its
                 attempt budget is replaced by ``settings.max_attempts``
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        client: PrimaryTextProvider,
        settings: PromptGuardSettings,
        backoff: BackoffPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._client = client
        self._settings = settings
        self._policy = (backoff or BackoffPolicy()).with_max_attempts(settings.max_attempts)
        self._sleep = sleep

    @property
    def max_length(self) -> int:
        return self._settings.max_length

    async def ensure_length(self, prompt: str) -> str:
        """
        Return ``prompt`` unchanged if it fits, else a condensed version that does.

        Args:
            prompt: Prompt to check

        Returns:
            A prompt of at most ``max_length`` characters
        """
        max_length = self._settings.max_length
        if len(prompt) <= max_length:
            logger.debug(f"Prompt length OK: {len(prompt)}/{max_length} characters")
            return prompt

        logger.info(f"Prompt too long: {len(prompt)}/{max_length} characters, summarizing...")
        try:
            summarized = await self._summarize(
                prompt,
                target_length=self._settings.target_length,
                policy=self._policy,
            )
        except (SummarizationError, RetryLoopError) as e:
            truncated = truncate_prompt(prompt, max_length)
            logger.warning(
                f"Failed to summarize prompt ({e}); using fallback truncation: "
                f"{len(truncated)} characters"
            )
            return truncated

        logger.info(f"Summarization complete: {len(prompt)} -> {len(summarized)} characters")
        return summarized

    async def _summarize(self, prompt: str, target_length: int, policy: BackoffPolicy) -> str:
        instruction = build_summarization_prompt(prompt, target_length)
        max_output_tokens = math.ceil(target_length / self._settings.chars_per_token)

        async def call(model: str) -> str:
            return await self._client.generate(
                model=model,
                prompt_parts=[instruction],
                max_output_tokens=max_output_tokens,
            )

        summary, model, _ = await run_with_rotation(
            call,
            self._settings.models,
            policy,
            provider=ProviderRole.PRIMARY,
            provider_name=self._client.name,
            sleep=self._sleep,
        )
        summary = summary.strip()

        if len(summary) <= self._settings.max_length:
            logger.debug(f"Summarized with {model}: {len(prompt)} -> {len(summary)} characters")
            return summary

        new_target = math.floor(target_length * self._settings.reduction_factor)
        if new_target < self._settings.min_target_length:
            raise SummarizationError("Unable to summarize prompt to acceptable length")

        logger.info(
            f"Summary still too long ({len(summary)}), retrying with target {new_target}"
        )

        return await self._summarize(prompt, new_target, policy.with_max_attempts(1))
