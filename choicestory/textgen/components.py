"""
Text generation component factory.

Builds provider clients, the prompt guard and the orchestrator from
settings, so CLI commands, route handlers and tests share one wiring path
instead of module-level client instances.
"""

from __future__ import annotations

import asyncio

from choicestory.config.settings import Settings
from choicestory.textgen.orchestrator import TextGenerationOrchestrator
from choicestory.textgen.prompt_guard import PromptLengthGuard
from choicestory.textgen.providers import GeminiTextClient, OpenAITextClient
from choicestory.textgen.retry import BackoffPolicy, SleepFn


class TextGenerationComponents:
    """
    Factory for building text generation components from settings.

    Example::

        factory = TextGenerationComponents(get_settings())
        orchestrator = factory.create_orchestrator()
        outcome = await orchestrator.generate_text("Tell a story about a fox")
    """

    def __init__(self, settings: Settings, sleep: SleepFn = asyncio.sleep):
        self.settings = settings
        self._sleep = sleep

    def create_backoff_policy(self) -> BackoffPolicy:
        """Create the primary BackoffPolicy from retry settings."""
        return BackoffPolicy(
            max_attempts=self.settings.retry.max_attempts,
            initial_delay_ms=self.settings.retry.initial_delay_ms,
        )

    def create_primary_client(self) -> GeminiTextClient:
        return GeminiTextClient(self.settings.gemini)

    def create_secondary_client(self) -> OpenAITextClient:
        return OpenAITextClient(self.settings.openai)

    def create_prompt_guard(self, client: GeminiTextClient | None = None) -> PromptLengthGuard:
        """Create a PromptLengthGuard that summarizes with the primary provider."""
        return PromptLengthGuard(
            client=client or self.create_primary_client(),
            settings=self.settings.prompt_guard,
            backoff=self.create_backoff_policy(),
            sleep=self._sleep,
        )

    def create_orchestrator(self, with_prompt_guard: bool = True) -> TextGenerationOrchestrator:
        """Create a fully wired TextGenerationOrchestrator."""
        primary = self.create_primary_client()
        return TextGenerationOrchestrator(
            primary=primary,
            secondary=self.create_secondary_client(),
            primary_models=primary.models,
            secondary_model=self.settings.openai.model,
            retry_policy=self.create_backoff_policy(),
            secondary_temperature=self.settings.openai.temperature,
            prompt_guard=self.create_prompt_guard(primary) if with_prompt_guard else None,
            sleep=self._sleep,
        )
