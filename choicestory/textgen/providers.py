"""
Text provider clients.

Both clients go through LiteLLM's ``acompletion`` so provider differences
stay in the model string (``gemini/...``, ``openai/...``). Failures are
wrapped in ``ProviderError`` with the SDK exception kept as ``cause``; the
classifier inspects that cause, not our wrapper text.

The orchestrator depends on the two Protocols below rather than these
classes, so tests and alternative backends can be injected.
"""

from __future__ import annotations

from typing import Any, Protocol

from litellm import acompletion

from choicestory.config.logging import get_logger
from choicestory.config.settings import GeminiSettings, OpenAISettings
from choicestory.textgen.models import ProviderError

logger = get_logger(__name__)


class PrimaryTextProvider(Protocol):
    """Prompt-parts provider with several named models."""

    name: str

    async def generate(
        self,
        model: str,
        prompt_parts: list[str],
        max_output_tokens: int | None = None,
    ) -> str:
        ...


class SecondaryTextProvider(Protocol):
    """Chat-messages provider used as the fallback."""

    name: str

    async def generate(
        self,
        model: str,
        messages: list[dict[str, Any]],
        max_output_tokens: int | None = None,
        temperature: float = 0.7,
    ) -> str:
        ...


def _extract_text(response: Any) -> str:
    """Pull the first choice's content out of a LiteLLM response."""
    if not response.choices:
        return ""
    content = response.choices[0].message.content
    return content.strip() if isinstance(content, str) else ""


class GeminiTextClient:
    """
    Google Gemini client (primary provider).

    Args:
        settings: Gemini configuration (api_key, models, timeout)
    """

    name = "gemini"

    def __init__(self, settings: GeminiSettings):
        self._settings = settings

    @property
    def models(self) -> list[str]:
        return list(self._settings.models)

    async def generate(
        self,
        model: str,
        prompt_parts: list[str],
        max_output_tokens: int | None = None,
    ) -> str:
        """
        Generate text from one user turn built from ``prompt_parts``.

        Raises:
            ProviderError: On a missing API key, an API failure or an empty reply
        """
        if not self._settings.api_key:
            raise ProviderError(
                "Gemini API key is not configured. Set GEMINI_API_KEY in your environment.",
                provider=self.name,
            )

        call_kwargs: dict[str, Any] = {
            "model": f"gemini/{model}",
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "text", "text": part} for part in prompt_parts],
                }
            ],
            "api_key": self._settings.api_key,
            "timeout": self._settings.timeout_seconds,
        }
        if max_output_tokens is not None:
            call_kwargs["max_tokens"] = max_output_tokens

        logger.debug(f"Gemini request: model={model}, parts={len(prompt_parts)}")
        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            raise ProviderError(f"Gemini request failed: {e}", cause=e, provider=self.name) from e

        text = _extract_text(response)
        if not text:
            raise ProviderError("Gemini returned an empty response", provider=self.name)
        return text


class OpenAITextClient:
    """
    OpenAI chat completions client (secondary provider).

    Args:
        settings: OpenAI configuration (api_key, model, temperature, timeout)
    """

    name = "openai"

    def __init__(self, settings: OpenAISettings):
        self._settings = settings

    async def generate(
        self,
        model: str,
        messages: list[dict[str, Any]],
        max_output_tokens: int | None = None,
        temperature: float = 0.7,
    ) -> str:
        """
        Generate a chat completion.

        Raises:
            ProviderError: On a missing API key, an API failure or an empty reply
        """
        if not self._settings.api_key:
            raise ProviderError(
                "OpenAI API key is not configured. Set OPENAI_API_KEY in your environment.",
                provider=self.name,
            )

        call_kwargs: dict[str, Any] = {
            "model": f"openai/{model}",
            "messages": messages,
            "temperature": temperature,
            "api_key": self._settings.api_key,
            "timeout": self._settings.timeout_seconds,
        }
        if max_output_tokens is not None:
            call_kwargs["max_tokens"] = max_output_tokens

        logger.debug(f"OpenAI request: model={model}, messages={len(messages)}")
        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            raise ProviderError(f"OpenAI request failed: {e}", cause=e, provider=self.name) from e

        text = _extract_text(response)
        if not text:
            raise ProviderError("OpenAI returned an empty response", provider=self.name)
        return text
