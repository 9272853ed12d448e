"""
Integration tests for the text generation pipeline.

Real settings, real provider clients, real prompt guard and orchestrator;
only LiteLLM's acompletion (the network boundary) and the backoff sleep
are replaced.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import litellm
import pytest

from choicestory.config.settings import (
    GeminiSettings,
    OpenAISettings,
    PromptGuardSettings,
    RetrySettings,
    Settings,
)
from choicestory.textgen import ErrorKind, ProviderRole, TextGenerationComponents


ACOMPLETION = "choicestory.textgen.providers.acompletion"


def _make_text_response(text: str) -> MagicMock:
    choice = MagicMock()
    choice.message.content = text
    response = MagicMock()
    response.choices = [choice]
    return response


class FakeLiteLLM:
    """Routes acompletion calls by model string and records them."""

    def __init__(self, replies: dict[str, list]):
        self._replies = {model: list(items) for model, items in replies.items()}
        self.calls: list[dict] = []

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        queue = self._replies[kwargs["model"]]
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, BaseException):
            raise reply
        return _make_text_response(reply)

    @property
    def models(self) -> list[str]:
        return [c["model"] for c in self.calls]


@pytest.fixture
def settings():
    return Settings(
        gemini=GeminiSettings(api_key="g-key", models=["gemini-1.5-flash", "gemini-pro"]),
        openai=OpenAISettings(api_key="o-key", model="gpt-4"),
        retry=RetrySettings(max_attempts=3, initial_delay_ms=1000),
        prompt_guard=PromptGuardSettings(models=["gemini-1.5-flash"]),
    )


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def orchestrator(settings, sleep):
    return TextGenerationComponents(settings, sleep=sleep).create_orchestrator()


def _not_found(model: str) -> Exception:
    return litellm.NotFoundError(
        message=f"models/{model} is not found for API version v1beta",
        llm_provider="gemini",
        model=model,
    )


def _unavailable(model: str) -> Exception:
    return litellm.ServiceUnavailableError(
        message="The model is overloaded", llm_provider="gemini", model=model
    )


@pytest.mark.asyncio
async def test_gemini_success_end_to_end(orchestrator, sleep):
    fake = FakeLiteLLM({"gemini/gemini-1.5-flash": ["Once upon a time, a fox..."]})

    with patch(ACOMPLETION, new=fake):
        outcome = await orchestrator.generate_text("Tell a story about a fox", max_output_tokens=400)

    assert outcome.success
    assert outcome.to_payload() == {
        "success": True,
        "text": "Once upon a time, a fox...",
        "provider": "gemini",
        "model": "gemini-1.5-flash",
    }
    assert fake.calls[0]["max_tokens"] == 400
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_rotation_then_fallback_to_openai(orchestrator, sleep):
    fake = FakeLiteLLM(
        {
            "gemini/gemini-1.5-flash": [_not_found("gemini-1.5-flash")],
            "gemini/gemini-pro": [_unavailable("gemini-pro")],
            "openai/gpt-4": ["A fox story from OpenAI."],
        }
    )

    with patch(ACOMPLETION, new=fake):
        outcome = await orchestrator.generate_text("Tell a story about a fox")

    assert outcome.success
    assert outcome.provider is ProviderRole.SECONDARY
    assert outcome.provider_name == "openai"
    assert outcome.model == "gpt-4"
    assert outcome.attempts == 5
    assert fake.models == [
        "gemini/gemini-1.5-flash",
        "gemini/gemini-pro",
        "gemini/gemini-pro",
        "gemini/gemini-pro",
        "openai/gpt-4",
    ]
    assert fake.calls[-1]["messages"] == [{"role": "user", "content": "Tell a story about a fox"}]
    assert fake.calls[-1]["temperature"] == 0.7
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_invalid_gemini_key_never_reaches_openai(orchestrator):
    fake = FakeLiteLLM(
        {
            "gemini/gemini-1.5-flash": [
                litellm.AuthenticationError(
                    message="API key not valid", llm_provider="gemini", model="gemini-1.5-flash"
                )
            ],
            "openai/gpt-4": ["should not be used"],
        }
    )

    with patch(ACOMPLETION, new=fake):
        outcome = await orchestrator.generate_text("Tell a story about a fox")

    assert outcome.status_code == 401
    assert outcome.to_payload()["code"] == "AUTH_ERROR"
    assert outcome.to_payload()["error"] == "Authentication Error"
    assert fake.models == ["gemini/gemini-1.5-flash"]


@pytest.mark.asyncio
async def test_both_providers_fail(orchestrator):
    fake = FakeLiteLLM(
        {
            "gemini/gemini-1.5-flash": [_unavailable("gemini-1.5-flash")],
            "openai/gpt-4": [
                litellm.RateLimitError(message="Rate limit reached", llm_provider="openai", model="gpt-4")
            ],
        }
    )

    with patch(ACOMPLETION, new=fake):
        outcome = await orchestrator.generate_text("Tell a story about a fox")

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.RATE_LIMITED
    assert outcome.status_code == 500
    assert set(outcome.to_payload()["details"]) == {"gemini", "openai"}


@pytest.mark.asyncio
async def test_long_prompt_summarized_before_generation(orchestrator):
    summary = "A girl in a red dress meets a butterfly in a magical forest."
    fake = FakeLiteLLM({"gemini/gemini-1.5-flash": [summary, "The story begins..."]})
    long_prompt = "A curious girl in a red dress wanders a forest. " * 120

    with patch(ACOMPLETION, new=fake):
        outcome = await orchestrator.generate_text(long_prompt)

    assert outcome.success
    assert outcome.text == "The story begins..."
    summarize_call, generate_call = fake.calls
    assert "approximately 3800 characters" in summarize_call["messages"][0]["content"][0]["text"]
    assert generate_call["messages"][0]["content"][0]["text"] == summary


@pytest.mark.asyncio
async def test_long_prompt_truncated_when_summarizer_down(orchestrator, sleep):
    fake = FakeLiteLLM(
        {"gemini/gemini-1.5-flash": [_unavailable("gemini-1.5-flash")] * 2 + ["The story begins..."]}
    )
    long_prompt = "A" * 6000

    with patch(ACOMPLETION, new=fake):
        outcome = await orchestrator.generate_text(long_prompt)

    assert outcome.success
    sent = fake.calls[-1]["messages"][0]["content"][0]["text"]
    assert sent == "A" * 3997 + "..."
    assert len(fake.calls) == 3
