"""
Unit tests for the provider clients.

LiteLLM's acompletion is patched where the providers module imports it;
no request ever leaves the process.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from choicestory.config.settings import GeminiSettings, OpenAISettings
from choicestory.textgen.classification import classify_error
from choicestory.textgen.models import ErrorKind, ProviderError
from choicestory.textgen.providers import GeminiTextClient, OpenAITextClient


ACOMPLETION = "choicestory.textgen.providers.acompletion"


def _make_text_response(text: str | None) -> MagicMock:
    """Build a mock LiteLLM response with a single text choice."""
    choice = MagicMock()
    choice.message.content = text

    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def gemini():
    return GeminiTextClient(
        GeminiSettings(api_key="test-gemini-key", models=["gemini-1.5-flash"], timeout_seconds=30)
    )


@pytest.fixture
def openai_client():
    return OpenAITextClient(OpenAISettings(api_key="test-openai-key", model="gpt-4", timeout_seconds=30))


class TestGeminiTextClient:

    def test_name_and_models(self, gemini):
        assert gemini.name == "gemini"
        assert gemini.models == ["gemini-1.5-flash"]

    @pytest.mark.asyncio
    async def test_returns_stripped_text(self, gemini):
        mock_call = AsyncMock(return_value=_make_text_response("  A fox story.  \n"))
        with patch(ACOMPLETION, new=mock_call):
            text = await gemini.generate("gemini-1.5-flash", ["Tell a story about a fox"])

        assert text == "A fox story."

    @pytest.mark.asyncio
    async def test_builds_litellm_request(self, gemini):
        mock_call = AsyncMock(return_value=_make_text_response("ok"))
        with patch(ACOMPLETION, new=mock_call):
            await gemini.generate("gemini-pro", ["Part one.", "Part two."], max_output_tokens=128)

        kwargs = mock_call.call_args.kwargs
        assert kwargs["model"] == "gemini/gemini-pro"
        assert kwargs["api_key"] == "test-gemini-key"
        assert kwargs["max_tokens"] == 128
        assert kwargs["timeout"] == 30
        assert kwargs["messages"] == [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Part one."},
                    {"type": "text", "text": "Part two."},
                ],
            }
        ]

    @pytest.mark.asyncio
    async def test_omits_max_tokens_when_not_given(self, gemini):
        mock_call = AsyncMock(return_value=_make_text_response("ok"))
        with patch(ACOMPLETION, new=mock_call):
            await gemini.generate("gemini-pro", ["prompt"])

        assert "max_tokens" not in mock_call.call_args.kwargs

    @pytest.mark.asyncio
    async def test_missing_api_key_is_auth_error(self):
        client = GeminiTextClient(GeminiSettings(api_key=""))
        mock_call = AsyncMock()

        with patch(ACOMPLETION, new=mock_call):
            with pytest.raises(ProviderError) as exc_info:
                await client.generate("gemini-pro", ["prompt"])

        assert classify_error(exc_info.value) is ErrorKind.AUTH_ERROR
        mock_call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sdk_error_wrapped_with_cause(self, gemini):
        boom = RuntimeError("503 The model is overloaded")
        with patch(ACOMPLETION, new=AsyncMock(side_effect=boom)):
            with pytest.raises(ProviderError) as exc_info:
                await gemini.generate("gemini-pro", ["prompt"])

        assert exc_info.value.cause is boom
        assert exc_info.value.provider == "gemini"
        assert classify_error(exc_info.value) is ErrorKind.TRANSIENT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [None, "", "   "])
    async def test_empty_content_raises(self, gemini, content):
        with patch(ACOMPLETION, new=AsyncMock(return_value=_make_text_response(content))):
            with pytest.raises(ProviderError, match="empty response"):
                await gemini.generate("gemini-pro", ["prompt"])

    @pytest.mark.asyncio
    async def test_no_choices_raises(self, gemini):
        response = MagicMock()
        response.choices = []
        with patch(ACOMPLETION, new=AsyncMock(return_value=response)):
            with pytest.raises(ProviderError, match="empty response"):
                await gemini.generate("gemini-pro", ["prompt"])


class TestOpenAITextClient:

    def test_name(self, openai_client):
        assert openai_client.name == "openai"

    @pytest.mark.asyncio
    async def test_builds_litellm_request(self, openai_client):
        mock_call = AsyncMock(return_value=_make_text_response("A fox story."))
        messages = [{"role": "user", "content": "Tell a story about a fox"}]

        with patch(ACOMPLETION, new=mock_call):
            text = await openai_client.generate(
                "gpt-4", messages, max_output_tokens=300, temperature=0.7
            )

        assert text == "A fox story."
        kwargs = mock_call.call_args.kwargs
        assert kwargs["model"] == "openai/gpt-4"
        assert kwargs["messages"] == messages
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 300
        assert kwargs["api_key"] == "test-openai-key"

    @pytest.mark.asyncio
    async def test_missing_api_key_is_auth_error(self):
        client = OpenAITextClient(OpenAISettings(api_key=""))

        with pytest.raises(ProviderError) as exc_info:
            await client.generate("gpt-4", [{"role": "user", "content": "hi"}])

        assert classify_error(exc_info.value) is ErrorKind.AUTH_ERROR

    @pytest.mark.asyncio
    async def test_sdk_error_wrapped(self, openai_client):
        with patch(ACOMPLETION, new=AsyncMock(side_effect=RuntimeError("Rate limit reached"))):
            with pytest.raises(ProviderError) as exc_info:
                await openai_client.generate("gpt-4", [{"role": "user", "content": "hi"}])

        assert classify_error(exc_info.value) is ErrorKind.RATE_LIMITED
