"""
Text Generation Layer.

Generates story text with a primary provider (Gemini) and a fallback
provider (OpenAI), classifying failures to decide between retrying,
rotating models, falling back, or stopping:

    GenerationRequest
          ↓
    PromptLengthGuard.ensure_length()   (summarize or truncate long prompts)
          ↓
    TextGenerationOrchestrator.generate()
          ↓
    GenerationOutcome  →  route handler renders outcome.to_payload()

Provider failures are returned as outcomes; nothing provider-specific is
raised to the caller.
"""

from choicestory.textgen.classification import classify_error
from choicestory.textgen.components import TextGenerationComponents
from choicestory.textgen.models import (
    ErrorKind,
    GenerationAttempt,
    GenerationOutcome,
    GenerationRequest,
    ProviderError,
    ProviderRole,
)
from choicestory.textgen.orchestrator import TextGenerationOrchestrator
from choicestory.textgen.prompt_guard import PromptLengthGuard, truncate_prompt
from choicestory.textgen.providers import GeminiTextClient, OpenAITextClient
from choicestory.textgen.retry import BackoffPolicy

__all__ = [
    "BackoffPolicy",
    "ErrorKind",
    "GeminiTextClient",
    "GenerationAttempt",
    "GenerationOutcome",
    "GenerationRequest",
    "OpenAITextClient",
    "PromptLengthGuard",
    "ProviderError",
    "ProviderRole",
    "TextGenerationComponents",
    "TextGenerationOrchestrator",
    "classify_error",
    "truncate_prompt",
]
