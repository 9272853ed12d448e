"""
Data structures for text generation.

Everything here is transient and request-scoped:
- GenerationRequest: validated caller input (immutable)
- GenerationAttempt: one provider call, logged and discarded
- GenerationOutcome: terminal value returned to the caller
- ErrorKind / ProviderRole: the failure taxonomy and provider slots

Also defines the exceptions raised between the provider clients, the retry
loop and the orchestrator. None of them escape ``TextGenerationOrchestrator``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ProviderRole(str, Enum):
    """Which slot a provider occupies in the fallback chain."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class ErrorKind(str, Enum):
    """Classification of a failed provider call."""

    AUTH_ERROR = "auth_error"
    MODEL_UNAVAILABLE = "model_unavailable"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


class GenerationRequest(BaseModel):
    """
    A text generation request.

    Example:
        >>> GenerationRequest(prompt="Tell a story about a fox", max_output_tokens=512)
    """

    prompt: str = Field(min_length=1, description="Prompt sent to the model")
    max_output_tokens: int | None = Field(
        None, gt=0, description="Optional cap on generated tokens"
    )
    language: Literal["en", "he"] = Field(default="en", description="Story language")
    user_id: str | None = Field(None, description="Requesting user, included in generation logs")

    model_config = ConfigDict(frozen=True)

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Prompt must not be empty")
        return value


class GenerationAttempt(BaseModel):
    """A single provider call."""

    provider: ProviderRole
    provider_name: str
    model: str
    attempt_number: int = Field(ge=1)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(frozen=True)


class GenerationOutcome(BaseModel):
    """
    Terminal result of a generation call.

    ``success=True`` always carries non-empty text; ``success=False`` always
    carries an ``error_kind``.
    """

    success: bool
    text: str | None = None
    error_kind: ErrorKind | None = None
    provider: ProviderRole
    provider_name: str
    model: str
    message: str | None = Field(None, description="User-facing failure message")
    details: dict[str, str] = Field(
        default_factory=dict, description="Provider name -> last error message"
    )
    attempts: int = Field(default=0, ge=0, description="Provider calls made")

    @model_validator(mode="after")
    def _check_invariants(self) -> GenerationOutcome:
        if self.success:
            if not self.text:
                raise ValueError("A successful outcome must carry non-empty text")
            if self.error_kind is not None:
                raise ValueError("A successful outcome cannot carry an error kind")
        elif self.error_kind is None:
            raise ValueError("A failed outcome must carry an error kind")
        return self

    @property
    def is_auth_failure(self) -> bool:
        return not self.success and self.error_kind is ErrorKind.AUTH_ERROR

    @property
    def status_code(self) -> int:
        """HTTP status a route handler should answer with."""
        if self.success:
            return 200
        if self.is_auth_failure:
            return 401
        return 500

    def to_payload(self) -> dict[str, Any]:
        """
        Render the caller-facing response body.

        Successful outcomes expose text, provider and model. Failures expose
        a short error label, the error kind and user-facing message, plus per-provider details
        when more than one provider was tried.
        """
        if self.success:
            return {
                "success": True,
                "text": self.text,
                "provider": self.provider_name,
                "model": self.model,
            }

        payload: dict[str, Any] = {
            "success": False,
            "error": "Authentication Error" if self.is_auth_failure else "Text generation failed",
            "provider": self.provider_name,
            "errorKind": self.error_kind.value,
            "message": self.message,
        }
        if self.is_auth_failure:
            payload["code"] = "AUTH_ERROR"
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class ProviderError(Exception):
    """A provider call failed. ``cause`` holds the underlying SDK exception."""

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        provider: str | None = None,
    ):
        super().__init__(message)
        self.cause = cause
        self.provider = provider


class RetryLoopError(Exception):
    """Base for the retry loop's terminal exceptions."""

    def __init__(
        self,
        message: str,
        *,
        error: BaseException,
        kind: ErrorKind,
        model: str,
        calls: int,
    ):
        super().__init__(message)
        self.error = error
        self.kind = kind
        self.model = model
        self.calls = calls


class AuthenticationFailed(RetryLoopError):
    """The provider rejected our credentials. Never retried."""


class RetriesExhausted(RetryLoopError):
    """The attempt budget ran out; ``error`` is the last failure observed."""


class SummarizationError(Exception):
    """Prompt summarization could not produce a prompt under the ceiling."""
