"""core.types

Shared DTOs and enums used throughout *llm_relay*.

These models live in the **core** layer so that *adapters*, *registry*, and
the *service* layer can depend on them without causing circular imports.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

# ---------------------------------------------------------------------------
# Chat roles (OpenAI-style for broad compatibility)
# ---------------------------------------------------------------------------


class Role(StrEnum):
    system = 'system'
    user = 'user'
    assistant = 'assistant'


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class Message(BaseModel):
    """Single chat message."""

    role: Role
    content: str = Field(..., min_length=1)

    # Immutable value-object
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Provider configuration (owned by the caller, immutable per request)
# ---------------------------------------------------------------------------


class ProviderConfiguration(BaseModel):
    """Model, credentials and sampling defaults for one adapter."""

    model: str = ''
    api_key: SecretStr | None = None
    base_url: str | None = None
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(1000, ge=1, description='Maximum tokens in completion')
    top_p: float | None = Field(None, ge=0.0, le=1.0)
    frequency_penalty: float | None = Field(None, ge=-2.0, le=2.0)
    presence_penalty: float | None = Field(None, ge=-2.0, le=2.0)

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    def api_key_value(self) -> str:
        """Return the plain API key, or an empty string if none is set."""
        return self.api_key.get_secret_value() if self.api_key is not None else ''


# ---------------------------------------------------------------------------
# Usage / finish reason
# ---------------------------------------------------------------------------


class Usage(BaseModel):
    """Token accounting normalised across backends."""

    prompt_tokens: int = Field(0, ge=0)
    completion_tokens: int = Field(0, ge=0)
    total_tokens: int = Field(0, ge=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode='before')
    @classmethod
    def _fill_total(cls, data: Any) -> Any:
        # Several backends omit the total; derive it from the two halves.
        if isinstance(data, dict) and not data.get('total_tokens'):
            data = {**data}
            data['total_tokens'] = (data.get('prompt_tokens') or 0) + (data.get('completion_tokens') or 0)
        return data


class FinishReason(StrEnum):
    stop = 'stop'
    length = 'length'
    safety_block = 'safety-block'
    tool = 'tool'
    unknown = 'unknown'

    @classmethod
    def from_backend(cls, raw: str | None) -> FinishReason | None:
        """Map a vendor finish/stop reason onto the shared vocabulary."""
        if not raw:
            return None
        return _FINISH_REASON_ALIASES.get(raw.lower(), cls.unknown)


_FINISH_REASON_ALIASES: dict[str, FinishReason] = {
    'stop': FinishReason.stop,
    'end_turn': FinishReason.stop,
    'stop_sequence': FinishReason.stop,
    'length': FinishReason.length,
    'max_tokens': FinishReason.length,
    'content_filter': FinishReason.safety_block,
    'safety': FinishReason.safety_block,
    'blocklist': FinishReason.safety_block,
    'prohibited_content': FinishReason.safety_block,
    'spii': FinishReason.safety_block,
    'recitation': FinishReason.safety_block,
    'safety-block': FinishReason.safety_block,
    'tool_calls': FinishReason.tool,
    'function_call': FinishReason.tool,
    'tool_use': FinishReason.tool,
}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class NormalizedResponse(BaseModel):
    """Backend-independent result of one generation call."""

    content: str
    model: str
    usage: Usage | None = None
    finish_reason: FinishReason | None = None

    model_config = ConfigDict(frozen=True)


class StreamChunk(BaseModel):
    """One increment produced by an adapter while streaming.

    Only the terminal chunk of a stream is expected to carry ``usage`` and
    ``finish_reason``; intermediate chunks normally carry text alone.
    """

    text: str = ''
    model: str | None = None
    usage: Usage | None = None
    finish_reason: FinishReason | None = None

    model_config = ConfigDict(frozen=True)


class ModelLimits(BaseModel):
    """Static per-model output and context limits."""

    max_tokens: int
    context_window: int
    approximate: bool = False

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Per-call generation options
# ---------------------------------------------------------------------------

TokenCallback = Callable[[str], Awaitable[None] | None]
CompleteCallback = Callable[[NormalizedResponse], Awaitable[None] | None]
ErrorCallback = Callable[[Exception], Awaitable[None] | None]


class StreamingCallbacks(BaseModel):
    """Notification channels for a streamed generation.

    Callbacks may be plain functions or coroutine functions.
    """

    on_token: TokenCallback | None = None
    on_complete: CompleteCallback | None = None
    on_error: ErrorCallback | None = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class GenerationOptions(BaseModel):
    """Per-call overrides; unset fields fall back to the configuration."""

    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, ge=1)
    stream: bool = False
    streaming_callbacks: StreamingCallbacks | None = None

    model_config = ConfigDict(frozen=True)


class SamplingParams(BaseModel):
    """Effective sampling parameters after precedence has been applied."""

    temperature: float
    max_tokens: int
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None

    model_config = ConfigDict(frozen=True)
