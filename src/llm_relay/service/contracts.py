"""service.contracts

Inbound shapes and collaborator interfaces for the chat service.

Persistence is owned elsewhere; the service only needs to *read* a project's
chat settings and a conversation's history, described here as protocols.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from llm_relay.core.types import ProviderConfiguration

if TYPE_CHECKING:
    from collections.abc import Sequence

    from llm_relay.core.types import Message


class ChatSettings(BaseModel):
    """A project's stored chat configuration."""

    provider: str = 'openai'
    model: str = 'gpt-4o-mini'
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(1000, ge=1)
    top_p: float | None = Field(None, ge=0.0, le=1.0)
    frequency_penalty: float | None = Field(None, ge=-2.0, le=2.0)
    presence_penalty: float | None = Field(None, ge=-2.0, le=2.0)
    system_prompt: str | None = None
    max_conversation_length: int = Field(50, ge=0, description='History messages forwarded per request; 0 forwards all')
    api_key: SecretStr | None = None
    base_url: str | None = None

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    def to_provider_configuration(self) -> ProviderConfiguration:
        return ProviderConfiguration(
            model=self.model,
            api_key=self.api_key,
            base_url=self.base_url,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p,
            frequency_penalty=self.frequency_penalty,
            presence_penalty=self.presence_penalty,
        )


@runtime_checkable
class ChatSettingsStore(Protocol):
    """Read access to chat settings keyed by project."""

    async def get_chat_settings(self, project_id: str) -> ChatSettings | None: ...


@runtime_checkable
class ConversationStore(Protocol):
    """Read access to a conversation's messages, oldest first."""

    async def get_messages(self, conversation_id: str) -> Sequence[Message]: ...
