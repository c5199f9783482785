"""service.chat_service

Orchestrates one chat turn: pick the adapter configured for a project, build
the outgoing conversation, call the adapter and report usage.

The service never swaps providers on failure and never retries; adapter
errors reach the caller with their original classification so the caller
can choose its own retry or fallback policy.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from llm_relay.core.exceptions import ConfigurationError, LLMRelayError
from llm_relay.core.types import Message, NormalizedResponse, Role, Usage
from llm_relay.registry.provider_factory import LLMProviderFactory
from llm_relay.service.contracts import ChatSettings

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from llm_relay.core.abc import AbstractLLMProvider
    from llm_relay.core.types import GenerationOptions, ProviderConfiguration
    from llm_relay.service.contracts import ChatSettingsStore, ConversationStore

    ProviderBuilder = Callable[[str, ProviderConfiguration], AbstractLLMProvider]

_log = logging.getLogger(__name__)

# Rough approximation: 1 token ≈ 4 characters of English text.
_CHARS_PER_TOKEN = 4


class ChatResult(BaseModel):
    """Response of one chat turn plus the usage to bill it with."""

    response: NormalizedResponse
    usage: Usage
    usage_estimated: bool = False

    model_config = ConfigDict(frozen=True)


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


class ChatService:
    """Chat orchestration over any adapter satisfying the provider contract."""

    def __init__(
        self,
        provider_builder: ProviderBuilder | None = None,
        *,
        settings_store: ChatSettingsStore | None = None,
        conversation_store: ConversationStore | None = None,
    ) -> None:
        self._build_provider = provider_builder or LLMProviderFactory.create_provider
        self._settings_store = settings_store
        self._conversation_store = conversation_store

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def select_provider(self, settings: ChatSettings) -> AbstractLLMProvider:
        return self._build_provider(settings.provider, settings.to_provider_configuration())

    def build_messages(
        self,
        provider: AbstractLLMProvider,
        settings: ChatSettings,
        history: Sequence[Message],
        user_message: str,
        *,
        context: str | None = None,
    ) -> list[Message]:
        """System directive + project context + recent history + new message."""
        messages: list[Message] = []
        if provider.accepts_system_role:
            if settings.system_prompt:
                messages.append(Message(role=Role.system, content=settings.system_prompt))
            if context:
                messages.append(Message(role=Role.system, content=f'Project Context:\n{context}'))

        limit = settings.max_conversation_length
        # 0 means no limit.
        recent = list(history)[-limit:] if limit else list(history)
        messages.extend(recent)
        messages.append(Message(role=Role.user, content=user_message))
        return messages

    # ------------------------------------------------------------------
    # Chat turns
    # ------------------------------------------------------------------

    async def process_message(
        self,
        settings: ChatSettings,
        history: Sequence[Message],
        user_message: str,
        *,
        options: GenerationOptions | None = None,
        context: str | None = None,
    ) -> ChatResult:
        """Generate the assistant reply for *user_message*.

        Adapter errors propagate unchanged.
        """
        provider = self.select_provider(settings)
        messages = self.build_messages(provider, settings, history, user_message, context=context)
        _log.info(
            'Chat turn provider=%s model=%s history=%d outgoing=%d',
            settings.provider,
            settings.model,
            len(history),
            len(messages),
        )

        response = await provider.generate_response(messages, options)

        if response.usage is not None:
            return ChatResult(response=response, usage=response.usage)
        usage = Usage(
            prompt_tokens=sum(estimate_tokens(m.content) for m in messages),
            completion_tokens=estimate_tokens(response.content),
        )
        return ChatResult(response=response, usage=usage, usage_estimated=True)

    async def respond(
        self,
        project_id: str,
        conversation_id: str,
        user_message: str,
        *,
        options: GenerationOptions | None = None,
        context: str | None = None,
    ) -> ChatResult:
        """Like :meth:`process_message`, reading settings and history from the stores."""
        if self._settings_store is None or self._conversation_store is None:
            raise ConfigurationError('ChatService.respond requires a settings store and a conversation store')

        settings = await self._settings_store.get_chat_settings(project_id)
        if settings is None:
            _log.info('No chat settings for project %s; using defaults', project_id)
            settings = ChatSettings()
        history = await self._conversation_store.get_messages(conversation_id)
        return await self.process_message(settings, history, user_message, options=options, context=context)

    def validate_settings(self, settings: ChatSettings) -> bool:
        """Local check that *settings* yield a usable adapter; never raises."""
        try:
            return self.select_provider(settings).validate_config()
        except (LLMRelayError, TypeError, ValueError):
            _log.debug('Chat settings rejected', exc_info=True)
            return False
