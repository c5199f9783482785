"""registry.provider_factory

Factory responsible for converting a provider slug (or a ModelId) plus a
ProviderConfiguration into a fully initialized adapter instance (subclass of
AbstractLLMProvider).

Importing this module registers the built-in adapters.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

# Built-in adapters register themselves on import.
from llm_relay.adapters import gemini_adapter, ollama_adapter, openai_adapter  # noqa: F401
from llm_relay.core.exceptions import LLMRelayError
from llm_relay.core.model_id import ModelId, parse_model_id
from llm_relay.core.settings import default_configuration
from llm_relay.registry.provider_registry import provider_registry

if TYPE_CHECKING:
    from llm_relay.core.abc import AbstractLLMProvider
    from llm_relay.core.types import ProviderConfiguration

_log = logging.getLogger(__name__)


class LLMProviderFactory:
    """Factory for creating provider-specific adapters.

    This class is stateless; all information resides in provider_registry.
    Instances are never cached: configuration is resolved and validated
    afresh for every adapter built.
    """

    @staticmethod
    def create_provider(
        provider: str,
        config: ProviderConfiguration,
        **adapter_kwargs: Any,
    ) -> AbstractLLMProvider:
        """Return a concrete adapter for *provider*.

        Parameters
        ----------
        provider
            Registry slug such as ``"openai"``.
        config
            Model, credentials and sampling defaults.
        **adapter_kwargs
            Forwarded to the adapter's constructor (``transport``,
            ``client``, ``timeout``, ``environ``…) without changing the
            factory signature.

        """
        adapter_class = provider_registry.get_adapter_cls(provider)
        return adapter_class(config, **adapter_kwargs)

    @staticmethod
    def from_model_id(
        model_id: str | ModelId,
        config: ProviderConfiguration | None = None,
        **adapter_kwargs: Any,
    ) -> AbstractLLMProvider:
        """Build an adapter from ``"provider:model"``.

        The model half of *model_id* replaces ``config.model``; without a
        *config* the provider's defaults are used.
        """
        model_identifier = parse_model_id(model_id) if isinstance(model_id, str) else model_id
        base = config or default_configuration(model_identifier.provider)
        resolved = base.model_copy(update={'model': model_identifier.model})
        return LLMProviderFactory.create_provider(model_identifier.provider, resolved, **adapter_kwargs)

    @staticmethod
    def available_providers() -> list[str]:
        return provider_registry.available_providers()

    @staticmethod
    def get_supported_models(provider: str) -> list[str]:
        """Return the static catalogue of *provider* (empty if unknown)."""
        try:
            adapter_class = provider_registry.get_adapter_cls(provider)
        except LLMRelayError:
            return []
        return list(adapter_class.supported_models)

    @staticmethod
    def validate_config(provider: str, config: ProviderConfiguration) -> bool:
        """Build an adapter and run its local config check; never raises."""
        try:
            return LLMProviderFactory.create_provider(provider, config).validate_config()
        except (LLMRelayError, TypeError, ValueError):
            _log.debug('Configuration rejected for provider %s', provider, exc_info=True)
            return False

    @staticmethod
    def default_configs() -> dict[str, ProviderConfiguration]:
        """Baseline configuration for every registered provider."""
        return {name: default_configuration(name) for name in provider_registry.available_providers()}
