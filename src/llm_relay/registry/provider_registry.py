"""registry.provider_registry

Process-wide table of adapter classes keyed by their ``provider_name``.

Adapters enrol themselves with a class decorator when their module is
imported::

    @provider_registry.register
    class MistralAdapter(AbstractLLMProvider):
        provider_name = 'mistral'
        ...

The registry imports no adapter module, so any adapter can import it without
a cycle.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, TypeVar

from llm_relay.core.exceptions import ProviderNotFoundError

if TYPE_CHECKING:
    from llm_relay.core.abc import AbstractLLMProvider

AdapterT = TypeVar('AdapterT', bound='type[AbstractLLMProvider]')

_log = logging.getLogger(__name__)


class ProviderRegistry:
    """Slug → adapter class look-up. Slugs are case-insensitive."""

    def __init__(self) -> None:
        self._adapters: dict[str, type[AbstractLLMProvider]] = {}
        self._lock = threading.Lock()

    def register(self, adapter_cls: AdapterT) -> AdapterT:
        """Enrol *adapter_cls* under its ``provider_name``; returns it unchanged.

        Raises
        ------
        TypeError
            If *adapter_cls* is not an AbstractLLMProvider subclass.
        ValueError
            If it has no ``provider_name`` or the slug already belongs to
            another class.

        """
        from llm_relay.core.abc import AbstractLLMProvider  # local import avoids cycles

        if not isinstance(adapter_cls, type) or not issubclass(adapter_cls, AbstractLLMProvider):
            raise TypeError('adapter_cls must subclass AbstractLLMProvider')
        slug = adapter_cls.provider_name.lower()
        if not slug:
            raise ValueError(f'{adapter_cls.__name__} does not declare a provider_name')

        with self._lock:
            current = self._adapters.get(slug)
            if current is not None and current is not adapter_cls:
                raise ValueError(f'Provider {slug!r} is already served by {current.__name__}')
            self._adapters[slug] = adapter_cls
        _log.debug('Registered %s for provider %r', adapter_cls.__name__, slug)
        return adapter_cls

    def unregister(self, provider: str) -> None:
        with self._lock:
            self._adapters.pop(provider.lower(), None)

    def get_adapter_cls(self, provider: str) -> type[AbstractLLMProvider]:
        try:
            return self._adapters[provider.lower()]
        except KeyError as exc:
            raise ProviderNotFoundError(f'Unsupported provider: {provider}') from exc

    def available_providers(self) -> list[str]:
        return sorted(self._adapters)

    def __contains__(self, provider: object) -> bool:
        return isinstance(provider, str) and provider.lower() in self._adapters


provider_registry = ProviderRegistry()
