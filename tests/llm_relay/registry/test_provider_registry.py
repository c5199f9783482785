from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest

from llm_relay.adapters.ollama_adapter import OllamaAdapter
from llm_relay.core.abc import AbstractLLMProvider
from llm_relay.core.exceptions import ProviderNotFoundError
from llm_relay.core.types import Message, NormalizedResponse, SamplingParams, StreamChunk
from llm_relay.registry.provider_registry import ProviderRegistry, provider_registry


class DummyAdapter(AbstractLLMProvider):
    provider_name = 'Dummy'
    requires_api_key = False

    async def _invoke(self, messages: list[Message], params: SamplingParams) -> NormalizedResponse:  # noqa: ARG002
        return NormalizedResponse(content='dummy', model=self.model)

    async def _stream(self, messages: list[Message], params: SamplingParams) -> AsyncIterator[StreamChunk]:  # noqa: ARG002
        yield StreamChunk(text='dummy')


@pytest.fixture(autouse=True)
def _cleanup() -> Iterator[None]:
    yield
    provider_registry.unregister('dummy')


def test_register_keys_on_provider_name() -> None:
    reg = ProviderRegistry()
    assert reg.register(DummyAdapter) is DummyAdapter
    assert reg.available_providers() == ['dummy']
    assert reg.get_adapter_cls('DUMMY') is DummyAdapter
    assert 'dummy' in reg


def test_register_works_as_class_decorator() -> None:
    @provider_registry.register
    class DecoratedAdapter(DummyAdapter):
        provider_name = 'dummy'

    assert provider_registry.get_adapter_cls('dummy') is DecoratedAdapter


def test_builtin_adapters_enrol_on_import() -> None:
    assert provider_registry.get_adapter_cls('ollama') is OllamaAdapter


def test_register_is_idempotent_for_the_same_class() -> None:
    reg = ProviderRegistry()
    reg.register(DummyAdapter)
    reg.register(DummyAdapter)
    assert reg.available_providers() == ['dummy']


def test_slug_taken_by_another_class() -> None:
    class Impostor(DummyAdapter):
        pass

    Impostor.provider_name = 'ollama'
    with pytest.raises(ValueError, match='already served by OllamaAdapter'):
        provider_registry.register(Impostor)
    assert provider_registry.get_adapter_cls('ollama') is OllamaAdapter


def test_register_type_validation() -> None:
    reg = ProviderRegistry()
    with pytest.raises(TypeError):
        reg.register(object)  # type: ignore[type-var]


def test_register_requires_provider_name() -> None:
    class Nameless(DummyAdapter):
        provider_name = ''

    with pytest.raises(ValueError, match='provider_name'):
        ProviderRegistry().register(Nameless)


def test_unknown_provider() -> None:
    with pytest.raises(ProviderNotFoundError):
        ProviderRegistry().get_adapter_cls('no-such')
    assert 'no-such' not in provider_registry
