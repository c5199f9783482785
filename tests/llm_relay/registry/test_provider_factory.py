from __future__ import annotations

import httpx
import pytest

from llm_relay.adapters.gemini_adapter import GeminiAdapter
from llm_relay.adapters.ollama_adapter import OllamaAdapter
from llm_relay.adapters.openai_adapter import OpenAIAdapter
from llm_relay.core.exceptions import ProviderNotFoundError
from llm_relay.core.types import ProviderConfiguration
from llm_relay.registry.provider_factory import LLMProviderFactory


def test_builtin_providers_registered() -> None:
    assert {'openai', 'gemini', 'ollama'} <= set(LLMProviderFactory.available_providers())


@pytest.mark.parametrize(
    ('provider', 'cls'),
    [('openai', OpenAIAdapter), ('gemini', GeminiAdapter), ('ollama', OllamaAdapter)],
)
def test_create_provider(provider: str, cls: type) -> None:
    adapter = LLMProviderFactory.create_provider(
        provider,
        ProviderConfiguration(model='m', api_key='k'),
        environ={},
    )
    assert isinstance(adapter, cls)
    assert adapter.model == 'm'


def test_adapter_kwargs_are_forwarded() -> None:
    transport = httpx.MockTransport(lambda _: httpx.Response(200))
    adapter = LLMProviderFactory.create_provider('ollama', ProviderConfiguration(model='m'), transport=transport)
    assert adapter._transport is transport


def test_from_model_id_keeps_ollama_tag() -> None:
    adapter = LLMProviderFactory.from_model_id('ollama:llama3.2:3b', environ={})
    assert isinstance(adapter, OllamaAdapter)
    assert adapter.model == 'llama3.2:3b'
    assert adapter.config.base_url == 'http://localhost:11434'


def test_unknown_provider() -> None:
    with pytest.raises(ProviderNotFoundError):
        LLMProviderFactory.create_provider('anthropic', ProviderConfiguration(model='claude'))
    assert LLMProviderFactory.get_supported_models('anthropic') == []


def test_supported_models_lookup() -> None:
    assert 'gpt-4o-mini' in LLMProviderFactory.get_supported_models('openai')
    assert 'phi3:mini' in LLMProviderFactory.get_supported_models('ollama')


def test_validate_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv('GEMINI_API_KEY', raising=False)
    monkeypatch.delenv('GOOGLE_API_KEY', raising=False)
    assert LLMProviderFactory.validate_config('gemini', ProviderConfiguration(model='gemini-1.5-pro')) is False
    assert LLMProviderFactory.validate_config('gemini', ProviderConfiguration(model='gemini-1.5-pro', api_key='k'))
    assert LLMProviderFactory.validate_config('nope', ProviderConfiguration(model='x')) is False


def test_default_configs() -> None:
    defaults = LLMProviderFactory.default_configs()
    assert defaults['openai'].model == 'gpt-4o-mini'
    assert defaults['ollama'].base_url == 'http://localhost:11434'
