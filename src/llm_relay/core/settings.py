"""core.settings

Resolution of provider configuration from explicit values and the process
environment.

Resolution happens exactly once, when an adapter is constructed; adapters
never consult the environment at call time. Explicit configuration always
wins over environment variables, which in turn win over the built-in
defaults below.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from llm_relay.core.types import ProviderConfiguration

if TYPE_CHECKING:
    from collections.abc import Mapping

load_dotenv()

OLLAMA_DEFAULT_BASE_URL = 'http://localhost:11434'
GEMINI_DEFAULT_BASE_URL = 'https://generativelanguage.googleapis.com/v1beta'

# Environment variables consulted per provider, in priority order.
_API_KEY_ENV: dict[str, tuple[str, ...]] = {
    'openai': ('OPENAI_API_KEY',),
    'gemini': ('GEMINI_API_KEY', 'GOOGLE_API_KEY'),
    'ollama': (),
}

_BASE_URL_ENV: dict[str, tuple[str, ...]] = {
    'openai': ('OPENAI_BASE_URL',),
    'gemini': ('GEMINI_BASE_URL',),
    'ollama': ('OLLAMA_BASE_URL', 'OLLAMA_HOST'),
}

_BASE_URL_DEFAULT: dict[str, str | None] = {
    'openai': None,  # the SDK knows its own endpoint
    'gemini': GEMINI_DEFAULT_BASE_URL,
    'ollama': OLLAMA_DEFAULT_BASE_URL,
}

_DEFAULT_MODELS: dict[str, str] = {
    'openai': 'gpt-4o-mini',
    'gemini': 'gemini-1.5-flash',
    'ollama': 'llama3.1:8b',
}


def _first_env(environ: Mapping[str, str], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = environ.get(name, '').strip()
        if value:
            return value
    return None


def resolve_configuration(
    provider: str,
    config: ProviderConfiguration,
    environ: Mapping[str, str] | None = None,
) -> ProviderConfiguration:
    """Return *config* with credentials and endpoint filled from *environ*.

    The function is pure with respect to its inputs: it never mutates *config*
    and performs no I/O besides reading the supplied mapping (``os.environ``
    when omitted).
    """
    env = os.environ if environ is None else environ
    key = provider.lower()
    updates: dict[str, object] = {}

    if not config.api_key_value():
        api_key = _first_env(env, _API_KEY_ENV.get(key, ()))
        if api_key:
            updates['api_key'] = api_key

    if not config.base_url:
        base_url = _first_env(env, _BASE_URL_ENV.get(key, ())) or _BASE_URL_DEFAULT.get(key)
        if base_url:
            updates['base_url'] = base_url

    if not updates:
        return config
    # model_validate (not model_copy) so the SecretStr coercion runs again.
    return ProviderConfiguration.model_validate({**config.model_dump(), **updates})


def default_configuration(provider: str) -> ProviderConfiguration:
    """Return the baseline configuration used when a project has none."""
    key = provider.lower()
    return ProviderConfiguration(
        model=_DEFAULT_MODELS.get(key, ''),
        base_url=_BASE_URL_DEFAULT.get(key),
        temperature=0.7,
        max_tokens=1000,
    )
