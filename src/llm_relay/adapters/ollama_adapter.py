"""adapters.ollama_adapter

Concrete adapter for a local **Ollama** server (``/api/chat``).

Unlike hosted APIs, a local server can be up while the requested model has
never been pulled. Every generation therefore starts with a catalogue probe
(``GET /api/tags``):

* server unreachable → :class:`ConfigurationError` (the endpoint is wrong or
  the daemon is not running),
* probe returns a non-2xx status → :class:`BackendError`,
* model missing from the live catalogue → :class:`UnavailableModelError`,
  raised before any generation request is sent.

Streaming responses are newline-delimited JSON. Garbled lines are skipped
(see :mod:`llm_relay.core.line_reader`) and the stream ends at the first
object with ``"done": true`` even if the connection is still open.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from llm_relay.adapters.http_support import build_client, json_body, raise_for_status, transport_error
from llm_relay.core.abc import AbstractLLMProvider
from llm_relay.core.exceptions import ConfigurationError, LLMRelayError, StreamTransportError, UnavailableModelError
from llm_relay.core.line_reader import iter_ndjson
from llm_relay.core.types import FinishReason, ModelLimits, NormalizedResponse, StreamChunk, Usage
from llm_relay.registry.provider_registry import provider_registry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping, Sequence

    from llm_relay.core.types import Message, ProviderConfiguration, SamplingParams

_log = logging.getLogger(__name__)


def model_is_available(model: str, available: Sequence[str]) -> bool:
    """Match *model* against catalogue names; an untagged name means ``:latest``."""
    if model in available:
        return True
    return ':' not in model and f'{model}:latest' in available


def _usage(data: Mapping[str, Any]) -> Usage | None:
    if 'prompt_eval_count' not in data and 'eval_count' not in data:
        return None
    return Usage(
        prompt_tokens=data.get('prompt_eval_count') or 0,
        completion_tokens=data.get('eval_count') or 0,
    )


def _finish_reason(data: Mapping[str, Any]) -> FinishReason:
    # Newer servers report done_reason; older ones only the done flag.
    reason = FinishReason.from_backend(data.get('done_reason'))
    if reason is not None:
        return reason
    return FinishReason.stop if data.get('done') else FinishReason.length


@provider_registry.register
class OllamaAdapter(AbstractLLMProvider):
    """Adapter for the Ollama local HTTP API."""

    provider_name: ClassVar[str] = 'ollama'
    requires_api_key: ClassVar[bool] = False
    supported_models: ClassVar[tuple[str, ...]] = (
        'llama3.1:8b',
        'llama3.1:70b',
        'llama3.2:3b',
        'mistral:7b',
        'codellama:7b',
        'qwen2.5:7b',
        'phi3:mini',
    )
    model_limits: ClassVar[Mapping[str, ModelLimits]] = {
        'llama3.1:8b': ModelLimits(max_tokens=4096, context_window=131072),
        'llama3.1:70b': ModelLimits(max_tokens=4096, context_window=131072),
        'llama3.2:3b': ModelLimits(max_tokens=2048, context_window=131072),
        'mistral:7b': ModelLimits(max_tokens=4096, context_window=32768),
        'codellama:7b': ModelLimits(max_tokens=4096, context_window=16384),
        'qwen2.5:7b': ModelLimits(max_tokens=4096, context_window=32768),
        'phi3:mini': ModelLimits(max_tokens=2048, context_window=128000),
    }
    default_limits: ClassVar[ModelLimits] = ModelLimits(max_tokens=2048, context_window=4096, approximate=True)

    def __init__(
        self,
        config: ProviderConfiguration,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(config, environ=environ)
        self._transport = transport
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        # Only reverse proxies in front of Ollama check this.
        if self._config.api_key_value():
            headers['Authorization'] = f'Bearer {self._config.api_key_value()}'
        return build_client(
            self._config.base_url or '',
            transport=self._transport,
            timeout=self._timeout,
            headers=headers,
        )

    def _config_defects(self) -> list[str]:
        defects = super()._config_defects()
        base_url = self._config.base_url or ''
        if not base_url.startswith(('http://', 'https://')):
            defects.append(f'base URL must be an http(s) URL, got {base_url!r}')
        return defects

    def _build_payload(self, messages: list[Message], params: SamplingParams, *, stream: bool) -> dict[str, Any]:
        options: dict[str, Any] = {
            'temperature': params.temperature,
            'num_predict': params.max_tokens,
        }
        for name in ('top_p', 'frequency_penalty', 'presence_penalty'):
            value = getattr(params, name)
            if value is not None:
                options[name] = value
        return {
            'model': self.model,
            'messages': [{'role': m.role.value, 'content': m.content} for m in messages],
            'stream': stream,
            'options': options,
        }

    # ------------------------------------------------------------------
    # Liveness / catalogue probe
    # ------------------------------------------------------------------

    async def _fetch_catalogue(self, client: httpx.AsyncClient) -> list[str]:
        try:
            response = await client.get('/api/tags')
        except httpx.ConnectError as exc:
            raise ConfigurationError(
                f'Ollama server is not reachable at {self._config.base_url}',
                provider=self.provider_name,
            ) from exc
        except httpx.HTTPError as exc:
            raise transport_error(exc, self.provider_name) from exc
        await raise_for_status(response, self.provider_name)
        data = json_body(response, self.provider_name)
        return [m['name'] for m in data.get('models') or [] if isinstance(m, dict) and m.get('name')]

    async def _ensure_model_available(self, client: httpx.AsyncClient) -> None:
        available = await self._fetch_catalogue(client)
        if not model_is_available(self.model, available):
            _log.warning('Model %s is not available on %s. Available: %s', self.model, self._config.base_url, available)
            raise UnavailableModelError(self.model, available, provider=self.provider_name)

    async def list_available_models(self) -> list[str]:
        """Return the names of models currently installed on the server."""
        async with self._client() as client:
            return await self._fetch_catalogue(client)

    async def check_health(self) -> bool:
        """Return True if the server answers and the configured model is installed."""
        if not self.validate_config():
            return False
        try:
            async with self._client() as client:
                await self._ensure_model_available(client)
        except LLMRelayError as exc:
            _log.info('Ollama health check failed: %s', exc)
            return False
        return True

    async def pull_model(self, model: str | None = None) -> str:
        """Ask the server to download *model* (default: the configured one).

        Blocks until the server reports completion; returns its final status.
        """
        name = model or self.model
        async with self._client() as client:
            try:
                response = await client.post('/api/pull', json={'model': name, 'stream': False})
            except httpx.HTTPError as exc:
                raise transport_error(exc, self.provider_name) from exc
            await raise_for_status(response, self.provider_name)
            data = json_body(response, self.provider_name)
        _log.info('Model %s pulled (%s)', name, data.get('status'))
        return str(data.get('status', ''))

    # ------------------------------------------------------------------
    # Non-streaming path
    # ------------------------------------------------------------------

    async def _invoke(self, messages: list[Message], params: SamplingParams) -> NormalizedResponse:
        async with self._client() as client:
            await self._ensure_model_available(client)
            try:
                response = await client.post('/api/chat', json=self._build_payload(messages, params, stream=False))
            except httpx.HTTPError as exc:
                raise transport_error(exc, self.provider_name) from exc
            await raise_for_status(response, self.provider_name)
            data = json_body(response, self.provider_name)

        message = data.get('message') or {}
        return NormalizedResponse(
            content=message.get('content') or '',
            model=self.model,
            usage=_usage(data),
            finish_reason=_finish_reason(data),
        )

    # ------------------------------------------------------------------
    # Streaming path
    # ------------------------------------------------------------------

    async def _stream(self, messages: list[Message], params: SamplingParams) -> AsyncIterator[StreamChunk]:
        payload = self._build_payload(messages, params, stream=True)
        async with self._client() as client:
            await self._ensure_model_available(client)
            try:
                async with client.stream('POST', '/api/chat', json=payload) as response:
                    await raise_for_status(response, self.provider_name)
                    async for obj in iter_ndjson(response.aiter_bytes()):
                        if obj.get('error'):
                            raise StreamTransportError(f'Ollama stream error: {obj["error"]}', provider=self.provider_name)
                        text = (obj.get('message') or {}).get('content') or ''
                        if obj.get('done'):
                            yield StreamChunk(text=text, usage=_usage(obj), finish_reason=_finish_reason(obj))
                            return
                        if text:
                            yield StreamChunk(text=text)
            except (httpx.ConnectError, httpx.TimeoutException) as exc:
                raise transport_error(exc, self.provider_name) from exc
            except httpx.HTTPError as exc:
                raise StreamTransportError(f'Ollama stream interrupted: {exc!r}', provider=self.provider_name) from exc

        raise StreamTransportError('Ollama stream closed before completion', provider=self.provider_name)
