"""adapters.openai_adapter

Concrete adapter that bridges :class:`llm_relay.core.abc.AbstractLLMProvider`
with the **OpenAI Chat Completions** HTTP API.

This implementation targets the *openai* 1.x async client (``AsyncOpenAI``).
System messages pass through untouched. When streaming, usage only arrives
in the terminal chunk (``stream_options.include_usage``), so it is never
assumed to be present before the stream ends.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

import openai

from llm_relay.core.abc import AbstractLLMProvider
from llm_relay.core.exceptions import BackendError, EmptyResponseError, StreamTransportError
from llm_relay.core.types import FinishReason, ModelLimits, NormalizedResponse, StreamChunk, Usage
from llm_relay.registry.provider_registry import provider_registry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from llm_relay.core.types import Message, ProviderConfiguration, SamplingParams

_log = logging.getLogger(__name__)


def _usage(raw: Any) -> Usage | None:
    if raw is None:
        return None
    return Usage(
        prompt_tokens=raw.prompt_tokens or 0,
        completion_tokens=raw.completion_tokens or 0,
        total_tokens=getattr(raw, 'total_tokens', None) or 0,
    )


# ---------------------------------------------------------------------------
# Adapter implementation
# ---------------------------------------------------------------------------


@provider_registry.register
class OpenAIAdapter(AbstractLLMProvider):
    """Adapter for the OpenAI ChatCompletion API."""

    provider_name: ClassVar[str] = 'openai'
    supported_models: ClassVar[tuple[str, ...]] = (
        'gpt-4o',
        'gpt-4o-mini',
        'gpt-4-turbo',
        'gpt-4',
        'gpt-3.5-turbo',
        'gpt-3.5-turbo-16k',
    )
    model_limits: ClassVar[Mapping[str, ModelLimits]] = {
        'gpt-4o': ModelLimits(max_tokens=16384, context_window=128000),
        'gpt-4o-mini': ModelLimits(max_tokens=16384, context_window=128000),
        'gpt-4-turbo': ModelLimits(max_tokens=4096, context_window=128000),
        'gpt-4': ModelLimits(max_tokens=8192, context_window=8192),
        'gpt-3.5-turbo': ModelLimits(max_tokens=4096, context_window=16385),
        'gpt-3.5-turbo-16k': ModelLimits(max_tokens=4096, context_window=16385),
    }
    default_limits: ClassVar[ModelLimits] = ModelLimits(max_tokens=4096, context_window=8192, approximate=True)

    def __init__(
        self,
        config: ProviderConfiguration,
        *,
        client: openai.AsyncOpenAI | None = None,
        timeout: float | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(config, environ=environ)
        if client is None:
            client_kwargs: dict[str, Any] = {
                'api_key': self._config.api_key_value(),
                'base_url': self._config.base_url,
                # Retry policy belongs to the caller.
                'max_retries': 0,
            }
            if timeout is not None:
                client_kwargs['timeout'] = timeout
            client = openai.AsyncOpenAI(**client_kwargs)
        self._client = client

    # ------------------------------------------------------------------
    # Request marshaling
    # ------------------------------------------------------------------

    def _build_request(self, messages: list[Message], params: SamplingParams) -> dict[str, Any]:
        request: dict[str, Any] = {
            'model': self.model,
            'messages': [{'role': m.role.value, 'content': m.content} for m in messages],
            'temperature': params.temperature,
            'max_tokens': params.max_tokens,
        }
        for name in ('top_p', 'frequency_penalty', 'presence_penalty'):
            value = getattr(params, name)
            if value is not None:
                request[name] = value
        return request

    def _translate_error(self, exc: openai.OpenAIError) -> BackendError:
        if isinstance(exc, openai.APITimeoutError):
            return BackendError('OpenAI request timed out', provider=self.provider_name)
        if isinstance(exc, openai.APIConnectionError):
            return BackendError(f'Could not reach OpenAI: {exc}', provider=self.provider_name)
        if isinstance(exc, openai.APIStatusError):
            return BackendError(
                f'OpenAI API error: {exc.status_code}',
                status_code=exc.status_code,
                body=exc.response.text,
                provider=self.provider_name,
            )
        return BackendError(f'OpenAI request failed: {exc}', provider=self.provider_name)

    # ------------------------------------------------------------------
    # Non-streaming path
    # ------------------------------------------------------------------

    async def _invoke(self, messages: list[Message], params: SamplingParams) -> NormalizedResponse:
        try:
            completion = await self._client.chat.completions.create(**self._build_request(messages, params))
        except openai.OpenAIError as exc:
            raise self._translate_error(exc) from exc

        if not completion.choices:
            raise EmptyResponseError('No choices received from OpenAI', provider=self.provider_name)
        choice = completion.choices[0]
        return NormalizedResponse(
            content=choice.message.content or '',
            model=completion.model or self.model,
            usage=_usage(completion.usage),
            finish_reason=FinishReason.from_backend(choice.finish_reason),
        )

    # ------------------------------------------------------------------
    # Streaming path
    # ------------------------------------------------------------------

    async def _stream(self, messages: list[Message], params: SamplingParams) -> AsyncIterator[StreamChunk]:
        request = {
            **self._build_request(messages, params),
            'stream': True,
            'stream_options': {'include_usage': True},
        }
        try:
            stream = await self._client.chat.completions.create(**request)
        except openai.OpenAIError as exc:
            raise self._translate_error(exc) from exc

        # The terminal usage chunk carries no choices; a finish reason must
        # have been seen before it.
        finished = False
        try:
            async for chunk in stream:
                choice = chunk.choices[0] if chunk.choices else None
                text = ''
                finish_reason = None
                if choice is not None:
                    text = (choice.delta.content if choice.delta is not None else None) or ''
                    finish_reason = FinishReason.from_backend(choice.finish_reason)
                    finished = finished or finish_reason is not None
                yield StreamChunk(
                    text=text,
                    model=chunk.model or None,
                    usage=_usage(chunk.usage),
                    finish_reason=finish_reason,
                )
        except openai.OpenAIError as exc:
            raise self._translate_error(exc) from exc
        finally:
            await stream.close()

        if not finished:
            raise StreamTransportError('OpenAI stream closed before completion', provider=self.provider_name)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def check_credentials(self) -> bool:
        """Return True if the API key can list models (one network call)."""
        try:
            await self._client.models.list()
        except openai.OpenAIError:
            _log.info('OpenAI credential check failed', exc_info=True)
            return False
        return True
