"""adapters.gemini_adapter

Concrete adapter for the **Google Gemini** REST API (Generative Language
``v1beta``), talking plain HTTP through ``httpx``.

Differences from the OpenAI-style family:

* ``system`` messages are not accepted; they are removed before marshaling
  and ``assistant`` is renamed to ``model``.
* Content can be withheld by safety filtering, either for the whole prompt
  (``promptFeedback.blockReason``) or per candidate (``finishReason`` of
  ``SAFETY`` and friends). Both raise :class:`SafetyBlockedError`.
* Usage is reported as ``usageMetadata`` with its own field names.
* Streaming uses ``:streamGenerateContent?alt=sse``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from llm_relay.adapters.http_support import build_client, json_body, raise_for_status, transport_error
from llm_relay.core.abc import AbstractLLMProvider
from llm_relay.core.exceptions import EmptyResponseError, SafetyBlockedError, StreamTransportError
from llm_relay.core.line_reader import iter_sse_json
from llm_relay.core.types import FinishReason, ModelLimits, NormalizedResponse, Role, StreamChunk, Usage
from llm_relay.registry.provider_registry import provider_registry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from llm_relay.core.types import Message, ProviderConfiguration, SamplingParams

_HARM_CATEGORIES = (
    'HARM_CATEGORY_HARASSMENT',
    'HARM_CATEGORY_HATE_SPEECH',
    'HARM_CATEGORY_SEXUALLY_EXPLICIT',
    'HARM_CATEGORY_DANGEROUS_CONTENT',
)
SAFETY_SETTINGS: tuple[dict[str, str], ...] = tuple(
    {'category': category, 'threshold': 'BLOCK_MEDIUM_AND_ABOVE'} for category in _HARM_CATEGORIES
)


def _usage(data: Mapping[str, Any]) -> Usage | None:
    meta = data.get('usageMetadata')
    if not meta:
        return None
    return Usage(
        prompt_tokens=meta.get('promptTokenCount') or 0,
        completion_tokens=meta.get('candidatesTokenCount') or 0,
        total_tokens=meta.get('totalTokenCount') or 0,
    )


def _candidate_text(candidate: Mapping[str, Any]) -> str:
    parts = (candidate.get('content') or {}).get('parts') or []
    return ''.join(part.get('text', '') for part in parts if isinstance(part, dict))


@provider_registry.register
class GeminiAdapter(AbstractLLMProvider):
    """Adapter for the Gemini ``generateContent`` API."""

    provider_name: ClassVar[str] = 'gemini'
    accepts_system_role: ClassVar[bool] = False
    supported_models: ClassVar[tuple[str, ...]] = (
        'gemini-1.5-pro',
        'gemini-1.5-flash',
        'gemini-1.0-pro',
    )
    model_limits: ClassVar[Mapping[str, ModelLimits]] = {
        'gemini-1.5-pro': ModelLimits(max_tokens=8192, context_window=2000000),
        'gemini-1.5-flash': ModelLimits(max_tokens=8192, context_window=1000000),
        'gemini-1.0-pro': ModelLimits(max_tokens=2048, context_window=30720),
    }
    default_limits: ClassVar[ModelLimits] = ModelLimits(max_tokens=2048, context_window=30720, approximate=True)

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

    def _client(self) -> httpx.AsyncClient:
        return build_client(
            self._config.base_url or '',
            transport=self._transport,
            timeout=self._timeout,
            # Header rather than ?key= so the key never lands in URL logs.
            headers={'x-goog-api-key': self._config.api_key_value()},
        )

    # ------------------------------------------------------------------
    # Request marshaling
    # ------------------------------------------------------------------

    def _build_payload(self, messages: list[Message], params: SamplingParams) -> dict[str, Any]:
        contents = [
            {
                'role': 'model' if m.role is Role.assistant else 'user',
                'parts': [{'text': m.content}],
            }
            for m in messages
            if m.role is not Role.system
        ]
        generation_config: dict[str, Any] = {
            'temperature': params.temperature,
            'maxOutputTokens': params.max_tokens,
        }
        if params.top_p is not None:
            generation_config['topP'] = params.top_p
        if params.frequency_penalty is not None:
            generation_config['frequencyPenalty'] = params.frequency_penalty
        if params.presence_penalty is not None:
            generation_config['presencePenalty'] = params.presence_penalty
        return {
            'contents': contents,
            'generationConfig': generation_config,
            'safetySettings': [dict(s) for s in SAFETY_SETTINGS],
        }

    def _check_prompt_feedback(self, data: Mapping[str, Any]) -> None:
        block_reason = (data.get('promptFeedback') or {}).get('blockReason')
        if block_reason:
            raise SafetyBlockedError(
                f'Prompt blocked by Gemini safety filters ({block_reason})',
                reason=block_reason,
                provider=self.provider_name,
            )

    # ------------------------------------------------------------------
    # Non-streaming path
    # ------------------------------------------------------------------

    async def _invoke(self, messages: list[Message], params: SamplingParams) -> NormalizedResponse:
        async with self._client() as client:
            try:
                response = await client.post(
                    f'/models/{self.model}:generateContent',
                    json=self._build_payload(messages, params),
                )
            except httpx.HTTPError as exc:
                raise transport_error(exc, self.provider_name) from exc
            await raise_for_status(response, self.provider_name)
            data = json_body(response, self.provider_name)

        self._check_prompt_feedback(data)
        candidates = data.get('candidates') or []
        if not candidates:
            raise EmptyResponseError('No response from Gemini', provider=self.provider_name)
        candidate = candidates[0]
        raw_reason = candidate.get('finishReason')
        finish_reason = FinishReason.from_backend(raw_reason)
        if finish_reason is FinishReason.safety_block:
            raise SafetyBlockedError(
                'Response blocked by Gemini safety filters',
                reason=raw_reason,
                provider=self.provider_name,
            )
        return NormalizedResponse(
            content=_candidate_text(candidate),
            model=self.model,
            usage=_usage(data),
            finish_reason=finish_reason,
        )

    # ------------------------------------------------------------------
    # Streaming path
    # ------------------------------------------------------------------

    async def _stream(self, messages: list[Message], params: SamplingParams) -> AsyncIterator[StreamChunk]:
        finished = False
        async with self._client() as client:
            try:
                async with client.stream(
                    'POST',
                    f'/models/{self.model}:streamGenerateContent',
                    params={'alt': 'sse'},
                    json=self._build_payload(messages, params),
                ) as response:
                    await raise_for_status(response, self.provider_name)
                    async for event in iter_sse_json(response.aiter_bytes()):
                        self._check_prompt_feedback(event)
                        candidates = event.get('candidates') or []
                        if not candidates:
                            continue
                        candidate = candidates[0]
                        finish_reason = FinishReason.from_backend(candidate.get('finishReason'))
                        finished = finished or finish_reason is not None
                        # usageMetadata is cumulative; only the terminal event is final.
                        yield StreamChunk(
                            text=_candidate_text(candidate),
                            usage=_usage(event) if finish_reason is not None else None,
                            finish_reason=finish_reason,
                        )
            except (httpx.ConnectError, httpx.TimeoutException) as exc:
                raise transport_error(exc, self.provider_name) from exc
            except httpx.HTTPError as exc:
                raise StreamTransportError(f'Gemini stream interrupted: {exc!r}', provider=self.provider_name) from exc

        if not finished:
            raise StreamTransportError('Gemini stream closed before completion', provider=self.provider_name)
