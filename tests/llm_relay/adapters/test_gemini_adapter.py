from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from llm_relay.adapters.gemini_adapter import GeminiAdapter
from llm_relay.adapters.openai_adapter import OpenAIAdapter
from llm_relay.core.exceptions import (
    BackendError,
    ConfigurationError,
    EmptyResponseError,
    SafetyBlockedError,
    StreamTransportError,
)
from llm_relay.core.types import (
    FinishReason,
    GenerationOptions,
    Message,
    ProviderConfiguration,
    Role,
    StreamingCallbacks,
)

MESSAGES = [
    Message(role=Role.system, content='You are helpful'),
    Message(role=Role.user, content='Hello'),
    Message(role=Role.system, content='Answer in French'),
    Message(role=Role.assistant, content='Bonjour'),
    Message(role=Role.user, content='How are you?'),
]


def reply(text: str = 'Très bien', finish_reason: str = 'STOP', **extra: Any) -> dict[str, Any]:
    return {
        'candidates': [{'content': {'role': 'model', 'parts': [{'text': text}]}, 'finishReason': finish_reason}],
        'usageMetadata': {'promptTokenCount': 12, 'candidatesTokenCount': 8},
        **extra,
    }


def sse(*events: dict[str, Any]) -> bytes:
    return b''.join(b'data: ' + json.dumps(event).encode() + b'\r\n\r\n' for event in events)


class Recorder:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


def make_adapter(handler: Any, **config: Any) -> GeminiAdapter:
    cfg = ProviderConfiguration(**{'model': 'gemini-1.5-flash', 'api_key': 'g-key', **config})
    return GeminiAdapter(cfg, transport=httpx.MockTransport(handler), environ={})


@pytest.mark.asyncio
async def test_system_messages_filtered_and_roles_renamed() -> None:
    server = Recorder(httpx.Response(200, json=reply()))

    response = await make_adapter(server, top_p=0.9).generate_response(MESSAGES)

    request = server.requests[0]
    assert request.url.path == '/v1beta/models/gemini-1.5-flash:generateContent'
    assert request.headers['x-goog-api-key'] == 'g-key'
    payload = json.loads(request.content)
    assert [c['role'] for c in payload['contents']] == ['user', 'model', 'user']
    assert [c['parts'][0]['text'] for c in payload['contents']] == ['Hello', 'Bonjour', 'How are you?']
    assert payload['generationConfig'] == {'temperature': 0.7, 'maxOutputTokens': 1000, 'topP': 0.9}
    assert len(payload['safetySettings']) == 4  # noqa: PLR2004

    assert response.content == 'Très bien'
    assert response.finish_reason is FinishReason.stop
    assert response.usage is not None
    assert response.usage.prompt_tokens == 12  # noqa: PLR2004
    assert response.usage.completion_tokens == 8  # noqa: PLR2004
    assert response.usage.total_tokens == 20  # noqa: PLR2004


@pytest.mark.asyncio
async def test_system_role_handling_differs_from_hosted_family() -> None:
    server = Recorder(httpx.Response(200, json=reply()))
    await make_adapter(server).generate_response(MESSAGES)
    gemini_payload = json.loads(server.requests[0].content)
    assert all(c['role'] in {'user', 'model'} for c in gemini_payload['contents'])
    assert 'You are helpful' not in json.dumps(gemini_payload)

    hosted = OpenAIAdapter(ProviderConfiguration(model='gpt-4o', api_key='sk'), environ={})
    hosted_request = hosted._build_request(MESSAGES, hosted._sampling_params(GenerationOptions()))
    system_entries = [m['content'] for m in hosted_request['messages'] if m['role'] == 'system']
    assert system_entries == ['You are helpful', 'Answer in French']


@pytest.mark.asyncio
async def test_candidate_safety_block_raises() -> None:
    body = {'candidates': [{'finishReason': 'SAFETY', 'safetyRatings': []}]}
    with pytest.raises(SafetyBlockedError) as exc_info:
        await make_adapter(Recorder(httpx.Response(200, json=body))).generate_response(MESSAGES)
    assert exc_info.value.reason == 'SAFETY'
    assert exc_info.value.category == 'safety_blocked'


@pytest.mark.asyncio
async def test_prompt_feedback_block_raises() -> None:
    body = {'promptFeedback': {'blockReason': 'PROHIBITED_CONTENT'}}
    with pytest.raises(SafetyBlockedError) as exc_info:
        await make_adapter(Recorder(httpx.Response(200, json=body))).generate_response(MESSAGES)
    assert exc_info.value.reason == 'PROHIBITED_CONTENT'


@pytest.mark.asyncio
async def test_no_candidates_is_empty_response() -> None:
    with pytest.raises(EmptyResponseError):
        await make_adapter(Recorder(httpx.Response(200, json={'candidates': []}))).generate_response(MESSAGES)


@pytest.mark.asyncio
async def test_error_status_is_backend_error() -> None:
    server = Recorder(httpx.Response(400, json={'error': {'message': 'API key not valid'}}))
    with pytest.raises(BackendError) as exc_info:
        await make_adapter(server).generate_response(MESSAGES)
    assert exc_info.value.status_code == 400  # noqa: PLR2004
    assert 'API key not valid' in (exc_info.value.body or '')


@pytest.mark.asyncio
async def test_missing_key_is_configuration_error() -> None:
    server = Recorder(httpx.Response(200, json=reply()))
    adapter = GeminiAdapter(ProviderConfiguration(model='gemini-1.5-pro'), transport=httpx.MockTransport(server), environ={})
    assert adapter.validate_config() is False
    with pytest.raises(ConfigurationError):
        await adapter.generate_response(MESSAGES)
    assert server.requests == []


@pytest.mark.asyncio
async def test_only_system_messages_is_rejected() -> None:
    server = Recorder(httpx.Response(200, json=reply()))
    with pytest.raises(ConfigurationError):
        await make_adapter(server).generate_response([Message(role=Role.system, content='rules')])
    assert server.requests == []


@pytest.mark.asyncio
async def test_streaming_over_sse() -> None:
    body = sse(
        {'candidates': [{'content': {'parts': [{'text': 'Très '}]}}], 'usageMetadata': {'promptTokenCount': 5}},
        {
            'candidates': [{'content': {'parts': [{'text': 'bien'}]}, 'finishReason': 'STOP'}],
            'usageMetadata': {'promptTokenCount': 5, 'candidatesTokenCount': 2, 'totalTokenCount': 7},
        },
    )
    server = Recorder(httpx.Response(200, content=body))
    tokens: list[str] = []

    response = await make_adapter(server).generate_response(
        MESSAGES,
        GenerationOptions(stream=True, streaming_callbacks=StreamingCallbacks(on_token=tokens.append)),
    )

    request = server.requests[0]
    assert request.url.path == '/v1beta/models/gemini-1.5-flash:streamGenerateContent'
    assert request.url.params['alt'] == 'sse'
    assert tokens == ['Très ', 'bien']
    assert response.content == 'Très bien'
    assert response.usage is not None
    assert response.usage.total_tokens == 7  # noqa: PLR2004


@pytest.mark.asyncio
async def test_streaming_safety_block_goes_to_on_error() -> None:
    body = sse(
        {'candidates': [{'content': {'parts': [{'text': 'Sure, '}]}}]},
        {'candidates': [{'finishReason': 'SAFETY'}]},
    )
    errors: list[Exception] = []
    completed: list[Any] = []

    with pytest.raises(SafetyBlockedError):
        await make_adapter(Recorder(httpx.Response(200, content=body))).generate_response(
            MESSAGES,
            GenerationOptions(
                stream=True,
                streaming_callbacks=StreamingCallbacks(on_error=errors.append, on_complete=completed.append),
            ),
        )

    assert len(errors) == 1
    assert completed == []


@pytest.mark.asyncio
async def test_stream_cut_before_finish_reason_goes_to_on_error() -> None:
    body = sse({'candidates': [{'content': {'parts': [{'text': 'Hel'}]}}]})
    tokens: list[str] = []
    errors: list[Exception] = []
    completed: list[Any] = []

    with pytest.raises(StreamTransportError):
        await make_adapter(Recorder(httpx.Response(200, content=body))).generate_response(
            MESSAGES,
            GenerationOptions(
                stream=True,
                streaming_callbacks=StreamingCallbacks(
                    on_token=tokens.append,
                    on_error=errors.append,
                    on_complete=completed.append,
                ),
            ),
        )

    assert tokens == ['Hel']
    assert completed == []
    assert len(errors) == 1
    assert isinstance(errors[0], StreamTransportError)


@pytest.mark.asyncio
async def test_stream_response_cut_before_finish_reason_fails() -> None:
    body = sse({'candidates': [{'content': {'parts': [{'text': 'Hel'}]}}]})
    adapter = make_adapter(Recorder(httpx.Response(200, content=body)))
    chunks: list[str] = []
    with pytest.raises(StreamTransportError):
        async for chunk in adapter.generate_stream_response(MESSAGES):
            chunks.append(chunk)  # noqa: PERF401
    assert chunks == ['Hel']


def test_model_limits() -> None:
    adapter = make_adapter(Recorder(httpx.Response(500)))
    assert adapter.get_model_limits('gemini-1.5-pro').context_window == 2000000  # noqa: PLR2004
    assert adapter.get_model_limits('gemini-ultra').approximate is True
    assert adapter.get_supported_models() == ['gemini-1.5-pro', 'gemini-1.5-flash', 'gemini-1.0-pro']
