from __future__ import annotations

from http import HTTPStatus

import pytest

from llm_relay.core.exceptions import (
    HTTP_STATUS_MAP,
    BackendError,
    ConfigurationError,
    EmptyResponseError,
    LLMRelayError,
    ProviderNotFoundError,
    SafetyBlockedError,
    StreamCancelledError,
    StreamTransportError,
    UnavailableModelError,
)


def test_categories_are_distinct() -> None:
    categories = [cls.category for cls in HTTP_STATUS_MAP]
    assert len(categories) == len(set(categories))


def test_backend_error_carries_status_and_body() -> None:
    err = BackendError('boom', status_code=503, body='overloaded', provider='openai')
    assert err.status_code == 503  # noqa: PLR2004
    assert err.body == 'overloaded'
    assert err.retryable is True
    assert err.to_json() == {
        'error': {'type': 'BackendError', 'category': 'backend', 'message': 'boom', 'status_code': 503},
    }


def test_unavailable_model_error_lists_catalogue() -> None:
    err = UnavailableModelError('llama3.1:8b', ['mistral:7b'])
    assert err.model == 'llama3.1:8b'
    assert err.available == ('mistral:7b',)
    assert err.http_status is HTTPStatus.NOT_FOUND


def test_cancellation_is_a_stream_transport_error() -> None:
    assert issubclass(StreamCancelledError, StreamTransportError)
    assert StreamCancelledError.category != StreamTransportError.category
    assert StreamCancelledError.retryable is False


@pytest.mark.parametrize(
    ('cls', 'retryable'),
    [
        (ConfigurationError, False),
        (SafetyBlockedError, False),
        (UnavailableModelError, False),
        (ProviderNotFoundError, False),
        (EmptyResponseError, True),
        (StreamTransportError, True),
    ],
)
def test_retryable_flags(cls: type[LLMRelayError], retryable: bool) -> None:  # noqa: FBT001
    assert cls.retryable is retryable


def test_default_message_is_class_name() -> None:
    assert str(EmptyResponseError()) == 'EmptyResponseError'
