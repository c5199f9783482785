"""core.exceptions

Centralised exception hierarchy for *llm_relay*.

Each error carries a stable `category` slug and an `http_status` so that
upper layers (REST controllers, UI message catalogues, etc.) can render
guidance *without* parsing free-text messages or scattering status-code
logic throughout business code.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class LLMRelayError(Exception):
    """Base class for all *llm_relay* domain errors."""

    #: Stable, machine-readable message category.
    category: ClassVar[str] = 'internal'
    #: Default HTTP status if not overridden by subclass.
    http_status: ClassVar[HTTPStatus] = HTTPStatus.INTERNAL_SERVER_ERROR
    #: Whether a caller may reasonably resubmit the same request.
    retryable: ClassVar[bool] = False

    def __init__(self, message: str | None = None, *, provider: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.provider = provider

    def to_json(self) -> dict[str, dict[str, Any]]:
        """Unified error body."""
        return {
            'error': {
                'type': self.__class__.__name__,
                'category': self.category,
                'message': str(self),
            },
        }


# ---------------------------------------------------------------------------
# Concrete error classes
# ---------------------------------------------------------------------------


class ConfigurationError(LLMRelayError):
    """Missing or malformed credentials, model id or endpoint."""

    category: ClassVar[str] = 'configuration'
    http_status: ClassVar[HTTPStatus] = HTTPStatus.BAD_REQUEST  # 400


class BackendError(LLMRelayError):
    """Non-success status or transport failure reported by a backend."""

    category: ClassVar[str] = 'backend'
    http_status: ClassVar[HTTPStatus] = HTTPStatus.BAD_GATEWAY  # 502
    retryable: ClassVar[bool] = True

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        body: str | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message, provider=provider)
        self.status_code = status_code
        self.body = body

    def to_json(self) -> dict[str, dict[str, Any]]:
        payload = super().to_json()
        payload['error']['status_code'] = self.status_code
        return payload


class EmptyResponseError(LLMRelayError):
    """The backend succeeded but produced no usable content."""

    category: ClassVar[str] = 'empty_response'
    http_status: ClassVar[HTTPStatus] = HTTPStatus.BAD_GATEWAY  # 502
    retryable: ClassVar[bool] = True


class SafetyBlockedError(LLMRelayError):
    """Content was withheld by backend-side safety filtering."""

    category: ClassVar[str] = 'safety_blocked'
    http_status: ClassVar[HTTPStatus] = HTTPStatus.UNPROCESSABLE_ENTITY  # 422

    def __init__(self, message: str | None = None, *, reason: str | None = None, provider: str | None = None) -> None:
        super().__init__(message, provider=provider)
        self.reason = reason


class UnavailableModelError(LLMRelayError):
    """The configured model is absent from a local server's live catalogue."""

    category: ClassVar[str] = 'unavailable_model'
    http_status: ClassVar[HTTPStatus] = HTTPStatus.NOT_FOUND  # 404

    def __init__(
        self,
        model: str,
        available: Sequence[str] = (),
        *,
        provider: str | None = None,
    ) -> None:
        super().__init__(f'Model {model!r} is not available on the server', provider=provider)
        self.model = model
        self.available: tuple[str, ...] = tuple(available)


class StreamTransportError(LLMRelayError):
    """The stream closed unexpectedly or its framing could not be parsed."""

    category: ClassVar[str] = 'stream_transport'
    http_status: ClassVar[HTTPStatus] = HTTPStatus.BAD_GATEWAY  # 502
    retryable: ClassVar[bool] = True


class StreamCancelledError(StreamTransportError):
    """The stream was cancelled or closed by the consumer."""

    category: ClassVar[str] = 'stream_cancelled'
    http_status: ClassVar[HTTPStatus] = HTTPStatus.REQUEST_TIMEOUT  # 408
    retryable: ClassVar[bool] = False


class ProviderNotFoundError(LLMRelayError):
    """Raised when `ProviderRegistry` cannot find a requested provider key."""

    category: ClassVar[str] = 'provider_not_found'
    http_status: ClassVar[HTTPStatus] = HTTPStatus.NOT_IMPLEMENTED  # 501


HTTP_STATUS_MAP: Mapping[type[LLMRelayError], HTTPStatus] = {
    ConfigurationError: ConfigurationError.http_status,
    BackendError: BackendError.http_status,
    EmptyResponseError: EmptyResponseError.http_status,
    SafetyBlockedError: SafetyBlockedError.http_status,
    UnavailableModelError: UnavailableModelError.http_status,
    StreamTransportError: StreamTransportError.http_status,
    StreamCancelledError: StreamCancelledError.http_status,
    ProviderNotFoundError: ProviderNotFoundError.http_status,
}
