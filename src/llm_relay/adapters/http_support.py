"""adapters.http_support

Small helpers shared by the REST-based adapters (Gemini, Ollama).

Every call opens its own ``httpx.AsyncClient`` so adapter instances hold no
connection state between calls. Tests inject an ``httpx.MockTransport``
through the adapter constructor.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx

from llm_relay.core.exceptions import BackendError

if TYPE_CHECKING:
    from collections.abc import Mapping

_MAX_BODY_CHARS = 2000


def build_client(
    base_url: str,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: float | None = None,
    headers: Mapping[str, str] | None = None,
) -> httpx.AsyncClient:
    """Return a fresh client; *timeout* ``None`` leaves the call unbounded."""
    return httpx.AsyncClient(
        base_url=base_url,
        transport=transport,
        timeout=httpx.Timeout(timeout),
        headers=dict(headers or {}),
    )


def transport_error(exc: httpx.HTTPError, provider: str) -> BackendError:
    """Classify an httpx transport failure (connect, timeout, protocol)."""
    if isinstance(exc, httpx.TimeoutException):
        return BackendError(f'{provider} request timed out', provider=provider)
    return BackendError(f'{provider} transport error: {exc!r}', provider=provider)


async def raise_for_status(response: httpx.Response, provider: str) -> None:
    """Raise :class:`BackendError` with status and body for non-2xx responses."""
    if response.is_success:
        return
    await response.aread()
    body = response.text[:_MAX_BODY_CHARS]
    raise BackendError(
        f'{provider} API error: {response.status_code} - {body}',
        status_code=response.status_code,
        body=body,
        provider=provider,
    )


def json_body(response: httpx.Response, provider: str) -> dict[str, Any]:
    """Decode a JSON object body or raise :class:`BackendError`."""
    try:
        data = response.json()
    except json.JSONDecodeError as exc:
        raise BackendError(
            f'{provider} returned a non-JSON body',
            status_code=response.status_code,
            body=response.text[:_MAX_BODY_CHARS],
            provider=provider,
        ) from exc
    if not isinstance(data, dict):
        raise BackendError(f'{provider} returned an unexpected body', status_code=response.status_code, provider=provider)
    return data
