"""core.streaming

Streaming reconciler: turns a sequence of :class:`StreamChunk` objects into a
single :class:`NormalizedResponse` while pushing every token to the caller.

State machine
=============
``idle`` → ``streaming`` (first token delivered) → ``completed`` | ``failed``

* Tokens are concatenated strictly in arrival order; nothing is reordered or
  de-duplicated.
* ``on_complete`` fires exactly once, only on success, with the assembled
  response.
* ``on_error`` fires exactly once, only on failure. Partial content is *not*
  delivered through ``on_complete``; callers that want the transcript of a
  failed stream must collect it from ``on_token``.
* An exception raised by a callback is a failure too, but it reaches
  ``on_error`` and the caller as raised, never reclassified as a transport
  fault.
* Cancellation of the awaiting task is a failure: ``on_error`` receives a
  :class:`StreamCancelledError` and the cancellation keeps propagating.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from llm_relay.core.exceptions import (
    EmptyResponseError,
    LLMRelayError,
    SafetyBlockedError,
    StreamCancelledError,
    StreamTransportError,
)
from llm_relay.core.types import FinishReason, NormalizedResponse, StreamingCallbacks

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from llm_relay.core.types import StreamChunk, Usage

_log = logging.getLogger(__name__)


class StreamState(StrEnum):
    idle = 'idle'
    streaming = 'streaming'
    completed = 'completed'
    failed = 'failed'


async def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class _CallbackFailure(Exception):  # noqa: N818
    """Carries an exception raised by a caller-supplied callback."""

    def __init__(self, error: Exception) -> None:
        super().__init__(error)
        self.error = error


class StreamReconciler:
    """Single-use accumulator for one stream."""

    def __init__(
        self,
        callbacks: StreamingCallbacks | None = None,
        *,
        model: str,
        provider: str | None = None,
    ) -> None:
        self._callbacks = callbacks or StreamingCallbacks()
        self._model = model
        self._provider = provider
        self._state = StreamState.idle

    @property
    def state(self) -> StreamState:
        return self._state

    async def reconcile(self, chunks: AsyncIterator[StreamChunk]) -> NormalizedResponse:
        """Consume *chunks* and return the assembled response.

        Raises the same error that was passed to ``on_error``.
        """
        if self._state is not StreamState.idle:
            raise RuntimeError('StreamReconciler instances are single-use')

        try:
            response = await self._accumulate(chunks)
        except asyncio.CancelledError:
            await self._fail(StreamCancelledError('Stream was cancelled', provider=self._provider))
            raise
        except _CallbackFailure as failure:
            await self._fail(failure.error)
            raise failure.error from None
        except LLMRelayError as exc:
            await self._fail(exc)
            raise
        except Exception as exc:
            error = StreamTransportError(f'Stream failed: {exc}', provider=self._provider)
            await self._fail(error)
            raise error from exc
        finally:
            aclose = getattr(chunks, 'aclose', None)
            if aclose is not None:
                await aclose()

        self._state = StreamState.completed
        await _notify(self._callbacks.on_complete, response)
        return response

    async def _accumulate(self, chunks: AsyncIterator[StreamChunk]) -> NormalizedResponse:
        parts: list[str] = []
        model = self._model
        usage: Usage | None = None
        finish_reason: FinishReason | None = None

        async for chunk in chunks:
            if chunk.model:
                model = chunk.model
            # Usage normally rides on the terminal chunk only.
            if chunk.usage is not None:
                usage = chunk.usage
            if chunk.finish_reason is not None:
                finish_reason = chunk.finish_reason
            if chunk.text:
                self._state = StreamState.streaming
                parts.append(chunk.text)
                try:
                    await _notify(self._callbacks.on_token, chunk.text)
                except Exception as exc:
                    raise _CallbackFailure(exc) from exc

        if finish_reason is FinishReason.safety_block:
            raise SafetyBlockedError('Response blocked by safety filters', provider=self._provider)
        content = ''.join(parts)
        if not content:
            raise EmptyResponseError('Stream finished without content', provider=self._provider)
        return NormalizedResponse(content=content, model=model, usage=usage, finish_reason=finish_reason)

    async def _fail(self, error: Exception) -> None:
        self._state = StreamState.failed
        _log.debug('Stream failed (%s): %s', type(error).__name__, error)
        await _notify(self._callbacks.on_error, error)
