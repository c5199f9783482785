"""core.retry

Caller-side retry utilities with exponential back-off + optional jitter.

Adapters and the chat service never retry on their own; a caller that wants
back-off wraps its own coroutine with :func:`with_retry`. Only errors whose
class is marked ``retryable`` are retried, and an empty response is retried
at most once. Configuration, safety and missing-model errors propagate on
the first attempt.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import secrets
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from pydantic import BaseModel, Field

from llm_relay.core.exceptions import EmptyResponseError, LLMRelayError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

P = ParamSpec('P')
T = TypeVar('T')

_log = logging.getLogger(__name__)


class RetryStrategy(BaseModel):
    """Configuration for exponential back-off retry with optional jitter."""

    max_attempts: int = Field(default=3, ge=1, description='Total attempts including the first call')
    base_backoff_sec: float = Field(default=1.0, ge=0.0, description='Initial delay before first retry (seconds)')
    max_backoff_sec: float = Field(default=30.0, ge=0.0, description='Upper bound for any sleep interval')
    jitter: bool = Field(default=True, description='Add random jitter (0-1s) to each interval')

    model_config = {
        'frozen': True,
    }

    def compute_delay(self, attempt_number: int) -> float:
        """Calculate sleep duration for the given attempt number (1-indexed)."""
        delay = min(self.base_backoff_sec * (2 ** (attempt_number - 1)), self.max_backoff_sec)
        if self.jitter:
            delay += secrets.randbelow(101) / 100
        return delay


def should_retry(error: LLMRelayError, attempt_number: int) -> bool:
    """Return True if *error* raised on *attempt_number* may be retried."""
    if isinstance(error, EmptyResponseError):
        return attempt_number == 1
    return error.retryable


def with_retry(
    strategy: RetryStrategy | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry decorator for coroutine functions according to *strategy*.

    The last error is re-raised unchanged once attempts are exhausted, so the
    caller still sees the original classification.
    """
    retry_strategy = strategy or RetryStrategy()

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attempt_number = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except LLMRelayError as exc:
                    if attempt_number >= retry_strategy.max_attempts or not should_retry(exc, attempt_number):
                        raise
                    delay = retry_strategy.compute_delay(attempt_number)
                    _log.info(
                        'Attempt %d/%d failed (%s); retrying in %.2fs',
                        attempt_number,
                        retry_strategy.max_attempts,
                        exc.category,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    attempt_number += 1

        return wrapper

    return decorator
