"""core.abc

Abstract base class that *all* provider adapters must implement.

Design goals
============
1. **Provider-agnostic public API** - callers interact exclusively via
    `generate_response()` passing domain models (`Message`,
    `GenerationOptions`). They never touch provider-specific payloads.
2. **One streaming path** - adapters only yield `StreamChunk` objects from
    `_stream()`; accumulation and callbacks live in `StreamReconciler` so
    every backend behaves identically.
3. **Stateless after construction** - configuration is resolved once in
    `__init__` and never mutated, so one instance can serve concurrent calls.
4. **No hidden retries** - adapters classify failures and re-raise; retry
    policy belongs to the caller (see `llm_relay.core.retry`).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from llm_relay.core.exceptions import ConfigurationError, EmptyResponseError, SafetyBlockedError
from llm_relay.core.settings import resolve_configuration
from llm_relay.core.streaming import StreamReconciler
from llm_relay.core.types import (
    FinishReason,
    GenerationOptions,
    ModelLimits,
    NormalizedResponse,
    ProviderConfiguration,
    Role,
    SamplingParams,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping, Sequence

    from llm_relay.core.types import Message, StreamChunk

_log = logging.getLogger(__name__)


class AbstractLLMProvider(ABC):
    """Provider-independent LLM client interface."""

    #: Registry slug, e.g. ``"openai"``.
    provider_name: ClassVar[str] = ''
    #: Whether ``system`` messages may be forwarded to the backend.
    accepts_system_role: ClassVar[bool] = True
    #: Whether the backend cannot work without an API key.
    requires_api_key: ClassVar[bool] = True
    #: Static catalogue and limits; subclasses override.
    supported_models: ClassVar[tuple[str, ...]] = ()
    model_limits: ClassVar[Mapping[str, ModelLimits]] = {}
    default_limits: ClassVar[ModelLimits] = ModelLimits(max_tokens=2048, context_window=4096, approximate=True)

    # ---------------------------------------------------------------------
    # Construction
    # ---------------------------------------------------------------------

    def __init__(
        self,
        config: ProviderConfiguration,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Resolve *config* against the environment once and keep it."""
        self._config: ProviderConfiguration = resolve_configuration(self.provider_name, config, environ)

    @property
    def config(self) -> ProviderConfiguration:
        return self._config

    @property
    def model(self) -> str:
        return self._config.model

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_response(
        self,
        messages: Sequence[Message],
        options: GenerationOptions | None = None,
    ) -> NormalizedResponse:
        """Generate a completion.

        With ``options.stream`` set, the backend stream is reconciled into the
        returned response and ``options.streaming_callbacks`` are notified.

        Subclasses **must not** override this - override `_invoke()` and
        `_stream()` instead.
        """
        opts = options or GenerationOptions()
        self._ensure_configured()
        outgoing = self._prepare_messages(messages)
        params = self._sampling_params(opts)
        _log.debug(
            'generate_response provider=%s model=%s messages=%d stream=%s',
            self.provider_name,
            self.model,
            len(outgoing),
            opts.stream,
        )

        if opts.stream:
            reconciler = StreamReconciler(opts.streaming_callbacks, model=self.model, provider=self.provider_name)
            return await reconciler.reconcile(self._stream(outgoing, params))

        response = await self._invoke(outgoing, params)
        return self._check_response(response)

    async def generate_stream_response(
        self,
        messages: Sequence[Message],
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[str]:
        """Yield text chunks as they arrive, without accumulation."""
        opts = options or GenerationOptions()
        self._ensure_configured()
        outgoing = self._prepare_messages(messages)
        params = self._sampling_params(opts)

        stream = self._stream(outgoing, params)
        try:
            async for chunk in stream:
                if chunk.finish_reason is FinishReason.safety_block:
                    raise SafetyBlockedError('Response blocked by safety filters', provider=self.provider_name)
                if chunk.text:
                    yield chunk.text
        finally:
            await stream.aclose()

    def validate_config(self) -> bool:
        """Local sanity check of required fields; never raises, never does I/O."""
        try:
            return not self._config_defects()
        except Exception:  # noqa: BLE001 - contract: never raise
            _log.debug('validate_config failed for %s', self.provider_name, exc_info=True)
            return False

    def get_supported_models(self) -> list[str]:
        return list(self.supported_models)

    def get_model_limits(self, model: str | None = None) -> ModelLimits:
        """Return limits for *model* (default: configured model).

        Unknown models get the adapter's conservative default, flagged with
        ``approximate=True``.
        """
        key = model if model is not None else self.model
        limits = self.model_limits.get(key)
        if limits is None:
            _log.debug('No known limits for %s model %r; using defaults', self.provider_name, key)
            return self.default_limits
        return limits

    # ------------------------------------------------------------------
    # Methods to implement in concrete adapters
    # ------------------------------------------------------------------

    @abstractmethod
    async def _invoke(self, messages: list[Message], params: SamplingParams) -> NormalizedResponse:
        """Provider-specific non-streaming call."""

    @abstractmethod
    def _stream(self, messages: list[Message], params: SamplingParams) -> AsyncIterator[StreamChunk]:
        """Provider-specific streaming call (an async generator)."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _config_defects(self) -> list[str]:
        defects: list[str] = []
        if not self._config.model:
            defects.append('model is required')
        if self.requires_api_key and not self._config.api_key_value():
            defects.append('API key is required')
        return defects

    def _ensure_configured(self) -> None:
        defects = self._config_defects()
        if defects:
            raise ConfigurationError(
                f'{self.provider_name} configuration invalid: {"; ".join(defects)}',
                provider=self.provider_name,
            )

    def _prepare_messages(self, messages: Sequence[Message]) -> list[Message]:
        """Drop roles the backend does not accept; reject an empty conversation."""
        outgoing = [m for m in messages if self.accepts_system_role or m.role is not Role.system]
        if not any(m.role is Role.user for m in outgoing):
            raise ConfigurationError('At least one user message is required', provider=self.provider_name)
        return outgoing

    def _sampling_params(self, options: GenerationOptions) -> SamplingParams:
        # options > configuration; the configuration already carries defaults.
        return SamplingParams(
            temperature=options.temperature if options.temperature is not None else self._config.temperature,
            max_tokens=options.max_tokens if options.max_tokens is not None else self._config.max_tokens,
            top_p=self._config.top_p,
            frequency_penalty=self._config.frequency_penalty,
            presence_penalty=self._config.presence_penalty,
        )

    def _check_response(self, response: NormalizedResponse) -> NormalizedResponse:
        if response.finish_reason is FinishReason.safety_block:
            raise SafetyBlockedError('Response blocked by safety filters', provider=self.provider_name)
        if not response.content:
            raise EmptyResponseError(f'No response content from {self.provider_name}', provider=self.provider_name)
        return response

    # ------------------------------------------------------------------
    # Helper - string representation
    # ------------------------------------------------------------------

    def __repr__(self) -> str:  # pragma: no cover - cosmetic
        return f'<{self.__class__.__name__} model={self.model!r}>'
