"""core.model_id

Utility for validating and parsing provider-qualified model identifiers of
the form

    "<provider>:<model_name>"

Only the *first* colon separates the two halves, because local-server model
tags carry colons of their own (``ollama:llama3.1:8b``).
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Regular-expression helpers
# ---------------------------------------------------------------------------

_MODEL_ID_REGEX: re.Pattern[str] = re.compile(
    r'^(?P<provider>[a-z0-9_-]+):(?P<model>[a-z0-9_.:/-]+)$',
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class ModelId(BaseModel):
    """Value-object representing a model identifier.

    * `provider` … registry slug (e.g. ``ollama``), always lower-case
    * `model` … concrete model name (e.g. ``llama3.1:8b``), kept verbatim

    The *raw* string is preserved for logging/debugging purposes.
    """

    provider: str = Field(..., pattern=r'^[a-z0-9_-]+$', description='provider slug')
    model: str = Field(..., min_length=1, description='model name')
    raw: str = Field(..., description='original, unmodified identifier')

    model_config = {
        'frozen': True,  # hashable / usable as dict key
        'str_strip_whitespace': True,
    }

    @field_validator('provider', mode='before')
    @classmethod
    def _provider_to_lower(cls, v: str) -> str:
        """Force lower-case for case-insensitive matching."""
        return v.lower()

    @classmethod
    def parse(cls, raw: str) -> ModelId:
        """Parse and validate a *raw* identifier string.

        >>> ModelId.parse("ollama:llama3.1:8b").model
        'llama3.1:8b'
        """
        if (m := _MODEL_ID_REGEX.match(raw.strip())) is None:
            raise ValueError(f"Invalid ModelId format. Expected '<provider>:<model>', got: {raw}")
        return cls(provider=m.group('provider'), model=m.group('model'), raw=raw)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f'{self.provider}:{self.model}'


# Convenience alias so callers don't need to import the class explicitly
parse_model_id = ModelId.parse
