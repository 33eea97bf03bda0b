"""Settings describing which provider, model and key a session talks to."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping

from .core.adapters.http import MISSING_API_KEY_MESSAGE
from .core.adapters.registry import AdapterCache, ProviderDef, get_provider
from .core.errors import ConfigurationError

DEFAULT_PROVIDER_ID = "openrouter"

SETTING_PROVIDER = "ai_provider"
SETTING_API_KEY = "ai_api_key"
SETTING_MODEL = "ai_model"
SETTING_MAX_TOKENS = "ai_max_tokens"
SETTING_STREAMING = "ai_streaming"

ENV_PREFIX = "ARCWIRE_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(slots=True)
class Settings:
    """Resolved AI provider settings.

    Attributes
    ----------
    provider:
        Provider id from the catalogue. Unknown ids are passed through; the
        adapter factory falls back to the ``openai`` entry for them.
    api_key:
        Credential sent to the provider, already trimmed. May be empty until
        :meth:`require_api_key` is called.
    model:
        Explicit model id, or ``None`` for the provider default.
    max_tokens:
        Output token cap, or ``None`` for the provider default.
    streaming:
        Whether prompts use the server-sent-events path.
    """

    provider: str = DEFAULT_PROVIDER_ID
    api_key: str = ""
    model: str | None = None
    max_tokens: int | None = None
    streaming: bool = True

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "Settings":
        """Build settings from the persisted ``ai_*`` keys."""

        return cls(
            provider=_text(values.get(SETTING_PROVIDER)) or DEFAULT_PROVIDER_ID,
            api_key=_text(values.get(SETTING_API_KEY)) or "",
            model=_text(values.get(SETTING_MODEL)),
            max_tokens=_parse_int(values.get(SETTING_MAX_TOKENS), SETTING_MAX_TOKENS),
            streaming=_parse_bool(values.get(SETTING_STREAMING), SETTING_STREAMING, default=True),
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``ARCWIRE_*`` environment variables.

        The key is read from ``ARCWIRE_API_KEY`` or, when that is unset, from
        the provider's conventional variable such as ``OPENAI_API_KEY``.
        """

        env = os.environ if environ is None else environ
        provider = _text(env.get(f"{ENV_PREFIX}PROVIDER")) or DEFAULT_PROVIDER_ID
        api_key = _text(env.get(f"{ENV_PREFIX}API_KEY"))
        if api_key is None:
            provider_def = get_provider(provider)
            if provider_def is not None:
                api_key = _text(env.get(provider_def.env_var))

        return cls(
            provider=provider,
            api_key=api_key or "",
            model=_text(env.get(f"{ENV_PREFIX}MODEL")),
            max_tokens=_parse_int(env.get(f"{ENV_PREFIX}MAX_TOKENS"), f"{ENV_PREFIX}MAX_TOKENS"),
            streaming=_parse_bool(
                env.get(f"{ENV_PREFIX}STREAMING"), f"{ENV_PREFIX}STREAMING", default=True
            ),
        )

    @property
    def provider_def(self) -> ProviderDef | None:
        return get_provider(self.provider)

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError(MISSING_API_KEY_MESSAGE)
        return self.api_key

    def cache_key(self) -> str:
        return AdapterCache.cache_key(self.provider, self.api_key, self.model)

    def to_mapping(self) -> dict[str, str]:
        """Return the persisted ``ai_*`` representation."""

        values = {
            SETTING_PROVIDER: self.provider,
            SETTING_API_KEY: self.api_key,
            SETTING_STREAMING: "true" if self.streaming else "false",
        }
        if self.model:
            values[SETTING_MODEL] = self.model
        if self.max_tokens is not None:
            values[SETTING_MAX_TOKENS] = str(self.max_tokens)
        return values


def _text(value: Any) -> str | None:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def _parse_int(value: Any, name: str) -> int | None:
    text = _text(value)
    if text is None:
        return None
    try:
        parsed = int(text)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {text!r}") from exc
    if parsed <= 0:
        raise ConfigurationError(f"{name} must be positive, got {parsed}")
    return parsed


def _parse_bool(value: Any, name: str, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    text = _text(value)
    if text is None:
        return default
    lowered = text.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag, got {text!r}")
