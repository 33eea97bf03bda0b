"""Static provider catalogue and the adapter factory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Optional

import httpx

from .anthropic import AnthropicAdapter
from .http import HTTPModelAdapter
from .openai import OpenAIAdapter

LOGGER = logging.getLogger(__name__)

FALLBACK_PROVIDER_ID = "openai"


class ProviderFormat(str, Enum):
    """Wire protocol spoken by a provider."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True, slots=True)
class ProviderDef:
    """Immutable description of one supported provider."""

    id: str
    name: str
    base_url: str
    env_var: str
    default_model: str
    models: tuple[str, ...]
    format: ProviderFormat
    default_max_tokens: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "models", tuple(self.models))
        object.__setattr__(self, "format", ProviderFormat(self.format))
        if self.default_model not in self.models:
            msg = f"default model {self.default_model!r} is not listed for provider {self.id!r}"
            raise ValueError(msg)

    def resolve_model(self, model: str | None) -> str:
        return model or self.default_model


_CATALOGUE = (
    ProviderDef(
        id="openrouter",
        name="OpenRouter",
        base_url="https://openrouter.ai/api/v1",
        env_var="OPENROUTER_API_KEY",
        default_model="anthropic/claude-sonnet-4",
        models=(
            "anthropic/claude-sonnet-4",
            "anthropic/claude-opus-4",
            "openai/gpt-4.1",
            "openai/gpt-4.1-mini",
            "google/gemini-2.5-flash",
            "google/gemini-2.5-pro",
            "minimax/minimax-m2.5",
            "moonshotai/kimi-k2.5",
            "z-ai/glm-5",
        ),
        format=ProviderFormat.OPENAI,
        default_max_tokens=8192,
    ),
    ProviderDef(
        id="anthropic",
        name="Anthropic",
        base_url="https://api.anthropic.com",
        env_var="ANTHROPIC_API_KEY",
        default_model="claude-sonnet-4-20250514",
        models=(
            "claude-sonnet-4-20250514",
            "claude-opus-4-20250514",
            "claude-haiku-3-5-20241022",
        ),
        format=ProviderFormat.ANTHROPIC,
        default_max_tokens=8192,
    ),
    ProviderDef(
        id="openai",
        name="OpenAI",
        base_url="https://api.openai.com/v1",
        env_var="OPENAI_API_KEY",
        default_model="gpt-4.1",
        models=("gpt-4.1", "gpt-4.1-mini", "gpt-4.1-nano", "gpt-4o", "o4-mini"),
        format=ProviderFormat.OPENAI,
        default_max_tokens=4096,
    ),
    ProviderDef(
        id="gemini",
        name="Google Gemini",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        env_var="GEMINI_API_KEY",
        default_model="gemini-2.5-flash",
        models=("gemini-2.5-flash", "gemini-2.5-pro", "gemini-2.0-flash"),
        format=ProviderFormat.OPENAI,
        default_max_tokens=8192,
    ),
    ProviderDef(
        id="minimax",
        name="MiniMax",
        base_url="https://api.minimax.io/v1",
        env_var="MINIMAX_API_KEY",
        default_model="MiniMax-M2.5",
        models=("MiniMax-M2.5", "MiniMax-M2.5-highspeed", "MiniMax-M2.1"),
        format=ProviderFormat.OPENAI,
        default_max_tokens=8192,
    ),
    ProviderDef(
        id="kimi",
        name="Kimi (Moonshot)",
        base_url="https://api.moonshot.ai/v1",
        env_var="MOONSHOT_API_KEY",
        default_model="kimi-k2.5",
        models=("kimi-k2.5", "kimi-k2-0905-preview", "moonshot-v1-auto"),
        format=ProviderFormat.OPENAI,
        default_max_tokens=8192,
    ),
    ProviderDef(
        id="glm",
        name="GLM (Zhipu AI)",
        base_url="https://open.bigmodel.cn/api/paas/v4/",
        env_var="ZHIPUAI_API_KEY",
        default_model="glm-4-plus",
        models=("glm-4-plus", "glm-4-long", "glm-4-flash"),
        format=ProviderFormat.OPENAI,
        default_max_tokens=4096,
    ),
)

PROVIDERS = MappingProxyType({provider.id: provider for provider in _CATALOGUE})

_ADAPTER_CLASSES: dict[ProviderFormat, type[HTTPModelAdapter]] = {
    ProviderFormat.OPENAI: OpenAIAdapter,
    ProviderFormat.ANTHROPIC: AnthropicAdapter,
}


def list_providers() -> tuple[ProviderDef, ...]:
    """Return the catalogue in declaration order."""

    return _CATALOGUE


def get_provider(provider_id: str | None) -> ProviderDef | None:
    if not provider_id:
        return None
    return PROVIDERS.get(provider_id)


def create_adapter(
    provider_id: str,
    api_key: str,
    model: str | None = None,
    *,
    max_tokens: int | None = None,
    streaming: bool = True,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> HTTPModelAdapter:
    """Build an adapter for ``provider_id``.

    An unknown provider id falls back to the ``openai`` entry. ``model`` and
    ``max_tokens`` default to the provider's declared values. The key is not
    checked here; ``prompt`` fails with :class:`ConfigurationError` when it
    is empty.
    """

    provider = get_provider(provider_id)
    if provider is None:
        LOGGER.warning("unknown provider %r; falling back to %s", provider_id, FALLBACK_PROVIDER_ID)
        provider = PROVIDERS[FALLBACK_PROVIDER_ID]

    adapter_cls = _ADAPTER_CLASSES[provider.format]
    return adapter_cls(
        provider,
        api_key,
        provider.resolve_model(model),
        max_tokens=max_tokens if max_tokens is not None else provider.default_max_tokens,
        streaming=streaming,
        transport=transport,
    )


class AdapterCache:
    """Single-slot adapter cache keyed by ``provider:key:model``.

    A lookup with the same triple returns the identical adapter object; any
    change to the triple rebuilds the adapter and evicts the old one. The
    ``max_tokens`` and ``streaming`` options are fixed when an adapter is
    built, so asking for different options also rebuilds it.
    """

    def __init__(self, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport
        self._key: str | None = None
        self._options: tuple[int | None, bool] | None = None
        self._adapter: HTTPModelAdapter | None = None

    @staticmethod
    def cache_key(provider_id: str, api_key: str, model: str | None) -> str:
        provider = get_provider(provider_id) or PROVIDERS[FALLBACK_PROVIDER_ID]
        return f"{provider_id}:{api_key}:{provider.resolve_model(model)}"

    def get_or_create(
        self,
        provider_id: str,
        api_key: str,
        model: str | None = None,
        *,
        max_tokens: int | None = None,
        streaming: bool = True,
    ) -> HTTPModelAdapter:
        key = self.cache_key(provider_id, api_key, model)
        options = (max_tokens, streaming)
        if self._adapter is not None and self._key == key and self._options == options:
            LOGGER.debug("adapter cache hit for %s", provider_id)
            return self._adapter

        LOGGER.debug("adapter cache miss for %s", provider_id)
        self._adapter = create_adapter(
            provider_id,
            api_key,
            model,
            max_tokens=max_tokens,
            streaming=streaming,
            transport=self._transport,
        )
        self._key = key
        self._options = options
        return self._adapter

    def clear(self) -> None:
        self._key = None
        self._options = None
        self._adapter = None
