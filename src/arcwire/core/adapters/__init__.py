"""Provider adapters, wire formatters and stream decoders."""

from __future__ import annotations

from .anthropic import (
    AnthropicAdapter,
    AnthropicStreamDecoder,
    format_anthropic_messages,
    parse_anthropic_response,
)
from .base import CancelToken, ModelAdapter, ModelResponse, PromptRequest, PromptResult
from .http import HTTPModelAdapter
from .openai import (
    OpenAIAdapter,
    OpenAIStreamDecoder,
    format_openai_messages,
    parse_openai_response,
)
from .registry import (
    PROVIDERS,
    AdapterCache,
    ProviderDef,
    ProviderFormat,
    create_adapter,
    get_provider,
    list_providers,
)
from .stream import DoneEvent, SSELineBuffer, StreamEvent, TextDeltaEvent, ToolUseEvent
from .toolbridge import ToolSpec

__all__ = [
    "AdapterCache",
    "AnthropicAdapter",
    "AnthropicStreamDecoder",
    "CancelToken",
    "DoneEvent",
    "HTTPModelAdapter",
    "ModelAdapter",
    "ModelResponse",
    "OpenAIAdapter",
    "OpenAIStreamDecoder",
    "PROVIDERS",
    "PromptRequest",
    "PromptResult",
    "ProviderDef",
    "ProviderFormat",
    "SSELineBuffer",
    "StreamEvent",
    "TextDeltaEvent",
    "ToolSpec",
    "ToolUseEvent",
    "create_adapter",
    "format_anthropic_messages",
    "format_openai_messages",
    "get_provider",
    "list_providers",
    "parse_anthropic_response",
    "parse_openai_response",
]
