"""Canonical conversation model and provider adapters for arcwire."""

from __future__ import annotations

from .errors import AdapterError, ConfigurationError, PromptCancelled, ProviderHTTPError
from .message import Message, Sender, ToolCall, ToolResult, ToolResultStatus
from .adapters.toolbridge import ToolSpec

__all__ = [
    "AdapterError",
    "ConfigurationError",
    "Message",
    "PromptCancelled",
    "ProviderHTTPError",
    "Sender",
    "ToolCall",
    "ToolResult",
    "ToolResultStatus",
    "ToolSpec",
]
