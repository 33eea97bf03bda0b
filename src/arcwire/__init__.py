"""Provider protocol adapters and saved-query templating.

The package converts a provider-agnostic conversation into the request
formats of OpenAI-compatible and Anthropic APIs, decodes their streamed
replies back into canonical messages, and compiles saved SQL templates
written with any of five placeholder syntaxes.
"""

from __future__ import annotations

from .config import Settings
from .core.adapters import AdapterCache, CancelToken, PromptRequest, PromptResult, create_adapter
from .core.errors import AdapterError, ConfigurationError, ProviderHTTPError
from .core.message import Message, ToolCall, ToolResult
from .saved_query import CompiledQuery, SavedQuery, SavedQueryLibrary, compile_sql, extract_params

__all__ = [
    "AdapterCache",
    "AdapterError",
    "CancelToken",
    "CompiledQuery",
    "ConfigurationError",
    "Message",
    "PromptRequest",
    "PromptResult",
    "ProviderHTTPError",
    "SavedQuery",
    "SavedQueryLibrary",
    "Settings",
    "ToolCall",
    "ToolResult",
    "compile_sql",
    "create_adapter",
    "extract_params",
]

__version__ = "0.1.0"
