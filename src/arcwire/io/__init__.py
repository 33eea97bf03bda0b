"""Storage interfaces and schemas for arcwire sessions."""

from .schema import JSONValue, StoredMessage
from .interfaces import MessageStore, SettingsStore

__all__ = [
    "JSONValue",
    "MessageStore",
    "SettingsStore",
    "StoredMessage",
]
