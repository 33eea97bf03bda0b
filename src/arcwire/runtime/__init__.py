"""Session runtime coordinating stores, settings and provider adapters."""

from .session import ChatSession, NotifyRecord, SessionTranscript

__all__ = [
    "ChatSession",
    "NotifyRecord",
    "SessionTranscript",
]
