"""Abstract interfaces for the stores a chat session depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Optional

from ..core.message import Message


class MessageStore(ABC):
    """Ordered, append-only conversation history per session."""

    @abstractmethod
    def list_messages(self, session_id: str) -> list[Message]:
        """Return every stored message for ``session_id`` in order."""

    @abstractmethod
    def append_messages(self, session_id: str, messages: Sequence[Message]) -> None:
        """Append ``messages`` to the end of the session history."""


class SettingsStore(ABC):
    """Key/value application settings."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or ``None`` when unset."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Persist ``value`` under ``key``."""


__all__ = ["MessageStore", "SettingsStore"]
