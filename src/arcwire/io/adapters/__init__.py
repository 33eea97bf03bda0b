"""Concrete store implementations."""

from .local import InMemorySettingsStore, LocalMessageStore, LocalSettingsStore

__all__ = [
    "InMemorySettingsStore",
    "LocalMessageStore",
    "LocalSettingsStore",
]
