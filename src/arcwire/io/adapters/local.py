"""Local filesystem-backed stores for development and tests."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Optional

from ...core.message import Message
from ..interfaces import MessageStore, SettingsStore
from ..schema import StoredMessage

LOGGER = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def _ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


class LocalMessageStore(MessageStore):
    """Persist each session as a JSON-lines file of :class:`StoredMessage` rows."""

    def __init__(self, directory: Path | str):
        self._directory = Path(directory)
        _ensure_directory(self._directory)

    @property
    def directory(self) -> Path:
        """Directory backing this store."""

        return self._directory

    def path_for(self, session_id: str) -> Path:
        if not session_id:
            raise ValueError("session id must not be empty")
        return self._directory / f"{_UNSAFE_FILENAME_CHARS.sub('_', session_id)}.jsonl"

    def list_messages(self, session_id: str) -> list[Message]:
        path = self.path_for(session_id)
        if not path.exists():
            return []
        messages: list[Message] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            messages.append(StoredMessage.model_validate_json(line).to_message())
        return messages

    def append_messages(self, session_id: str, messages: Sequence[Message]) -> None:
        if not messages:
            return
        rows = [StoredMessage.from_message(session_id, message) for message in messages]
        with self.path_for(session_id).open("a", encoding="utf-8") as handle:
            for row in rows:
                handle.write(row.model_dump_json())
                handle.write("\n")
        LOGGER.debug("appended %d messages to session %s", len(rows), session_id)


class InMemorySettingsStore(SettingsStore):
    """Settings held in a dictionary."""

    def __init__(self, values: Mapping[str, str] | None = None):
        self._values: dict[str, str] = dict(values or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class LocalSettingsStore(SettingsStore):
    """Settings persisted as a flat JSON object."""

    def __init__(self, path: Path | str):
        self._path = Path(path)
        _ensure_directory(self._path.parent)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        values = self._load()
        values[key] = value
        self._path.write_text(
            json.dumps(values, ensure_ascii=False, sort_keys=True, indent=2),
            encoding="utf-8",
        )

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        payload = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"settings file {self._path} must contain a JSON object")
        return payload


__all__ = [
    "InMemorySettingsStore",
    "LocalMessageStore",
    "LocalSettingsStore",
]
