"""Chat session wiring settings, history and the cached provider adapter."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from arcwire.config import (
    SETTING_API_KEY,
    SETTING_MAX_TOKENS,
    SETTING_MODEL,
    SETTING_PROVIDER,
    SETTING_STREAMING,
    Settings,
)
from arcwire.core.adapters.base import CancelToken, ModelAdapter, Notify, PromptRequest, PromptResult, emit
from arcwire.core.adapters.registry import AdapterCache
from arcwire.core.adapters.toolbridge import ToolSpec
from arcwire.core.message import Message, ToolResult
from arcwire.io.interfaces import MessageStore, SettingsStore

LOGGER = logging.getLogger(__name__)

_SETTING_KEYS = (
    SETTING_PROVIDER,
    SETTING_API_KEY,
    SETTING_MODEL,
    SETTING_MAX_TOKENS,
    SETTING_STREAMING,
)


@dataclass(frozen=True, slots=True)
class NotifyRecord:
    """One ``notify`` call observed during a prompt."""

    event: str
    payload: Mapping[str, Any]


class SessionTranscript:
    """Buffer of notify events for deterministic replay."""

    def __init__(self) -> None:
        self._records: list[NotifyRecord] = []

    def record(self, event: str, payload: Mapping[str, Any]) -> None:
        self._records.append(NotifyRecord(event=event, payload=dict(payload)))

    @property
    def records(self) -> tuple[NotifyRecord, ...]:
        """Return the recorded events in emission order."""

        return tuple(self._records)

    @property
    def text(self) -> str:
        """Concatenation of every ``text_delta`` seen so far."""

        return "".join(
            str(record.payload.get("text", ""))
            for record in self._records
            if record.event == "text_delta"
        )

    def events_named(self, event: str) -> list[NotifyRecord]:
        return [record for record in self._records if record.event == event]

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    async def replay(self) -> AsyncIterator[NotifyRecord]:
        """Yield recorded events as an async iterator."""

        for record in self._records:
            yield record


class ChatSession:
    """Drive one conversation against the configured provider.

    Provider, key and model are read from ``settings_store`` on every send, so
    a settings change takes effect on the next message. Adapters are reused
    through a single-slot :class:`AdapterCache` while the triple is unchanged.
    """

    def __init__(
        self,
        settings_store: SettingsStore,
        message_store: MessageStore,
        session_id: str,
        *,
        system_prompt: str = "",
        cache: AdapterCache | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not session_id:
            raise ValueError("session id must not be empty")
        self._settings_store = settings_store
        self._message_store = message_store
        self.session_id = session_id
        self.system_prompt = system_prompt
        self._cache = cache or AdapterCache(transport=transport)
        self.transcript = SessionTranscript()

    def settings(self) -> Settings:
        return Settings.from_mapping({key: self._settings_store.get(key) for key in _SETTING_KEYS})

    def set_system_prompt(self, text: str) -> None:
        self.system_prompt = text

    def history(self) -> list[Message]:
        return self._message_store.list_messages(self.session_id)

    def resolve_adapter(self) -> ModelAdapter:
        """Return the adapter for the current settings with the system prompt applied.

        Raises :class:`ConfigurationError` when no API key is configured.
        """

        settings = self.settings()
        api_key = settings.require_api_key()
        adapter = self._cache.get_or_create(
            settings.provider,
            api_key,
            settings.model,
            max_tokens=settings.max_tokens,
            streaming=settings.streaming,
        )
        adapter.set_system_prompt(self.system_prompt)
        return adapter

    async def send(
        self,
        text: str,
        *,
        tools: Sequence[ToolSpec] = (),
        notify: Optional[Notify] = None,
        cancel: CancelToken | None = None,
    ) -> PromptResult:
        """Append a user message, prompt the model and store its reply."""

        return await self.send_message(Message.user(text), tools=tools, notify=notify, cancel=cancel)

    async def send_tool_results(
        self,
        results: Sequence[ToolResult],
        *,
        tools: Sequence[ToolSpec] = (),
        notify: Optional[Notify] = None,
        cancel: CancelToken | None = None,
    ) -> PromptResult:
        """Answer the model's tool calls and let it continue."""

        return await self.send_message(Message.results(*results), tools=tools, notify=notify, cancel=cancel)

    async def send_message(
        self,
        message: Message,
        *,
        tools: Sequence[ToolSpec] = (),
        notify: Optional[Notify] = None,
        cancel: CancelToken | None = None,
    ) -> PromptResult:
        adapter = self.resolve_adapter()
        self._message_store.append_messages(self.session_id, [message])
        request = PromptRequest(messages=tuple(self.history()), tools=tuple(tools))

        async def forward(event: str, payload: Mapping[str, Any]) -> None:
            self.transcript.record(event, payload)
            await emit(notify, event, payload)

        result = await adapter.prompt(request, forward, cancel)
        if result.cancelled:
            LOGGER.info("session %s prompt cancelled", self.session_id)
        self._message_store.append_messages(self.session_id, list(result.messages))
        return result
