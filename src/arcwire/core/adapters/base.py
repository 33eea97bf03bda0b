"""Adapter interface shared by provider implementations."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from ..errors import PromptCancelled
from ..message import Message
from .toolbridge import ToolSpec

T = TypeVar("T")

Notify = Callable[[str, Mapping[str, Any]], Any]
"""Subscriber callback: ``notify(event_name, payload)``, sync or async."""


class CancelToken:
    """Cancellation signal passed from the UI layer into a prompt call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True, slots=True)
class PromptRequest:
    """Conversation history and tool definitions for one prompt call."""

    messages: tuple[Message, ...]
    tools: tuple[ToolSpec, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))
        object.__setattr__(self, "tools", tuple(self.tools or ()))


@dataclass(frozen=True, slots=True)
class ModelResponse:
    """A provider reply parsed back into the canonical model."""

    message: Message
    tokens_in: int = 0
    tokens_out: int = 0


@dataclass(frozen=True, slots=True)
class PromptResult:
    """Outcome of :meth:`ModelAdapter.prompt`."""

    messages: tuple[Message, ...]
    tokens_in: int = 0
    tokens_out: int = 0
    cancelled: bool = False

    def raise_if_cancelled(self) -> PromptResult:
        if self.cancelled:
            raise PromptCancelled("prompt was cancelled before completion")
        return self


class ModelAdapter(ABC):
    """Abstract interface for provider-specific adapters.

    ``set_system_prompt`` stores text consulted by the next ``prompt`` call;
    the adapter keeps no conversation state between calls.
    """

    name: str

    @abstractmethod
    def set_system_prompt(self, text: str) -> None:
        """Replace the system prompt used by subsequent prompts."""

    @abstractmethod
    async def prompt(
        self,
        request: PromptRequest | Sequence[Message],
        notify: Optional[Notify] = None,
        cancel: CancelToken | None = None,
    ) -> PromptResult:
        """Send the conversation to the provider and return the reply."""


async def emit(notify: Optional[Notify], event_name: str, payload: Mapping[str, Any]) -> None:
    """Invoke ``notify`` and await it when it returns an awaitable."""

    if notify is None:
        return
    result = notify(event_name, payload)
    if inspect.isawaitable(result):
        await result


async def until_cancelled(awaitable: Awaitable[T], cancel: CancelToken | None) -> T | None:
    """Await ``awaitable`` unless ``cancel`` fires first; ``None`` means cancelled."""

    if cancel is None:
        return await awaitable
    if cancel.cancelled:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        return None

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()

    if not task.done():
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return None
    return task.result()
