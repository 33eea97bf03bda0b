"""Canonical streaming events and the server-sent-events decoding pipeline."""

from __future__ import annotations

import abc
import asyncio
import codecs
import contextlib
import inspect
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from ..message import Message
from .base import CancelToken

LOGGER = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"


@dataclass(slots=True)
class TextDeltaEvent:
    """Incremental assistant text."""

    text: str


@dataclass(slots=True)
class ToolUseEvent:
    """A tool call whose arguments are fully assembled."""

    id: str
    name: str
    input: Any


@dataclass(slots=True)
class DoneEvent:
    """Terminal event carrying the assembled assistant message."""

    message: Message
    tokens_in: int = 0
    tokens_out: int = 0


StreamEvent = Union[TextDeltaEvent, ToolUseEvent, DoneEvent]


class SSELineBuffer:
    """Split an arbitrarily chunked byte stream into complete text lines.

    A trailing partial line is held back and prefixed onto the next chunk.
    UTF-8 sequences split across chunk boundaries are reassembled.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes | str) -> List[str]:
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        if not text:
            return []
        lines = (self._pending + text).split("\n")
        self._pending = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        remainder = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if not remainder:
            return []
        return [line.rstrip("\r") for line in remainder.split("\n")]


def sse_data(line: str) -> Optional[str]:
    """Return the payload of an SSE ``data:`` line, or ``None`` to skip it."""

    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX):].strip()
    if not payload or payload == SSE_DONE_SENTINEL:
        return None
    return payload


class StreamDecoder(abc.ABC):
    """Incrementally turn provider SSE bytes into canonical stream events.

    Subclasses implement :meth:`handle_payload` for one decoded JSON object
    and :meth:`finalize` for end-of-stream bookkeeping. Lines that are not
    ``data:`` lines, the ``[DONE]`` sentinel, and payloads that are not valid
    JSON objects are skipped rather than aborting the stream.
    """

    def __init__(self) -> None:
        self._lines = SSELineBuffer()
        self._finished = False

    def feed(self, chunk: bytes | str) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        for line in self._lines.feed(chunk):
            events.extend(self._handle_line(line))
        return events

    def finish(self) -> List[StreamEvent]:
        """Drain the buffered partial line and emit the terminal events."""

        if self._finished:
            return []
        self._finished = True

        events: List[StreamEvent] = []
        for line in self._lines.flush():
            events.extend(self._handle_line(line))
        events.extend(self.finalize())
        return events

    def decode(self, data: bytes | str) -> List[StreamEvent]:
        """Decode a complete, non-chunked body in one call."""

        return self.feed(data) + self.finish()

    def _handle_line(self, line: str) -> List[StreamEvent]:
        data = sse_data(line)
        if data is None:
            return []
        try:
            payload = json.loads(data)
        except ValueError:
            LOGGER.debug("skipping unparsable SSE payload: %.80s", data)
            return []
        if not isinstance(payload, Mapping):
            LOGGER.debug("skipping non-object SSE payload: %.80s", data)
            return []
        return self.handle_payload(payload)

    @abc.abstractmethod
    def handle_payload(self, payload: Mapping[str, Any]) -> List[StreamEvent]:
        """Map one provider event object to canonical events."""

    @abc.abstractmethod
    def finalize(self) -> List[StreamEvent]:
        """Flush unfinished state and return the terminal :class:`DoneEvent`."""


_CANCELLED = object()


async def decode_stream(
    chunks: AsyncIterable[bytes],
    decoder: StreamDecoder,
    *,
    cancel: CancelToken | None = None,
) -> AsyncIterator[StreamEvent]:
    """Yield canonical events as chunks arrive.

    Each chunk's events are delivered before the next read. When ``cancel``
    fires, iteration stops immediately: the pending read is abandoned and no
    further events (including the terminal one) are produced.
    """

    iterator = chunks.__aiter__()
    while True:
        chunk = await _next_chunk(iterator, cancel)
        if chunk is _CANCELLED:
            LOGGER.warning("stream cancelled; abandoning remaining body")
            return
        if chunk is None:
            break
        for event in decoder.feed(chunk):
            if cancel is not None and cancel.cancelled:
                return
            yield event

    for event in decoder.finish():
        if cancel is not None and cancel.cancelled:
            return
        yield event


async def _next_chunk(iterator: AsyncIterator[bytes], cancel: CancelToken | None) -> Any:
    if cancel is None:
        try:
            return await iterator.__anext__()
        except StopAsyncIteration:
            return None

    if cancel.cancelled:
        return _CANCELLED

    read = asyncio.ensure_future(iterator.__anext__())
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({read, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()

    if not read.done():
        read.cancel()
        with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
            await read
        return _CANCELLED
    try:
        return read.result()
    except StopAsyncIteration:
        return None


async def replay_stream(events: AsyncIterator[StreamEvent]) -> List[StreamEvent]:
    """Collect every event from ``events`` and close the iterator."""

    collected: List[StreamEvent] = []
    try:
        async for event in events:
            collected.append(event)
    finally:
        closer = getattr(events, "aclose", None)
        if closer is not None:
            result = closer()
            if inspect.isawaitable(result):
                await result
    return collected
