"""Anthropic messages protocol: formatter, response parser, stream decoder, adapter."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from ..errors import AdapterError
from ..message import (
    Base64Source,
    ContentPart,
    DocumentPart,
    ImagePart,
    MediaSource,
    Message,
    Sender,
    TextPart,
    ToolCall,
    ToolResultStatus,
    VideoPart,
)
from .base import ModelResponse, PromptRequest
from .http import HTTPModelAdapter
from .reconcile import reconcile_anthropic
from .stream import DoneEvent, StreamDecoder, StreamEvent, TextDeltaEvent, ToolUseEvent
from .toolbridge import (
    format_tool_result_content,
    generate_call_id,
    parse_tool_arguments,
    tool_arguments_from_object,
    tool_input_object,
    tool_specs_to_anthropic,
)
from .wire import (
    ANTHROPIC_STREAM_EVENT_TYPES,
    ANTHROPIC_STREAM_EVENTS,
    AnthropicBase64Source,
    AnthropicContentBlock,
    AnthropicContentBlockDelta,
    AnthropicContentBlockStart,
    AnthropicContentBlockStop,
    AnthropicDocumentBlock,
    AnthropicImageBlock,
    AnthropicMessage,
    AnthropicMessageDelta,
    AnthropicMessageResponse,
    AnthropicMessageStart,
    AnthropicSource,
    AnthropicTextBlock,
    AnthropicToolResultBlock,
    AnthropicToolUseBlock,
    AnthropicUrlSource,
)

LOGGER = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
TOOL_USE_ID_PREFIX = "toolu"
UNKNOWN_CALL_ID = "_unknown"


def format_anthropic_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert canonical history to Anthropic ``messages``.

    Every canonical message maps to exactly one wire message; the
    reconciliation passes then merge same-role neighbours, drop duplicate
    ``tool_result`` blocks and answer any ``tool_use`` left unanswered.
    """

    formatted = [_format_message(message) for message in messages]
    return [item.to_wire() for item in reconcile_anthropic(formatted)]


def build_anthropic_payload(
    request: PromptRequest,
    *,
    model: str,
    max_tokens: int,
    system_prompt: str = "",
    stream: bool = False,
) -> dict[str, Any]:
    """Assemble the JSON body for ``POST /v1/messages``."""

    payload: dict[str, Any] = {"model": model}
    if system_prompt:
        payload["system"] = system_prompt
    payload["messages"] = format_anthropic_messages(request.messages)
    payload["max_tokens"] = max_tokens
    if request.tools:
        payload["tools"] = tool_specs_to_anthropic(request.tools)
    if stream:
        payload["stream"] = True
    return payload


def parse_anthropic_response(payload: Mapping[str, Any]) -> ModelResponse:
    """Parse a non-streaming messages body into a canonical reply.

    Content blocks that fail validation or have an unknown ``type`` are
    skipped; a body that is not an object at all raises :class:`AdapterError`.
    """

    try:
        response = AnthropicMessageResponse.model_validate(payload)
    except ValidationError as exc:
        msg = "malformed Anthropic messages response"
        raise AdapterError(msg) from exc

    texts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in response.content:
        if block.type == "text" and block.text:
            texts.append(block.text)
        elif block.type == "tool_use":
            if not block.name:
                LOGGER.warning("skipping tool_use block %s without a name", block.id)
                continue
            tool_calls.append(
                ToolCall(
                    tool_name=block.name,
                    input_args=tool_arguments_from_object(block.input),
                    id=block.id or generate_call_id(TOOL_USE_ID_PREFIX),
                )
            )

    usage = response.usage
    return ModelResponse(
        message=Message.agent("".join(texts), tool_calls=tool_calls),
        tokens_in=(usage.input_tokens or 0) if usage else 0,
        tokens_out=(usage.output_tokens or 0) if usage else 0,
    )


@dataclass(slots=True)
class _ToolBlock:
    id: str
    name: str
    partial_json: str = ""


class AnthropicStreamDecoder(StreamDecoder):
    """Decode Anthropic's content-block lifecycle events.

    ``content_block_start`` opens a tool block, ``input_json_delta`` fragments
    extend its partial JSON and ``content_block_stop`` parses it and emits the
    :class:`ToolUseEvent`. Token counts come from ``message_start`` (input)
    and ``message_delta`` (output).
    """

    def __init__(self) -> None:
        super().__init__()
        self._text: list[str] = []
        self._open_blocks: dict[int, _ToolBlock] = {}
        self._tool_calls: list[ToolCall] = []
        self._tokens_in = 0
        self._tokens_out = 0

    def handle_payload(self, payload: Mapping[str, Any]) -> list[StreamEvent]:
        event_type = payload.get("type")
        if event_type == "error":
            error = payload.get("error")
            detail = error.get("message") if isinstance(error, Mapping) else None
            msg = f"Anthropic stream error: {detail or 'unknown error'}"
            raise AdapterError(msg)
        if event_type not in ANTHROPIC_STREAM_EVENT_TYPES:
            return []

        try:
            event = ANTHROPIC_STREAM_EVENTS.validate_python(payload)
        except ValidationError:
            LOGGER.debug("skipping malformed %s event", event_type)
            return []

        if isinstance(event, AnthropicMessageStart):
            if event.message.usage is not None:
                self._tokens_in = event.message.usage.input_tokens or 0
            return []

        if isinstance(event, AnthropicMessageDelta):
            if event.usage is not None and event.usage.output_tokens is not None:
                self._tokens_out = event.usage.output_tokens
            return []

        if isinstance(event, AnthropicContentBlockStart):
            block = event.content_block
            if block.type == "tool_use":
                self._open_blocks[event.index] = _ToolBlock(
                    id=block.id or generate_call_id(TOOL_USE_ID_PREFIX),
                    name=block.name or "",
                )
            elif block.type == "text" and block.text:
                return [self._text_delta(block.text)]
            return []

        if isinstance(event, AnthropicContentBlockDelta):
            delta = event.delta
            if delta.type == "text_delta" and delta.text:
                return [self._text_delta(delta.text)]
            if delta.type == "input_json_delta" and delta.partial_json:
                open_block = self._open_blocks.get(event.index)
                if open_block is None:
                    LOGGER.debug("input_json_delta for unknown block %d", event.index)
                else:
                    open_block.partial_json += delta.partial_json
            return []

        if isinstance(event, AnthropicContentBlockStop):
            open_block = self._open_blocks.pop(event.index, None)
            if open_block is None:
                return []
            return self._complete(open_block)

        return []

    def finalize(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        if self._open_blocks:
            LOGGER.warning("stream ended with %d unfinished tool blocks; flushing them", len(self._open_blocks))
            for index in sorted(self._open_blocks):
                events.extend(self._complete(self._open_blocks[index]))
            self._open_blocks.clear()
        message = Message.agent("".join(self._text), tool_calls=self._tool_calls)
        events.append(DoneEvent(message=message, tokens_in=self._tokens_in, tokens_out=self._tokens_out))
        return events

    def _text_delta(self, text: str) -> TextDeltaEvent:
        self._text.append(text)
        return TextDeltaEvent(text=text)

    def _complete(self, block: _ToolBlock) -> list[StreamEvent]:
        if not block.name:
            LOGGER.warning("dropping tool block %s without a name", block.id)
            return []
        input_args = parse_tool_arguments(block.partial_json)
        self._tool_calls.append(ToolCall(tool_name=block.name, input_args=input_args, id=block.id))
        return [ToolUseEvent(id=block.id, name=block.name, input=input_args)]


class AnthropicAdapter(HTTPModelAdapter):
    """Adapter for the native Anthropic messages API."""

    @property
    def error_label(self) -> str:
        return "Anthropic"

    def endpoint(self) -> str:
        return f"{self.provider.base_url.rstrip('/')}/v1/messages"

    def headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
            "anthropic-dangerous-direct-browser-access": "true",
        }

    def build_payload(self, request: PromptRequest, *, stream: bool) -> dict[str, Any]:
        return build_anthropic_payload(
            request,
            model=self.model,
            max_tokens=self.max_tokens,
            system_prompt=self.system_prompt,
            stream=stream,
        )

    def parse_response(self, payload: Mapping[str, Any]) -> ModelResponse:
        return parse_anthropic_response(payload)

    def new_decoder(self) -> AnthropicStreamDecoder:
        return AnthropicStreamDecoder()


def _format_message(message: Message) -> AnthropicMessage:
    role = "assistant" if message.sender is Sender.AGENT else "user"

    if message.sender is Sender.USER and message.tool_results:
        return AnthropicMessage(
            role="user",
            content=[
                AnthropicToolResultBlock(
                    tool_use_id=result.call_id or UNKNOWN_CALL_ID,
                    content=format_tool_result_content(result),
                    is_error=result.status is ToolResultStatus.ERROR,
                )
                for result in message.tool_results
            ],
        )

    if message.sender is Sender.AGENT and message.tool_calls:
        blocks: list[AnthropicContentBlock] = []
        if message.text:
            blocks.append(AnthropicTextBlock(text=message.text))
        for call in message.tool_calls:
            blocks.append(
                AnthropicToolUseBlock(
                    id=call.id or generate_call_id(TOOL_USE_ID_PREFIX),
                    name=call.tool_name,
                    input=tool_input_object(call.input_args),
                )
            )
        return AnthropicMessage(role="assistant", content=blocks)

    if message.content:
        return AnthropicMessage(role=role, content=_format_parts(message.content))

    return AnthropicMessage(role=role, content=message.text or "")


def _format_parts(parts: Sequence[ContentPart]) -> list[AnthropicContentBlock]:
    blocks: list[AnthropicContentBlock] = []
    for part in parts:
        if isinstance(part, TextPart):
            if part.text:
                blocks.append(AnthropicTextBlock(text=part.text))
        elif isinstance(part, ImagePart):
            if part.source is not None:
                blocks.append(AnthropicImageBlock(source=_source(part.source)))
        elif isinstance(part, DocumentPart):
            if part.source is not None:
                blocks.append(AnthropicDocumentBlock(source=_source(part.source)))
        elif isinstance(part, VideoPart):
            media_type = part.source.media_type if part.source is not None else None
            blocks.append(AnthropicTextBlock(text=f"[Video attachment: {media_type or 'video'}]"))
    return blocks


def _source(source: MediaSource) -> AnthropicSource:
    if isinstance(source, Base64Source):
        return AnthropicBase64Source(media_type=source.media_type, data=source.data)
    return AnthropicUrlSource(url=source.url)
