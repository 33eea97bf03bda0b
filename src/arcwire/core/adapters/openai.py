"""Chat-completions protocol: formatter, response parser, stream decoder, adapter.

Serves every provider registered with the ``openai`` format (OpenAI itself,
OpenRouter, Gemini's compatibility endpoint, MiniMax, Kimi, GLM).
"""

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
    VideoPart,
)
from .base import ModelResponse, PromptRequest
from .http import HTTPModelAdapter
from .reconcile import reconcile_openai
from .stream import DoneEvent, StreamDecoder, StreamEvent, TextDeltaEvent, ToolUseEvent
from .toolbridge import (
    encode_tool_arguments,
    format_tool_result_content,
    generate_call_id,
    parse_tool_arguments,
    tool_arguments_from_object,
    tool_specs_to_openai,
)
from .wire import (
    OpenAIAssistantMessage,
    OpenAIChatResponse,
    OpenAIContentPart,
    OpenAIFunctionCall,
    OpenAIImagePart,
    OpenAIImageUrl,
    OpenAIMessage,
    OpenAIStreamChunk,
    OpenAISystemMessage,
    OpenAITextPart,
    OpenAIToolCallWire,
    OpenAIToolMessage,
    OpenAIUserMessage,
)

LOGGER = logging.getLogger(__name__)

CALL_ID_PREFIX = "call"
UNKNOWN_CALL_ID = "_unknown"


def format_openai_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert canonical history to chat-completions ``messages``.

    Each canonical message expands to one or more wire messages (tool results
    become individual ``role: tool`` messages), then the reconciliation passes
    merge adjacent turns, drop duplicate results and answer orphaned calls.
    """

    flat: list[OpenAIMessage] = []
    for message in messages:
        flat.extend(_format_message(message))
    return [item.to_wire() for item in reconcile_openai(flat)]


def build_openai_payload(
    request: PromptRequest,
    *,
    model: str,
    max_tokens: int,
    system_prompt: str = "",
    stream: bool = False,
) -> dict[str, Any]:
    """Assemble the JSON body for ``POST /chat/completions``."""

    wire_messages = format_openai_messages(request.messages)
    if system_prompt:
        wire_messages.insert(0, OpenAISystemMessage(content=system_prompt).to_wire())

    payload: dict[str, Any] = {
        "model": model,
        "messages": wire_messages,
        "max_tokens": max_tokens,
    }
    if request.tools:
        payload["tools"] = tool_specs_to_openai(request.tools)
    if stream:
        payload["stream"] = True
        payload["stream_options"] = {"include_usage": True}
    return payload


def parse_openai_response(payload: Mapping[str, Any]) -> ModelResponse:
    """Parse a non-streaming chat-completions body into a canonical reply.

    Tool calls and choices that fail validation are skipped; a body that is
    not an object at all raises :class:`AdapterError`.
    """

    try:
        response = OpenAIChatResponse.model_validate(payload)
    except ValidationError as exc:
        msg = "malformed chat-completions response"
        raise AdapterError(msg) from exc

    if not response.choices:
        return ModelResponse(message=Message.agent(""))

    reply = response.choices[0].message
    tool_calls: list[ToolCall] = []
    for call in reply.tool_calls or ():
        if call.type != "function":
            continue
        if not call.function.name:
            LOGGER.warning("skipping tool call %s without a function name", call.id)
            continue
        arguments = call.function.arguments
        if isinstance(arguments, str):
            input_args = parse_tool_arguments(arguments)
        else:
            input_args = tool_arguments_from_object(arguments)
        tool_calls.append(
            ToolCall(
                tool_name=call.function.name,
                input_args=input_args,
                id=call.id or generate_call_id(CALL_ID_PREFIX),
            )
        )

    usage = response.usage
    return ModelResponse(
        message=Message.agent(reply.content or "", tool_calls=tool_calls),
        tokens_in=(usage.prompt_tokens or 0) if usage else 0,
        tokens_out=(usage.completion_tokens or 0) if usage else 0,
    )


@dataclass(slots=True)
class _ToolCallAccumulator:
    id: str
    name: str = ""
    arguments: str = ""
    finished: bool = False


class OpenAIStreamDecoder(StreamDecoder):
    """Decode chat-completions SSE chunks.

    Tool-call fragments arrive piecemeal and are accumulated by their
    ``index``. A call is emitted as :class:`ToolUseEvent` once the choice
    reports a ``finish_reason``; anything still open at end of stream is
    flushed before the terminal :class:`DoneEvent`.
    """

    def __init__(self) -> None:
        super().__init__()
        self._text: list[str] = []
        self._accumulators: dict[int, _ToolCallAccumulator] = {}
        self._tool_calls: list[ToolCall] = []
        self._tokens_in = 0
        self._tokens_out = 0

    def handle_payload(self, payload: Mapping[str, Any]) -> list[StreamEvent]:
        try:
            chunk = OpenAIStreamChunk.model_validate(payload)
        except ValidationError:
            LOGGER.debug("skipping malformed chat-completions chunk")
            return []

        if chunk.usage is not None:
            self._tokens_in = chunk.usage.prompt_tokens or 0
            self._tokens_out = chunk.usage.completion_tokens or 0
        if not chunk.choices:
            return []

        choice = chunk.choices[0]
        events: list[StreamEvent] = []
        delta = choice.delta
        if delta is not None:
            if delta.content:
                self._text.append(delta.content)
                events.append(TextDeltaEvent(text=delta.content))
            for fragment in delta.tool_calls or ():
                self._accumulate(fragment.index, fragment.id, fragment.function)

        if choice.finish_reason:
            events.extend(self._complete_open_calls())
        return events

    def finalize(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        if any(not acc.finished for acc in self._accumulators.values()):
            LOGGER.warning("stream ended with unfinished tool calls; flushing them")
            events.extend(self._complete_open_calls())
        message = Message.agent("".join(self._text), tool_calls=self._tool_calls)
        events.append(DoneEvent(message=message, tokens_in=self._tokens_in, tokens_out=self._tokens_out))
        return events

    def _accumulate(self, index: int, call_id: str | None, function: Any) -> None:
        accumulator = self._accumulators.get(index)
        if accumulator is None:
            accumulator = _ToolCallAccumulator(id=call_id or generate_call_id(CALL_ID_PREFIX))
            self._accumulators[index] = accumulator
        elif accumulator.finished:
            LOGGER.debug("ignoring fragment for completed tool call %s", accumulator.id)
            return
        elif call_id:
            accumulator.id = call_id

        if function is not None:
            if function.name:
                accumulator.name = function.name
            if function.arguments:
                accumulator.arguments += function.arguments

    def _complete_open_calls(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for index in sorted(self._accumulators):
            accumulator = self._accumulators[index]
            if accumulator.finished:
                continue
            accumulator.finished = True
            if not accumulator.name:
                LOGGER.warning("dropping tool call %s without a function name", accumulator.id)
                continue
            input_args = parse_tool_arguments(accumulator.arguments)
            self._tool_calls.append(
                ToolCall(tool_name=accumulator.name, input_args=input_args, id=accumulator.id)
            )
            events.append(ToolUseEvent(id=accumulator.id, name=accumulator.name, input=input_args))
        return events


class OpenAIAdapter(HTTPModelAdapter):
    """Adapter for providers exposing an OpenAI-compatible ``/chat/completions``."""

    def endpoint(self) -> str:
        return f"{self.provider.base_url.rstrip('/')}/chat/completions"

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, request: PromptRequest, *, stream: bool) -> dict[str, Any]:
        return build_openai_payload(
            request,
            model=self.model,
            max_tokens=self.max_tokens,
            system_prompt=self.system_prompt,
            stream=stream,
        )

    def parse_response(self, payload: Mapping[str, Any]) -> ModelResponse:
        return parse_openai_response(payload)

    def new_decoder(self) -> OpenAIStreamDecoder:
        return OpenAIStreamDecoder()


def _format_message(message: Message) -> list[OpenAIMessage]:
    if message.sender is Sender.USER and message.tool_results:
        return [
            OpenAIToolMessage(
                tool_call_id=result.call_id or UNKNOWN_CALL_ID,
                content=format_tool_result_content(result),
            )
            for result in message.tool_results
        ]

    if message.sender is Sender.AGENT and message.tool_calls:
        return [
            OpenAIAssistantMessage(
                content=message.text or None,
                tool_calls=[
                    OpenAIToolCallWire(
                        id=call.id or generate_call_id(CALL_ID_PREFIX),
                        function=OpenAIFunctionCall(
                            name=call.tool_name,
                            arguments=encode_tool_arguments(call.input_args),
                        ),
                    )
                    for call in message.tool_calls
                ],
            )
        ]

    if message.sender is Sender.USER and message.content:
        return [OpenAIUserMessage(content=_format_parts(message.content))]

    if message.sender is Sender.AGENT:
        return [OpenAIAssistantMessage(content=message.text or "")]
    return [OpenAIUserMessage(content=message.text or "")]


def _format_parts(parts: Sequence[ContentPart]) -> list[OpenAIContentPart]:
    formatted: list[OpenAIContentPart] = []
    for part in parts:
        if isinstance(part, TextPart):
            if part.text:
                formatted.append(OpenAITextPart(text=part.text))
        elif isinstance(part, (ImagePart, VideoPart)):
            if part.source is not None:
                formatted.append(OpenAIImagePart(image_url=OpenAIImageUrl(url=_source_url(part.source))))
        elif isinstance(part, DocumentPart):
            media_type = part.source.media_type if part.source is not None else None
            formatted.append(OpenAITextPart(text=f"[Document attachment: {media_type or 'document'}]"))
    return formatted


def _source_url(source: MediaSource) -> str:
    if isinstance(source, Base64Source):
        return f"data:{source.media_type};base64,{source.data}"
    return source.url
