"""Typed wire shapes for the chat-completions and Anthropic messages protocols.

Request shapes are tagged unions (discriminated on ``role`` or ``type``) built
by the formatters and serialized with :meth:`to_wire`. Response and stream
shapes are lenient: unknown fields are ignored, list items that fail
validation are dropped and a malformed nested object falls back to its
default. A stream chunk that fails validation as a whole is skipped by the
caller.
"""

from __future__ import annotations

from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, ValidationError


class _RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    _omit_if_none: ClassVar[frozenset[str]] = frozenset()

    def to_wire(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json")
        for name in self._omit_if_none:
            if payload.get(name) is None:
                payload.pop(name, None)
        return payload


class _ResponseModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _valid_items(item_type: type[BaseModel]) -> BeforeValidator:
    """Keep only the list items that validate as ``item_type``."""

    adapter = TypeAdapter(item_type)

    def keep_valid(value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        kept: list[Any] = []
        for item in value:
            try:
                kept.append(adapter.validate_python(item))
            except ValidationError:
                continue
        return kept

    return BeforeValidator(keep_valid)


def _or_fallback(model: type[BaseModel], *, default: bool) -> BeforeValidator:
    """Replace an invalid nested object with ``model()`` or ``None``."""

    def coerce(value: Any) -> Any:
        try:
            return model.model_validate(value)
        except ValidationError:
            return model() if default else None

    return BeforeValidator(coerce)


# -- chat-completions requests ----------------------------------------------


class OpenAITextPart(_RequestModel):
    type: Literal["text"] = "text"
    text: str


class OpenAIImageUrl(_RequestModel):
    url: str


class OpenAIImagePart(_RequestModel):
    type: Literal["image_url"] = "image_url"
    image_url: OpenAIImageUrl


OpenAIContentPart = Annotated[Union[OpenAITextPart, OpenAIImagePart], Field(discriminator="type")]


class OpenAIFunctionCall(_RequestModel):
    name: str
    arguments: str


class OpenAIToolCallWire(_RequestModel):
    id: str
    type: Literal["function"] = "function"
    function: OpenAIFunctionCall


class OpenAISystemMessage(_RequestModel):
    role: Literal["system"] = "system"
    content: str


class OpenAIUserMessage(_RequestModel):
    role: Literal["user"] = "user"
    content: Union[str, list[OpenAIContentPart]]


class OpenAIAssistantMessage(_RequestModel):
    _omit_if_none: ClassVar[frozenset[str]] = frozenset({"tool_calls"})

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: list[OpenAIToolCallWire] | None = None


class OpenAIToolMessage(_RequestModel):
    role: Literal["tool"] = "tool"
    tool_call_id: str
    content: str


OpenAIMessage = Annotated[
    Union[OpenAISystemMessage, OpenAIUserMessage, OpenAIAssistantMessage, OpenAIToolMessage],
    Field(discriminator="role"),
]


# -- chat-completions responses ---------------------------------------------


class OpenAIUsage(_ResponseModel):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class OpenAIResponseFunction(_ResponseModel):
    name: str = ""
    arguments: Union[str, dict[str, Any], None] = None


class OpenAIResponseToolCall(_ResponseModel):
    id: str | None = None
    type: str = "function"
    function: Annotated[OpenAIResponseFunction, _or_fallback(OpenAIResponseFunction, default=True)] = Field(
        default_factory=OpenAIResponseFunction
    )


class OpenAIResponseMessage(_ResponseModel):
    content: str | None = None
    tool_calls: Annotated[list[OpenAIResponseToolCall], _valid_items(OpenAIResponseToolCall)] = Field(
        default_factory=list
    )


class OpenAIResponseChoice(_ResponseModel):
    message: Annotated[OpenAIResponseMessage, _or_fallback(OpenAIResponseMessage, default=True)] = Field(
        default_factory=OpenAIResponseMessage
    )
    finish_reason: str | None = None


class OpenAIChatResponse(_ResponseModel):
    choices: Annotated[list[OpenAIResponseChoice], _valid_items(OpenAIResponseChoice)] = Field(default_factory=list)
    usage: Annotated[OpenAIUsage | None, _or_fallback(OpenAIUsage, default=False)] = None


class OpenAIFunctionDelta(_ResponseModel):
    name: str | None = None
    arguments: str | None = None


class OpenAIToolCallDelta(_ResponseModel):
    index: int = 0
    id: str | None = None
    function: OpenAIFunctionDelta | None = None


class OpenAIDelta(_ResponseModel):
    content: str | None = None
    tool_calls: list[OpenAIToolCallDelta] | None = None


class OpenAIStreamChoice(_ResponseModel):
    delta: OpenAIDelta | None = None
    finish_reason: str | None = None


class OpenAIStreamChunk(_ResponseModel):
    choices: list[OpenAIStreamChoice] = Field(default_factory=list)
    usage: OpenAIUsage | None = None


# -- Anthropic requests ------------------------------------------------------


class AnthropicTextBlock(_RequestModel):
    type: Literal["text"] = "text"
    text: str


class AnthropicToolUseBlock(_RequestModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


class AnthropicToolResultBlock(_RequestModel):
    _omit_if_none: ClassVar[frozenset[str]] = frozenset({"is_error"})

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool | None = None


class AnthropicUrlSource(_RequestModel):
    type: Literal["url"] = "url"
    url: str


class AnthropicBase64Source(_RequestModel):
    type: Literal["base64"] = "base64"
    media_type: str
    data: str


AnthropicSource = Annotated[
    Union[AnthropicUrlSource, AnthropicBase64Source],
    Field(discriminator="type"),
]


class AnthropicImageBlock(_RequestModel):
    type: Literal["image"] = "image"
    source: AnthropicSource


class AnthropicDocumentBlock(_RequestModel):
    type: Literal["document"] = "document"
    source: AnthropicSource


AnthropicContentBlock = Annotated[
    Union[
        AnthropicTextBlock,
        AnthropicToolUseBlock,
        AnthropicToolResultBlock,
        AnthropicImageBlock,
        AnthropicDocumentBlock,
    ],
    Field(discriminator="type"),
]


class AnthropicMessage(_RequestModel):
    role: Literal["user", "assistant"]
    content: Union[str, list[AnthropicContentBlock]]

    def to_wire(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [block.to_wire() for block in self.content]}


# -- Anthropic responses -----------------------------------------------------


class AnthropicUsage(_ResponseModel):
    input_tokens: int | None = None
    output_tokens: int | None = None


class AnthropicResponseBlock(_ResponseModel):
    type: str
    text: str | None = None
    id: str | None = None
    name: str | None = None
    input: Any = None


class AnthropicMessageResponse(_ResponseModel):
    content: Annotated[list[AnthropicResponseBlock], _valid_items(AnthropicResponseBlock)] = Field(default_factory=list)
    usage: Annotated[AnthropicUsage | None, _or_fallback(AnthropicUsage, default=False)] = None
    stop_reason: str | None = None


class AnthropicMessageInfo(_ResponseModel):
    usage: AnthropicUsage | None = None


class AnthropicMessageStart(_ResponseModel):
    type: Literal["message_start"]
    message: AnthropicMessageInfo = Field(default_factory=AnthropicMessageInfo)


class AnthropicBlockInfo(_ResponseModel):
    type: str
    id: str | None = None
    name: str | None = None
    text: str | None = None


class AnthropicContentBlockStart(_ResponseModel):
    type: Literal["content_block_start"]
    index: int = 0
    content_block: AnthropicBlockInfo


class AnthropicBlockDelta(_ResponseModel):
    type: str
    text: str | None = None
    partial_json: str | None = None


class AnthropicContentBlockDelta(_ResponseModel):
    type: Literal["content_block_delta"]
    index: int = 0
    delta: AnthropicBlockDelta


class AnthropicContentBlockStop(_ResponseModel):
    type: Literal["content_block_stop"]
    index: int = 0


class AnthropicMessageDelta(_ResponseModel):
    type: Literal["message_delta"]
    usage: AnthropicUsage | None = None


AnthropicStreamEvent = Annotated[
    Union[
        AnthropicMessageStart,
        AnthropicContentBlockStart,
        AnthropicContentBlockDelta,
        AnthropicContentBlockStop,
        AnthropicMessageDelta,
    ],
    Field(discriminator="type"),
]

ANTHROPIC_STREAM_EVENTS: TypeAdapter[Any] = TypeAdapter(AnthropicStreamEvent)
ANTHROPIC_STREAM_EVENT_TYPES = frozenset(
    {
        "message_start",
        "content_block_start",
        "content_block_delta",
        "content_block_stop",
        "message_delta",
    }
)
