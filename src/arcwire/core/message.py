"""Provider-agnostic conversation schema shared across adapters."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
import json
import math
from typing import Any, Union


class Sender(str, Enum):
    """Who authored a canonical message."""

    USER = "user"
    AGENT = "agent"


class ToolResultStatus(str, Enum):
    """Outcome of executing a tool call."""

    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class UrlSource:
    """Media referenced by URL."""

    url: str
    media_type: str | None = None


@dataclass(frozen=True, slots=True)
class Base64Source:
    """Media embedded inline as base64."""

    media_type: str
    data: str


MediaSource = Union[UrlSource, Base64Source]


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class ImagePart:
    source: MediaSource | None = None


@dataclass(frozen=True, slots=True)
class VideoPart:
    source: MediaSource | None = None


@dataclass(frozen=True, slots=True)
class DocumentPart:
    source: MediaSource | None = None


ContentPart = Union[TextPart, ImagePart, VideoPart, DocumentPart]

_CONTENT_PART_TYPES = (TextPart, ImagePart, VideoPart, DocumentPart)
_PART_TAGS: dict[type, str] = {
    TextPart: "text",
    ImagePart: "image",
    VideoPart: "video",
    DocumentPart: "document",
}


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A model-issued request to invoke a named tool.

    ``input_args`` is whatever the provider produced: a JSON object for
    well-formed calls, or the raw argument string when it could not be parsed.
    ``id`` may be ``None`` for history imported from elsewhere; formatters
    assign one when serializing.
    """

    tool_name: str
    input_args: Any = None
    id: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.tool_name, str) or not self.tool_name:
            msg = "tool call name must be a non-empty string"
            raise ValueError(msg)
        if self.id is not None and (not isinstance(self.id, str) or not self.id):
            msg = "tool call id must be a non-empty string when provided"
            raise ValueError(msg)

        if self.input_args is not None:
            ensure_json_compatible(self.input_args, path="ToolCall.input_args")
            sanitized = json.loads(json.dumps(self.input_args, allow_nan=False))
            object.__setattr__(self, "input_args", sanitized)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "tool_name": self.tool_name, "input_args": self.input_args}


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Caller-supplied outcome of a tool call, correlated by ``call_id``."""

    call_id: str | None
    status: ToolResultStatus = ToolResultStatus.OK
    data: Any = None
    message: str | None = None
    tool_name: str | None = None

    def __post_init__(self) -> None:
        try:
            status = ToolResultStatus(self.status)
        except ValueError as exc:
            msg = f"unsupported tool result status {self.status!r}"
            raise ValueError(msg) from exc
        object.__setattr__(self, "status", status)

    @classmethod
    def ok(cls, call_id: str | None, data: Any, *, tool_name: str | None = None) -> ToolResult:
        return cls(call_id=call_id, status=ToolResultStatus.OK, data=data, tool_name=tool_name)

    @classmethod
    def error(
        cls,
        call_id: str | None,
        message: str,
        *,
        data: Any = None,
        tool_name: str | None = None,
    ) -> ToolResult:
        return cls(
            call_id=call_id,
            status=ToolResultStatus.ERROR,
            data=data,
            message=message,
            tool_name=tool_name,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "call_id": self.call_id,
            "result": {"status": self.status.value, "data": self.data},
        }
        if self.message is not None:
            payload["result"]["message"] = self.message
        if self.tool_name is not None:
            payload["tool_name"] = self.tool_name
        return payload


@dataclass(frozen=True, slots=True)
class Message:
    """A single canonical conversation turn.

    A message carries one primary payload: ``tool_calls`` (agent only),
    ``tool_results`` (user only), ``content`` parts, or plain ``text``. Text
    may accompany tool calls.
    """

    sender: Sender
    text: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_results: tuple[ToolResult, ...] = ()
    content: tuple[ContentPart, ...] = ()

    def __post_init__(self) -> None:
        try:
            sender = Sender(self.sender)
        except ValueError as exc:
            msg = f"unsupported sender {self.sender!r}"
            raise ValueError(msg) from exc
        object.__setattr__(self, "sender", sender)

        if self.text is not None and not isinstance(self.text, str):
            msg = "message text must be a string when provided"
            raise TypeError(msg)

        tool_calls = _normalize_items(self.tool_calls, (ToolCall,), "tool_calls")
        tool_results = _normalize_items(self.tool_results, (ToolResult,), "tool_results")
        content = _normalize_items(self.content, _CONTENT_PART_TYPES, "content")
        object.__setattr__(self, "tool_calls", tool_calls)
        object.__setattr__(self, "tool_results", tool_results)
        object.__setattr__(self, "content", content)

        if tool_calls and sender is not Sender.AGENT:
            msg = "only agent messages may carry tool calls"
            raise ValueError(msg)
        if tool_results and sender is not Sender.USER:
            msg = "only user messages may carry tool results"
            raise ValueError(msg)
        if sum(1 for payload in (tool_calls, tool_results, content) if payload) > 1:
            msg = "a message carries at most one of tool_calls, tool_results, or content"
            raise ValueError(msg)

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(sender=Sender.USER, text=text)

    @classmethod
    def agent(cls, text: str | None = None, tool_calls: Sequence[ToolCall] = ()) -> Message:
        return cls(sender=Sender.AGENT, text=text, tool_calls=tuple(tool_calls))

    @classmethod
    def results(cls, *tool_results: ToolResult) -> Message:
        return cls(sender=Sender.USER, tool_results=tool_results)

    def to_record(self) -> dict[str, Any]:
        """Return the JSON-compatible row shape used by message stores."""

        metadata: dict[str, Any] = {}
        if self.tool_calls:
            metadata["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.tool_results:
            metadata["tool_results"] = [result.to_dict() for result in self.tool_results]
        if self.content:
            metadata["content"] = [_part_to_dict(part) for part in self.content]

        record: dict[str, Any] = {"role": self.sender.value, "content": self.text or ""}
        if metadata:
            record["metadata"] = metadata
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Message:
        """Rebuild a message from :meth:`to_record` output."""

        metadata = record.get("metadata") or {}
        if not isinstance(metadata, Mapping):
            msg = "message metadata must be a mapping"
            raise ValueError(msg)

        text = record.get("content")
        tool_calls = tuple(
            ToolCall(
                tool_name=item["tool_name"],
                input_args=item.get("input_args"),
                id=item.get("id"),
            )
            for item in metadata.get("tool_calls") or ()
        )
        tool_results = tuple(_result_from_dict(item) for item in metadata.get("tool_results") or ())
        content = tuple(_part_from_dict(item) for item in metadata.get("content") or ())
        # Rows always carry a content string; it is empty for structured payloads.
        if not isinstance(text, str) or (not text and (tool_calls or tool_results or content)):
            text = None

        return cls(
            sender=Sender(record.get("role", Sender.USER.value)),
            text=text,
            tool_calls=tool_calls,
            tool_results=tool_results,
            content=content,
        )


def _normalize_items(value: Any, allowed: tuple[type, ...], field_name: str) -> tuple[Any, ...]:
    if value is None:
        return ()
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        msg = f"{field_name} must be a sequence"
        raise TypeError(msg)
    items = tuple(value)
    for index, item in enumerate(items):
        if not isinstance(item, allowed):
            msg = f"{field_name}[{index}] has unsupported type {type(item).__name__}"
            raise TypeError(msg)
    return items


def _result_from_dict(item: Mapping[str, Any]) -> ToolResult:
    result = item.get("result") or {}
    return ToolResult(
        call_id=item.get("call_id"),
        status=result.get("status", ToolResultStatus.OK.value),
        data=result.get("data"),
        message=result.get("message"),
        tool_name=item.get("tool_name"),
    )


def _source_to_dict(source: MediaSource) -> dict[str, Any]:
    if isinstance(source, UrlSource):
        payload: dict[str, Any] = {"type": "url", "url": source.url}
        if source.media_type is not None:
            payload["media_type"] = source.media_type
        return payload
    return {"type": "base64", "media_type": source.media_type, "data": source.data}


def _source_from_dict(payload: Mapping[str, Any] | None) -> MediaSource | None:
    if payload is None:
        return None
    if payload.get("type") == "url":
        return UrlSource(url=payload["url"], media_type=payload.get("media_type"))
    return Base64Source(media_type=payload["media_type"], data=payload["data"])


def _part_to_dict(part: ContentPart) -> dict[str, Any]:
    tag = _PART_TAGS[type(part)]
    if isinstance(part, TextPart):
        return {"type": tag, "text": part.text}
    payload: dict[str, Any] = {"type": tag}
    if part.source is not None:
        payload["source"] = _source_to_dict(part.source)
    return payload


def _part_from_dict(payload: Mapping[str, Any]) -> ContentPart:
    tag = payload.get("type")
    if tag == "text":
        return TextPart(text=str(payload.get("text", "")))
    source = _source_from_dict(payload.get("source"))
    if tag == "image":
        return ImagePart(source=source)
    if tag == "video":
        return VideoPart(source=source)
    if tag == "document":
        return DocumentPart(source=source)
    msg = f"unsupported content part type {tag!r}"
    raise ValueError(msg)


def ensure_json_compatible(value: Any, *, path: str) -> None:
    """Raise ``TypeError`` or ``ValueError`` unless ``value`` round-trips as strict JSON."""

    if isinstance(value, Mapping):
        for key, inner in value.items():
            if not isinstance(key, str):
                msg = f"{path} keys must be strings"
                raise TypeError(msg)
            ensure_json_compatible(inner, path=f"{path}.{key}")
        return

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        for index, item in enumerate(value):
            ensure_json_compatible(item, path=f"{path}[{index}]")
        return

    if isinstance(value, (bool, type(None), str)):
        return

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            msg = f"{path} contains non-finite float values"
            raise ValueError(msg)
        return

    msg = f"{path} contains unsupported value type {type(value).__name__}"
    raise TypeError(msg)


def is_json_compatible(value: Any) -> bool:
    try:
        ensure_json_compatible(value, path="value")
    except (TypeError, ValueError):
        return False
    return True
