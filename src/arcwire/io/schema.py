"""Persisted row schemas for arcwire stores."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ..core.message import Message, Sender

JSONPrimitive = Union[str, int, float, bool, None]
JSONValue = Union[JSONPrimitive, Dict[str, "JSONValue"], List["JSONValue"]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredMessage(BaseModel):
    """One conversation turn as written to a message store."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    message_id: str = Field(default_factory=lambda: uuid4().hex, description="Unique identifier for the row.")
    session_id: str = Field(..., description="Chat session the message belongs to.")
    role: Sender = Field(..., description="Author of the message.")
    content: str = Field("", description="Plain text of the message.")
    metadata: Dict[str, JSONValue] = Field(
        default_factory=dict,
        description="Tool calls, tool results and content parts, when present.",
    )
    created_at: datetime = Field(default_factory=_utcnow, description="Timestamp in UTC.")

    @classmethod
    def from_message(cls, session_id: str, message: Message) -> "StoredMessage":
        record: dict[str, Any] = message.to_record()
        return cls(
            session_id=session_id,
            role=message.sender,
            content=record["content"],
            metadata=record.get("metadata", {}),
        )

    def to_message(self) -> Message:
        record: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.metadata:
            record["metadata"] = self.metadata
        return Message.from_record(record)


__all__ = ["JSONValue", "StoredMessage"]
