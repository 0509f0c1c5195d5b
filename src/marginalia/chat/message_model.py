"""Message panel row model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


MessageSender = Literal["user", "ai"]
MessageType = Literal["sentence", "remark"]


@dataclass(slots=True)
class Message:
    """Represents a row inside the message list.

    ``id`` is the id of the sentence or remark the row mirrors, so a click on
    the row can emphasize the matching document element directly.
    """

    id: str
    text: str
    sender: MessageSender
    type: MessageType
    sentence_id: Optional[str] = None
    resolved: bool = False
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for diagnostics and the CLI."""

        return {
            "id": self.id,
            "text": self.text,
            "sender": self.sender,
            "type": self.type,
            "sentence_id": self.sentence_id,
            "resolved": self.resolved,
            "created_at": self.created_at.isoformat(),
        }


__all__ = ["Message", "MessageSender", "MessageType"]
