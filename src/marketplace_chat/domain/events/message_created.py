from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MessageCreated:
    event_type: ClassVar[str] = "chat.message_created"

    message_id: UUID
    conversation_id: UUID
    sender_id: str
    sender_role: str
    recipient_id: str
    content: str
    created_at: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "message_id": str(self.message_id),
            "conversation_id": str(self.conversation_id),
            "sender_id": self.sender_id,
            "sender_role": self.sender_role,
            "recipient_id": self.recipient_id,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }
