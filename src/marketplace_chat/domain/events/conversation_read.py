from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ConversationRead:
    event_type: ClassVar[str] = "chat.conversation_read"

    conversation_id: UUID
    reader_id: str
    receipts: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "conversation_id": str(self.conversation_id),
            "reader_id": self.reader_id,
            "receipts": self.receipts,
        }
