from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ConversationCreated:
    event_type: ClassVar[str] = "chat.conversation_created"

    conversation_id: UUID
    buyer_id: str
    counterpart_id: str
    counterpart_role: str
    product_id: str | None

    def to_payload(self) -> dict[str, Any]:
        return {
            "conversation_id": str(self.conversation_id),
            "buyer_id": self.buyer_id,
            "counterpart_id": self.counterpart_id,
            "counterpart_role": self.counterpart_role,
            "product_id": self.product_id,
        }
