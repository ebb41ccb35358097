from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.value_objects.enums import SenderRole


class ResolveConversationRequest(BaseModel):
    # Buyers name the counterpart; suppliers and admins name the buyer.
    counterpart_id: str | None = Field(None, max_length=64)
    counterpart_role: SenderRole = SenderRole.SUPPLIER
    buyer_id: str | None = Field(None, max_length=64)
    product_id: str | None = Field(None, max_length=64)
    subject: str | None = Field(None, max_length=255)
    initial_message: str | None = Field(None, min_length=1, max_length=5000)
    client_msg_id: UUID | None = None


class ConversationResponse(BaseModel):
    id: UUID
    buyer_id: str
    counterpart_id: str
    counterpart_role: str
    product_id: str | None
    subject: str
    last_message: str | None
    last_message_at: datetime | None
    unread_count_buyer: int
    unread_count_counterpart: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    def to_entity(self) -> Conversation:
        return Conversation(**self.model_dump())


class UnreadTotalResponse(BaseModel):
    total: int
