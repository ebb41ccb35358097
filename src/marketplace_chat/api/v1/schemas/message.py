from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from marketplace_chat.domain.entities.message import Message


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    client_msg_id: UUID | None = None


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: str
    sender_role: str
    content: str
    client_msg_id: UUID | None
    created_at: datetime
    read_by: list[str] = []

    model_config = {"from_attributes": True}

    @field_validator("read_by", mode="before")
    @classmethod
    def _sorted_read_by(cls, value: object) -> object:
        if isinstance(value, (set, frozenset)):
            return sorted(value)
        return value

    def to_entity(self) -> Message:
        data = self.model_dump()
        data["read_by"] = frozenset(self.read_by)
        return Message(**data)
