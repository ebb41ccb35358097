from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    conversation_id: UUID
    sender_id: str
    sender_role: str
    content: str
    client_msg_id: UUID | None
    created_at: datetime
    read_by: frozenset[str] = field(default_factory=frozenset)

    @property
    def order_key(self) -> tuple[datetime, UUID]:
        """Total order of messages inside one conversation."""
        return self.created_at, self.id

    def is_read_by(self, participant_id: str) -> bool:
        return participant_id in self.read_by
