"""Optimistic send slot: at most one per conversation, owned by the sender."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Sending:
    conversation_id: UUID
    sender_id: str
    content: str
    client_msg_id: UUID
    created_at: datetime
    # Messages already visible when the send started can never confirm it.
    known_ids: frozenset[UUID] = frozenset()

    def fail(self, reason: str) -> Failed:
        return Failed(
            conversation_id=self.conversation_id,
            sender_id=self.sender_id,
            content=self.content,
            client_msg_id=self.client_msg_id,
            created_at=self.created_at,
            known_ids=self.known_ids,
            reason=reason,
        )


@dataclass(frozen=True, slots=True)
class Failed:
    conversation_id: UUID
    sender_id: str
    content: str
    client_msg_id: UUID
    created_at: datetime
    known_ids: frozenset[UUID] = frozenset()
    reason: str = ""


PendingSend = Sending | Failed
