from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from marketplace_chat.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(
        self, conversation_id: UUID, *, for_update: bool = False,
    ) -> Conversation | None:
        """Load a conversation. ``for_update`` locks the row until commit."""
        ...

    async def find_by_participants(
        self, buyer_id: str, counterpart_id: str, product_id: str | None,
    ) -> Conversation | None:
        """Exact match on the triple; a null product matches only null."""
        ...

    async def list_for_participant(
        self, participant_id: str, *, limit: int = 100,
    ) -> list[Conversation]: ...

    async def list_all(
        self, *, counterpart_role: str | None = None, limit: int = 100,
    ) -> list[Conversation]:
        """Every conversation, most recent activity first. Admin listing."""
        ...

    async def unread_total(self, participant_id: str) -> int: ...


class ConversationWriter(Protocol):
    async def create(self, conversation: Conversation) -> Conversation:
        """Insert. Raise ConflictError if the participant triple already exists."""
        ...

    async def record_message(
        self, conversation_id: UUID, preview: str, ts: datetime,
    ) -> None: ...

    async def recompute_unread(self, conversation_id: UUID) -> None:
        """Derive both unread counters from message read receipts."""
        ...
