from __future__ import annotations

from typing import Protocol
from uuid import UUID

from marketplace_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        limit: int = 200,
    ) -> list[Message]:
        """Most recent ``limit`` messages, in (created_at, id) ascending order."""
        ...


class MessageWriter(Protocol):
    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message. Return (message, created). If conflict on client_msg_id → return existing."""
        ...

    async def get_by_client_msg_id(
        self,
        conversation_id: UUID,
        sender_id: str,
        client_msg_id: UUID,
    ) -> Message | None: ...

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> int:
        """Add ``reader_id`` to read_by of other-party messages. Return rows touched."""
        ...
