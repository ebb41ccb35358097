from __future__ import annotations

from uuid import UUID

from sqlalchemy import String, func, literal, not_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_chat.domain.entities.message import Message
from marketplace_chat.infrastructure.db.mappers import message as mapper
from marketplace_chat.infrastructure.db.models.message import MessageModel


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        limit: int = 200,
    ) -> list[Message]:
        # Newest ``limit`` rows, then flipped back to chronological order.
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        rows = list(result.scalars().all())
        rows.reverse()
        return [mapper.model_to_entity(m) for m in rows]


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .on_conflict_do_nothing(constraint="uq_message_idempotency")
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        # Only a repeated client_msg_id can conflict; nulls never collide.
        assert message.client_msg_id is not None
        existing = await self.get_by_client_msg_id(
            message.conversation_id,
            message.sender_id,
            message.client_msg_id,
        )
        assert existing is not None
        return existing, False

    async def get_by_client_msg_id(
        self,
        conversation_id: UUID,
        sender_id: str,
        client_msg_id: UUID,
    ) -> Message | None:
        stmt = select(MessageModel).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.sender_id == sender_id,
            MessageModel.client_msg_id == client_msg_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> int:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                MessageModel.sender_id != reader_id,
                not_(MessageModel.read_by.any(reader_id)),
            )
            .values(read_by=func.array_append(MessageModel.read_by, literal(reader_id, String(64))))
            .returning(MessageModel.id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return len(result.scalars().all())
