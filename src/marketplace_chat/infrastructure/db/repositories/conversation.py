from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import any_, case, func, not_, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql.selectable import ScalarSelect

from marketplace_chat.application.exceptions import ConflictError
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.infrastructure.db.mappers import conversation as mapper
from marketplace_chat.infrastructure.db.models.conversation import ConversationModel
from marketplace_chat.infrastructure.db.models.message import MessageModel


def _unread_subquery(reader_column: InstrumentedAttribute[str]) -> ScalarSelect[int]:
    """Count of messages in the row's conversation the reader has not seen."""
    return (
        select(func.count(MessageModel.id))
        .where(
            MessageModel.conversation_id == ConversationModel.id,
            MessageModel.sender_id != reader_column,
            not_(reader_column == any_(MessageModel.read_by)),
        )
        .correlate(ConversationModel)
        .scalar_subquery()
    )


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(
        self, conversation_id: UUID, *, for_update: bool = False,
    ) -> Conversation | None:
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def find_by_participants(
        self, buyer_id: str, counterpart_id: str, product_id: str | None,
    ) -> Conversation | None:
        stmt = select(ConversationModel).where(
            ConversationModel.buyer_id == buyer_id,
            ConversationModel.counterpart_id == counterpart_id,
        )
        if product_id is None:
            stmt = stmt.where(ConversationModel.product_id.is_(None))
        else:
            stmt = stmt.where(ConversationModel.product_id == product_id)
        stmt = stmt.execution_options(populate_existing=True).limit(1)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_participant(
        self, participant_id: str, *, limit: int = 100,
    ) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .where(
                or_(
                    ConversationModel.buyer_id == participant_id,
                    ConversationModel.counterpart_id == participant_id,
                )
            )
            .order_by(ConversationModel.last_message_at.desc().nullslast(), ConversationModel.id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_all(
        self, *, counterpart_role: str | None = None, limit: int = 100,
    ) -> list[Conversation]:
        stmt = select(ConversationModel)
        if counterpart_role is not None:
            stmt = stmt.where(ConversationModel.counterpart_role == counterpart_role)
        stmt = (
            stmt.order_by(ConversationModel.last_message_at.desc().nullslast(), ConversationModel.id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def unread_total(self, participant_id: str) -> int:
        own_counter = case(
            (ConversationModel.buyer_id == participant_id, ConversationModel.unread_count_buyer),
            else_=ConversationModel.unread_count_counterpart,
        )
        stmt = select(func.coalesce(func.sum(own_counter), 0)).where(
            or_(
                ConversationModel.buyer_id == participant_id,
                ConversationModel.counterpart_id == participant_id,
            )
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, conversation: Conversation) -> Conversation:
        # Both partial unique indexes are conflict targets, so no explicit target.
        stmt = (
            pg_insert(ConversationModel)
            .values(**mapper.entity_to_values(conversation))
            .on_conflict_do_nothing()
            .returning(ConversationModel)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            raise ConflictError("Conversation already exists")
        return mapper.model_to_entity(model)

    async def record_message(
        self, conversation_id: UUID, preview: str, ts: datetime,
    ) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(last_message=preview, last_message_at=ts)
        )
        await self._session.execute(stmt)

    async def recompute_unread(self, conversation_id: UUID) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(
                unread_count_buyer=_unread_subquery(ConversationModel.buyer_id),
                unread_count_counterpart=_unread_subquery(ConversationModel.counterpart_id),
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)
