from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import ColumnElement, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_chat.application.repositories.outbox import OutboxRecord
from marketplace_chat.infrastructure.db.models.outbox import OutboxMessageModel

RETRYABLE_STATUSES = ("pending", "failed")


def _due(now: datetime) -> ColumnElement[bool]:
    """Rows waiting for delivery whose backoff window has elapsed."""
    return (
        OutboxMessageModel.status.in_(RETRYABLE_STATUSES)
        & or_(OutboxMessageModel.next_retry_at.is_(None), OutboxMessageModel.next_retry_at <= now)
    )


def _to_record(model: OutboxMessageModel) -> OutboxRecord:
    return OutboxRecord(
        id=model.id,
        event_type=model.event_type,
        payload=model.payload,
        attempts=model.attempts,
    )


class OutboxWriterRepo:
    """Transactional outbox: events are written with the change and claimed by the worker."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        self._session.add(OutboxMessageModel(event_type=event_type, payload=payload))
        await self._session.flush()

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        # SKIP LOCKED lets several workers drain the table without double delivery.
        claimed = (
            await self._session.scalars(
                select(OutboxMessageModel)
                .where(_due(datetime.now(timezone.utc)))
                .order_by(OutboxMessageModel.created_at, OutboxMessageModel.id)
                .limit(batch_size)
                .with_for_update(skip_locked=True)
            )
        ).all()
        if not claimed:
            return []

        await self._set_status([m.id for m in claimed], "processing")
        await self._session.flush()
        return [_to_record(m) for m in claimed]

    async def mark_sent(self, ids: list[int]) -> None:
        if ids:
            await self._set_status(ids, "sent")

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        await self._set_status(
            [record_id],
            "failed",
            attempts=OutboxMessageModel.attempts + 1,
            next_retry_at=next_retry_at,
        )

    async def mark_dead(self, record_id: int) -> None:
        await self._set_status([record_id], "dead", attempts=OutboxMessageModel.attempts + 1)

    async def _set_status(self, ids: list[int], status: str, **values: Any) -> None:
        await self._session.execute(
            update(OutboxMessageModel)
            .where(OutboxMessageModel.id.in_(ids))
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
