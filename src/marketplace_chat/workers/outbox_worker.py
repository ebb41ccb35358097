"""Outbox worker: polls pending outbox records, publishes via Redis Pub/Sub."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis

from marketplace_chat.application.policies.retry import backoff_seconds
from marketplace_chat.application.ports.bus import EventPublisher
from marketplace_chat.application.uow import UnitOfWork
from marketplace_chat.config import settings
from marketplace_chat.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from marketplace_chat.infrastructure.db.session import AsyncSessionLocal
from marketplace_chat.infrastructure.db.uow import SqlAlchemyUoW
from marketplace_chat.logging_config import configure_logging

logger = logging.getLogger(__name__)


def _next_retry_at(attempts: int) -> datetime:
    delay = backoff_seconds(
        attempts,
        base=settings.OUTBOX_BASE_DELAY_SECONDS,
        cap=settings.OUTBOX_MAX_DELAY_SECONDS,
    )
    return datetime.now(timezone.utc) + timedelta(seconds=delay)


async def run_outbox_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    publisher = RedisPubSubPublisher(redis)

    logger.info(
        "Outbox worker started (poll=%.1fs, batch=%d, max_attempts=%d)",
        settings.OUTBOX_POLL_INTERVAL,
        settings.OUTBOX_BATCH_SIZE,
        settings.OUTBOX_MAX_ATTEMPTS,
    )

    try:
        while True:
            try:
                async with AsyncSessionLocal() as session:
                    await process_batch(SqlAlchemyUoW(session), publisher)
            except Exception:
                logger.exception("Outbox worker loop error")
            await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)
    finally:
        await redis.aclose()


async def process_batch(
    uow: UnitOfWork,
    publisher: EventPublisher,
    *,
    channel: str | None = None,
    batch_size: int | None = None,
    max_attempts: int | None = None,
) -> int:
    """Publish one batch. Returns the number of records sent."""
    channel = channel or settings.REDIS_EVENTS_CHANNEL
    max_attempts = max_attempts or settings.OUTBOX_MAX_ATTEMPTS
    batch = await uow.outbox.fetch_pending(batch_size or settings.OUTBOX_BATCH_SIZE)
    if not batch:
        return 0

    sent_ids: list[int] = []
    for record in batch:
        try:
            await publisher.publish(channel, {"event_type": record.event_type, **record.payload})
            sent_ids.append(record.id)
        except Exception:
            logger.exception("Failed to publish outbox record %d", record.id)
            if record.attempts + 1 >= max_attempts:
                logger.warning("Outbox record %d exceeded max attempts, marking dead", record.id)
                await uow.outbox.mark_dead(record.id)
            else:
                await uow.outbox.mark_failed(record.id, _next_retry_at(record.attempts))

    if sent_ids:
        await uow.outbox.mark_sent(sent_ids)

    await uow.commit()
    if sent_ids:
        logger.info("Published %d outbox records", len(sent_ids))
    return len(sent_ids)


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(run_outbox_worker())


if __name__ == "__main__":
    main()
