"""Seed development data: a buyer/supplier thread with a few messages."""
from __future__ import annotations

import asyncio
import logging
import uuid

from marketplace_chat.application.dto.principal import Principal
from marketplace_chat.domain.value_objects.enums import SenderRole
from marketplace_chat.infrastructure.db.session import AsyncSessionLocal
from marketplace_chat.infrastructure.db.uow import SqlAlchemyUoW
from marketplace_chat.logging_config import configure_logging
from marketplace_chat.services import conversation_service, message_service

logger = logging.getLogger(__name__)

BUYER = Principal(participant_id="buyer-42", role=SenderRole.BUYER)
SUPPLIER = Principal(participant_id="supplier-7", role=SenderRole.SUPPLIER)


async def seed() -> None:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        conv, created = await conversation_service.resolve_conversation(
            BUYER.participant_id,
            SUPPLIER.participant_id,
            SenderRole.SUPPLIER,
            "sku-1001",
            None,
            uow,
        )

        messages_data = [
            (BUYER, "Hi, is the 20 kg pack available for wholesale?"),
            (SUPPLIER, "Yes, minimum order is 50 units."),
            (BUYER, "What is the lead time to Rotterdam?"),
            (SUPPLIER, "About two weeks from confirmation."),
        ]
        for principal, content in messages_data:
            await message_service.send_message(
                conv.id, principal, content, uuid.uuid4(), uow,
            )

        logger.info(
            "Seeded conversation %s (%s) with %d messages",
            conv.id, "new" if created else "existing", len(messages_data),
        )


def main() -> None:
    configure_logging()
    asyncio.run(seed())


if __name__ == "__main__":
    main()
