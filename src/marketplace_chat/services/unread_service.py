from __future__ import annotations

import logging
import uuid

from marketplace_chat.application.dto.principal import Principal
from marketplace_chat.application.exceptions import NotFoundError
from marketplace_chat.application.policies.permissions import (
    assert_admin,
    assert_conversation_access,
)
from marketplace_chat.application.uow import UnitOfWork
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.events.conversation_read import ConversationRead

logger = logging.getLogger(__name__)


async def on_message_appended(conversation_id: uuid.UUID, uow: UnitOfWork) -> None:
    """Bring both counters in line after an append.

    Counters are recomputed from read receipts rather than incremented, so an
    append interleaved with a mark-read cannot lose an update.
    """
    await uow.conversations_w.recompute_unread(conversation_id)


async def mark_read(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id, for_update=True)
    assert_conversation_access(principal, conversation)

    receipts = await uow.messages_w.mark_read(conversation_id, principal.participant_id)
    await uow.conversations_w.recompute_unread(conversation_id)
    if receipts:
        event = ConversationRead(
            conversation_id=conversation_id,
            reader_id=principal.participant_id,
            receipts=receipts,
        )
        await uow.outbox.add(event.event_type, event.to_payload())
    await uow.commit()

    logger.debug(
        "Participant %s read %d message(s) in %s",
        principal.participant_id, receipts, conversation_id,
    )
    return await uow.conversations.get_by_id(conversation_id)  # type: ignore[return-value]


async def reconcile(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    """Admin repair: rebuild both counters of a conversation from read receipts."""
    assert_admin(principal)
    conversation = await uow.conversations.get_by_id(conversation_id, for_update=True)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    before = (conversation.unread_count_buyer, conversation.unread_count_counterpart)

    await uow.conversations_w.recompute_unread(conversation_id)
    await uow.commit()
    repaired = await uow.conversations.get_by_id(conversation_id)
    if repaired is None:
        raise NotFoundError("Conversation not found")
    after = (repaired.unread_count_buyer, repaired.unread_count_counterpart)
    if after != before:
        logger.warning(
            "Repaired unread counters of %s: %s -> %s (by %s)",
            conversation_id, before, after, principal.participant_id,
        )
    return repaired


async def get_unread_total(principal: Principal, uow: UnitOfWork) -> int:
    return await uow.conversations.unread_total(principal.participant_id)
