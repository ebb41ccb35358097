from __future__ import annotations

import uuid

from marketplace_chat.application.dto.principal import Principal
from marketplace_chat.application.exceptions import ValidationError
from marketplace_chat.application.policies.permissions import (
    assert_can_post,
    assert_conversation_access,
)
from marketplace_chat.application.ports.clock import Clock, SystemClock
from marketplace_chat.application.uow import UnitOfWork
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.entities.message import Message
from marketplace_chat.domain.events.message_created import MessageCreated
from marketplace_chat.services import unread_service

PREVIEW_LENGTH = 255
MAX_CONTENT_LENGTH = 5000


def _recipient_of(conversation: Conversation, sender_id: str) -> str:
    if sender_id == conversation.buyer_id:
        return conversation.counterpart_id
    return conversation.buyer_id


async def send_message(
    conversation_id: uuid.UUID,
    principal: Principal,
    content: str,
    client_msg_id: uuid.UUID | None,
    uow: UnitOfWork,
    *,
    clock: Clock | None = None,
) -> tuple[Message, bool]:
    """Append a message idempotently.

    Returns (message, created). If a message with the same client_msg_id
    already exists the existing one is returned with created=False.
    """
    content = content.strip()
    if not content:
        raise ValidationError("Message content is empty")
    if len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"Message content exceeds {MAX_CONTENT_LENGTH} characters")

    # The row lock serialises appends and read receipts per conversation.
    conversation = await uow.conversations.get_by_id(conversation_id, for_update=True)
    conversation = assert_can_post(principal, conversation)

    now = (clock or SystemClock()).now()
    if conversation.last_message_at is not None and now < conversation.last_message_at:
        now = conversation.last_message_at

    msg = Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        sender_id=principal.participant_id,
        sender_role=principal.role.value,
        content=content,
        client_msg_id=client_msg_id,
        created_at=now,
        read_by=frozenset(),
    )

    msg, created = await uow.messages_w.create_if_not_exists(msg)

    if created:
        await uow.conversations_w.record_message(
            conversation_id, msg.content[:PREVIEW_LENGTH], msg.created_at,
        )
        await unread_service.on_message_appended(conversation_id, uow)
        event = MessageCreated(
            message_id=msg.id,
            conversation_id=conversation_id,
            sender_id=msg.sender_id,
            sender_role=msg.sender_role,
            recipient_id=_recipient_of(conversation, msg.sender_id),
            content=msg.content,
            created_at=msg.created_at,
        )
        await uow.outbox.add(event.event_type, event.to_payload())
        await uow.commit()
    else:
        await uow.rollback()

    return msg, created


async def list_messages(
    conversation_id: uuid.UUID,
    principal: Principal,
    limit: int,
    uow: UnitOfWork,
) -> list[Message]:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)
    return await uow.messages.list_messages(conversation_id, limit=limit)
