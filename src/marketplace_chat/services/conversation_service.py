from __future__ import annotations

import logging
import uuid

from marketplace_chat.application.dto.conversation import ResolveConversationDTO
from marketplace_chat.application.dto.principal import Principal
from marketplace_chat.application.exceptions import (
    ConflictError,
    IdentityMissingError,
    ValidationError,
)
from marketplace_chat.application.policies.permissions import (
    assert_admin,
    assert_conversation_access,
)
from marketplace_chat.application.ports.clock import Clock, SystemClock
from marketplace_chat.application.uow import UnitOfWork
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.events.conversation_created import ConversationCreated
from marketplace_chat.domain.value_objects.enums import SenderRole
from marketplace_chat.services import message_service

logger = logging.getLogger(__name__)

_COUNTERPART_ROLES = (SenderRole.SUPPLIER, SenderRole.ADMIN)


def default_subject(product_id: str | None) -> str:
    return "Product inquiry" if product_id else "General inquiry"


async def resolve_conversation(
    buyer_id: str | None,
    counterpart_id: str,
    counterpart_role: SenderRole,
    product_id: str | None,
    subject: str | None,
    uow: UnitOfWork,
    *,
    clock: Clock | None = None,
) -> tuple[Conversation, bool]:
    """Find the conversation for (buyer, counterpart, product) or create it.

    Returns (conversation, created). Two concurrent callers converge on one
    record: the insert that loses the uniqueness race raises ConflictError and
    the winner's row is returned instead.
    """
    if not buyer_id:
        raise IdentityMissingError("Buyer identity is required")
    if not counterpart_id:
        raise ValidationError("Counterpart is required")
    if counterpart_role not in _COUNTERPART_ROLES:
        raise ValidationError(f"Counterpart role must be supplier or admin, got {counterpart_role}")
    if counterpart_id == buyer_id:
        raise ValidationError("Buyer and counterpart must differ")

    existing = await uow.conversations.find_by_participants(buyer_id, counterpart_id, product_id)
    if existing is not None:
        return existing, False

    now = (clock or SystemClock()).now()
    conversation = Conversation(
        id=uuid.uuid4(),
        buyer_id=buyer_id,
        counterpart_id=counterpart_id,
        counterpart_role=counterpart_role.value,
        product_id=product_id,
        subject=subject or default_subject(product_id),
        last_message=None,
        last_message_at=None,
        unread_count_buyer=0,
        unread_count_counterpart=0,
        created_at=now,
        updated_at=now,
    )
    try:
        conversation = await uow.conversations_w.create(conversation)
    except ConflictError:
        await uow.rollback()
        winner = await uow.conversations.find_by_participants(buyer_id, counterpart_id, product_id)
        if winner is None:
            raise
        logger.info(
            "Lost create race for buyer=%s counterpart=%s product=%s, using %s",
            buyer_id, counterpart_id, product_id, winner.id,
        )
        return winner, False

    event = ConversationCreated(
        conversation_id=conversation.id,
        buyer_id=buyer_id,
        counterpart_id=counterpart_id,
        counterpart_role=conversation.counterpart_role,
        product_id=product_id,
    )
    await uow.outbox.add(event.event_type, event.to_payload())
    await uow.commit()
    logger.info("Created conversation %s", conversation.id)
    return conversation, True


async def resolve_for_principal(
    principal: Principal,
    data: ResolveConversationDTO,
    support_counterpart_id: str,
    uow: UnitOfWork,
    *,
    clock: Clock | None = None,
) -> tuple[Conversation, bool]:
    """Map the caller onto the buyer or counterpart side, then resolve.

    When ``data.initial_message`` is set it is posted by the caller into the
    resolved thread, new or existing. ``data.client_msg_id`` makes a retried
    request post it once.
    """
    if data.initial_message is not None and not data.initial_message.strip():
        raise ValidationError("Initial message is empty")

    if principal.is_buyer:
        counterpart_id = data.counterpart_id
        counterpart_role = data.counterpart_role
        if not counterpart_id:
            counterpart_id = support_counterpart_id
            counterpart_role = SenderRole.ADMIN
        conversation, created = await resolve_conversation(
            principal.participant_id,
            counterpart_id,
            counterpart_role,
            data.product_id,
            data.subject,
            uow,
            clock=clock,
        )
    else:
        conversation, created = await resolve_conversation(
            data.buyer_id,
            principal.participant_id,
            principal.role,
            data.product_id,
            data.subject,
            uow,
            clock=clock,
        )

    if data.initial_message is None:
        return conversation, created

    await message_service.send_message(
        conversation.id, principal, data.initial_message, data.client_msg_id, uow, clock=clock,
    )
    refreshed = await uow.conversations.get_by_id(conversation.id)
    return refreshed or conversation, created


async def list_conversations(
    principal: Principal,
    limit: int,
    uow: UnitOfWork,
) -> list[Conversation]:
    return await uow.conversations.list_for_participant(
        principal.participant_id, limit=limit,
    )


async def list_all_conversations(
    principal: Principal,
    limit: int,
    uow: UnitOfWork,
    *,
    counterpart_role: SenderRole | None = None,
) -> list[Conversation]:
    """Admin view over every thread, most recent activity first."""
    assert_admin(principal)
    return await uow.conversations.list_all(
        counterpart_role=counterpart_role.value if counterpart_role else None,
        limit=limit,
    )


async def get_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id)
    return assert_conversation_access(principal, conversation)
