from __future__ import annotations

from marketplace_chat.application.dto.principal import Principal
from marketplace_chat.application.exceptions import ForbiddenError, NotFoundError
from marketplace_chat.domain.entities.conversation import Conversation


def assert_conversation_access(
    principal: Principal,
    conversation: Conversation | None,
) -> Conversation:
    """Raise if conversation doesn't exist or principal has no access."""
    if conversation is None:
        raise NotFoundError("Conversation not found")

    # Admins can read every conversation
    if principal.is_admin:
        return conversation

    if not conversation.is_participant(principal.participant_id):
        raise ForbiddenError("Not a participant of this conversation")

    return conversation


def assert_can_post(
    principal: Principal,
    conversation: Conversation | None,
) -> Conversation:
    """Only the buyer and the counterpart write into a thread.

    Unread counters track exactly two sides, so a message from anyone else,
    admins included, would count as unread for both.
    """
    if conversation is None:
        raise NotFoundError("Conversation not found")
    if not conversation.is_participant(principal.participant_id):
        raise ForbiddenError("Only conversation participants can send messages")
    return conversation


def assert_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise ForbiddenError("Admin access required")
