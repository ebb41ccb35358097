from __future__ import annotations

from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        buyer_id=model.buyer_id,
        counterpart_id=model.counterpart_id,
        counterpart_role=model.counterpart_role,
        product_id=model.product_id,
        subject=model.subject,
        last_message=model.last_message,
        last_message_at=model.last_message_at,
        unread_count_buyer=model.unread_count_buyer,
        unread_count_counterpart=model.unread_count_counterpart,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def entity_to_values(entity: Conversation) -> dict:
    """Column values for a core INSERT."""
    return {
        "id": entity.id,
        "buyer_id": entity.buyer_id,
        "counterpart_id": entity.counterpart_id,
        "counterpart_role": entity.counterpart_role,
        "product_id": entity.product_id,
        "subject": entity.subject,
        "last_message": entity.last_message,
        "last_message_at": entity.last_message_at,
        "unread_count_buyer": entity.unread_count_buyer,
        "unread_count_counterpart": entity.unread_count_counterpart,
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
    }
