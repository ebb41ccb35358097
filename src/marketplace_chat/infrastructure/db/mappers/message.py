from __future__ import annotations

from marketplace_chat.domain.entities.message import Message
from marketplace_chat.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        sender_id=model.sender_id,
        sender_role=model.sender_role,
        content=model.content,
        client_msg_id=model.client_msg_id,
        created_at=model.created_at,
        read_by=frozenset(model.read_by or ()),
    )


def entity_to_values(entity: Message) -> dict:
    return {
        "id": entity.id,
        "conversation_id": entity.conversation_id,
        "sender_id": entity.sender_id,
        "sender_role": entity.sender_role,
        "content": entity.content,
        "client_msg_id": entity.client_msg_id,
        "created_at": entity.created_at,
        "read_by": sorted(entity.read_by),
    }
