"""Import all models so the metadata is complete before create_all."""
from marketplace_chat.infrastructure.db.models.conversation import ConversationModel
from marketplace_chat.infrastructure.db.models.message import MessageModel
from marketplace_chat.infrastructure.db.models.outbox import OutboxMessageModel

__all__ = [
    "ConversationModel",
    "MessageModel",
    "OutboxMessageModel",
]
