"""Unread accounting rules.

Counters are always derived from ``Message.read_by``; the SQL repositories
implement the same rules as single statements.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.entities.message import Message


def count_unread(messages: Iterable[Message], reader_id: str) -> int:
    """Messages from the other side that ``reader_id`` has not acknowledged."""
    return sum(
        1 for m in messages
        if m.sender_id != reader_id and not m.is_read_by(reader_id)
    )


def unread_receipts(messages: Iterable[Message], reader_id: str) -> list[Message]:
    """Return copies of the messages that gain ``reader_id`` in ``read_by``."""
    return [
        replace(m, read_by=m.read_by | {reader_id})
        for m in messages
        if m.sender_id != reader_id and not m.is_read_by(reader_id)
    ]


def recount(conversation: Conversation, messages: Iterable[Message]) -> Conversation:
    msgs = [m for m in messages if m.conversation_id == conversation.id]
    return replace(
        conversation,
        unread_count_buyer=count_unread(msgs, conversation.buyer_id),
        unread_count_counterpart=count_unread(msgs, conversation.counterpart_id),
    )
