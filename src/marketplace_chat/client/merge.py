"""Pure merge functions that fold server fetches into local view state.

Every function here is deterministic and idempotent: applying the same
fetch twice yields the same result, and a fetch never removes a message
that was already confirmed.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from marketplace_chat.client.pending import Failed, PendingSend
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.entities.message import Message
from marketplace_chat.domain.value_objects.enums import DeliveryStatus

DEFAULT_MATCH_WINDOW_SECONDS = 5.0

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class RenderedMessage:
    """One row of the rendered thread. Pending rows use client_msg_id as id."""

    id: UUID
    conversation_id: UUID
    sender_id: str
    sender_role: str | None
    content: str
    created_at: datetime
    status: DeliveryStatus
    read_by: frozenset[str] = field(default_factory=frozenset)
    client_msg_id: UUID | None = None

    @classmethod
    def confirmed(cls, message: Message) -> RenderedMessage:
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            sender_role=message.sender_role,
            content=message.content,
            created_at=message.created_at,
            status=DeliveryStatus.SENT,
            read_by=message.read_by,
            client_msg_id=message.client_msg_id,
        )

    @classmethod
    def pending(cls, item: PendingSend) -> RenderedMessage:
        return cls(
            id=item.client_msg_id,
            conversation_id=item.conversation_id,
            sender_id=item.sender_id,
            sender_role=None,
            content=item.content,
            created_at=item.created_at,
            status=DeliveryStatus.FAILED if isinstance(item, Failed) else DeliveryStatus.SENDING,
            client_msg_id=item.client_msg_id,
        )


def merge_confirmed(current: Iterable[Message], fetched: Iterable[Message]) -> list[Message]:
    """Union by id, fetched copies win, sorted by (created_at, id)."""
    by_id = {m.id: m for m in current}
    for message in fetched:
        by_id[message.id] = message
    return sorted(by_id.values(), key=lambda m: m.order_key)


def matches_pending(
    message: Message,
    item: PendingSend,
    *,
    window_seconds: float = DEFAULT_MATCH_WINDOW_SECONDS,
) -> bool:
    if message.conversation_id != item.conversation_id or message.sender_id != item.sender_id:
        return False
    if message.client_msg_id is not None:
        return message.client_msg_id == item.client_msg_id
    if message.id in item.known_ids or message.content != item.content:
        return False
    skew = abs((message.created_at - item.created_at).total_seconds())
    return skew <= window_seconds


def find_confirmation(
    confirmed: Iterable[Message],
    item: PendingSend | None,
    *,
    window_seconds: float = DEFAULT_MATCH_WINDOW_SECONDS,
) -> Message | None:
    """The confirmed message that supersedes ``item``, if any.

    An exact client id match wins over a heuristic one; among heuristic
    candidates the one closest in time is taken.
    """
    if item is None:
        return None
    best: Message | None = None
    best_skew: float | None = None
    for message in confirmed:
        if not matches_pending(message, item, window_seconds=window_seconds):
            continue
        if message.client_msg_id == item.client_msg_id:
            return message
        skew = abs((message.created_at - item.created_at).total_seconds())
        if best_skew is None or skew < best_skew:
            best, best_skew = message, skew
    return best


def merge(
    confirmed: Sequence[Message],
    pending: PendingSend | None,
    *,
    window_seconds: float = DEFAULT_MATCH_WINDOW_SECONDS,
) -> list[RenderedMessage]:
    """Confirmed messages in order, then the pending row unless it is confirmed."""
    ordered = sorted(confirmed, key=lambda m: m.order_key)
    rendered = [RenderedMessage.confirmed(m) for m in ordered]
    if pending is not None and find_confirmation(
        ordered, pending, window_seconds=window_seconds,
    ) is None:
        rendered.append(RenderedMessage.pending(pending))
    return rendered


def conversation_order_key(conversation: Conversation) -> tuple[bool, datetime]:
    return (
        conversation.last_message_at is not None,
        conversation.last_message_at or _EPOCH,
    )


def order_conversations(conversations: Iterable[Conversation]) -> list[Conversation]:
    """Most recent activity first, never-messaged last, ties by id."""
    by_id = sorted(conversations, key=lambda c: c.id)
    return sorted(by_id, key=conversation_order_key, reverse=True)


def merge_conversations(
    local: Iterable[Conversation],
    fetched: Iterable[Conversation],
) -> list[Conversation]:
    """Keyed by id; a local record survives only if strictly newer than the fetched one."""
    by_id = {c.id: c for c in local}
    for conversation in fetched:
        existing = by_id.get(conversation.id)
        if existing is None or conversation.updated_at >= existing.updated_at:
            by_id[conversation.id] = conversation
    return order_conversations(by_id.values())
