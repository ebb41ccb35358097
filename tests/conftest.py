"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import pytest

from marketplace_chat.application.dto.principal import Principal
from marketplace_chat.application.exceptions import (
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from marketplace_chat.application.repositories.outbox import OutboxRecord
from marketplace_chat.client.merge import order_conversations
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.entities.message import Message
from marketplace_chat.domain.services.unread import recount, unread_receipts
from marketplace_chat.domain.value_objects.enums import SenderRole

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

BUYER_ID = "buyer-1"
SUPPLIER_ID = "supplier-1"
ADMIN_ID = "admin"


@pytest.fixture
def buyer_principal() -> Principal:
    return Principal(participant_id=BUYER_ID, role=SenderRole.BUYER)


@pytest.fixture
def supplier_principal() -> Principal:
    return Principal(participant_id=SUPPLIER_ID, role=SenderRole.SUPPLIER)


@pytest.fixture
def admin_principal() -> Principal:
    return Principal(participant_id=ADMIN_ID, role=SenderRole.ADMIN, roles=["admin"])


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_conversation(
    *,
    conversation_id: UUID | None = None,
    buyer_id: str = BUYER_ID,
    counterpart_id: str = SUPPLIER_ID,
    counterpart_role: str = SenderRole.SUPPLIER,
    product_id: str | None = None,
    last_message_at: datetime | None = None,
    updated_at: datetime | None = None,
) -> Conversation:
    return Conversation(
        id=conversation_id or uuid.uuid4(),
        buyer_id=buyer_id,
        counterpart_id=counterpart_id,
        counterpart_role=counterpart_role,
        product_id=product_id,
        subject="General inquiry",
        last_message=None,
        last_message_at=last_message_at,
        unread_count_buyer=0,
        unread_count_counterpart=0,
        created_at=T0,
        updated_at=updated_at or T0,
    )


def make_message(
    *,
    conversation_id: UUID,
    sender_id: str = BUYER_ID,
    sender_role: str = SenderRole.BUYER,
    content: str = "hello",
    created_at: datetime = T0,
    client_msg_id: UUID | None = None,
    read_by: frozenset[str] = frozenset(),
    message_id: UUID | None = None,
) -> Message:
    return Message(
        id=message_id or uuid.uuid4(),
        conversation_id=conversation_id,
        sender_id=sender_id,
        sender_role=sender_role,
        content=content,
        client_msg_id=client_msg_id,
        created_at=created_at,
        read_by=read_by,
    )


# -- repositories / unit of work ------------------------------------------


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    def in_conversation(self, conversation_id: UUID) -> list[Message]:
        return sorted(
            (m for m in self._messages if m.conversation_id == conversation_id),
            key=lambda m: m.order_key,
        )

    async def list_messages(self, conversation_id: UUID, *, limit: int = 200) -> list[Message]:
        return self.in_conversation(conversation_id)[-limit:]


@dataclass
class FakeConversationReader:
    _store: dict[UUID, Conversation] = field(default_factory=dict)
    locked: list[UUID] = field(default_factory=list)

    async def get_by_id(self, conversation_id: UUID, *, for_update: bool = False) -> Conversation | None:
        if for_update:
            self.locked.append(conversation_id)
        return self._store.get(conversation_id)

    async def find_by_participants(
        self, buyer_id: str, counterpart_id: str, product_id: str | None,
    ) -> Conversation | None:
        found = next(
            (
                c for c in self._store.values()
                if (c.buyer_id, c.counterpart_id, c.product_id) == (buyer_id, counterpart_id, product_id)
            ),
            None,
        )
        # Yield after the lookup so concurrent resolvers all miss before anyone inserts.
        await asyncio.sleep(0)
        return found

    async def list_for_participant(self, participant_id: str, *, limit: int = 100) -> list[Conversation]:
        mine = [c for c in self._store.values() if c.is_participant(participant_id)]
        return order_conversations(mine)[:limit]

    async def list_all(
        self, *, counterpart_role: str | None = None, limit: int = 100,
    ) -> list[Conversation]:
        matching = [
            c for c in self._store.values()
            if counterpart_role is None or c.counterpart_role == counterpart_role
        ]
        return order_conversations(matching)[:limit]

    async def unread_total(self, participant_id: str) -> int:
        return sum(c.unread_for(participant_id) for c in self._store.values())


@dataclass
class FakeConversationWriter:
    _reader: FakeConversationReader
    _messages: FakeMessageReader

    async def create(self, conversation: Conversation) -> Conversation:
        for c in self._reader._store.values():
            if (c.buyer_id, c.counterpart_id, c.product_id) == (
                conversation.buyer_id, conversation.counterpart_id, conversation.product_id,
            ):
                raise ConflictError("Conversation already exists")
        self._reader._store[conversation.id] = conversation
        return conversation

    async def record_message(self, conversation_id: UUID, preview: str, ts: datetime) -> None:
        conv = self._reader._store[conversation_id]
        self._reader._store[conversation_id] = replace(
            conv, last_message=preview, last_message_at=ts, updated_at=max(conv.updated_at, ts),
        )

    async def recompute_unread(self, conversation_id: UUID) -> None:
        conv = self._reader._store[conversation_id]
        self._reader._store[conversation_id] = recount(
            conv, self._messages.in_conversation(conversation_id),
        )


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        if message.client_msg_id is not None:
            existing = await self.get_by_client_msg_id(
                message.conversation_id, message.sender_id, message.client_msg_id,
            )
            if existing is not None:
                return existing, False
        self._reader._messages.append(message)
        return message, True

    async def get_by_client_msg_id(
        self, conversation_id: UUID, sender_id: str, client_msg_id: UUID,
    ) -> Message | None:
        for m in self._reader._messages:
            if (
                m.conversation_id == conversation_id
                and m.sender_id == sender_id
                and m.client_msg_id == client_msg_id
            ):
                return m
        return None

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> int:
        updated = {
            m.id: m for m in unread_receipts(self._reader.in_conversation(conversation_id), reader_id)
        }
        self._reader._messages = [updated.get(m.id, m) for m in self._reader._messages]
        return len(updated)


@dataclass
class FakeOutboxWriter:
    _records: list[dict[str, Any]] = field(default_factory=list)
    sent: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    dead: list[int] = field(default_factory=list)

    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        self._records.append(
            {"id": len(self._records) + 1, "event_type": event_type, "payload": payload, "attempts": 0}
        )

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        done = set(self.sent) | set(self.dead)
        return [
            OutboxRecord(id=r["id"], event_type=r["event_type"], payload=r["payload"], attempts=r["attempts"])
            for r in self._records
            if r["id"] not in done
        ][:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        self.sent.extend(ids)

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        self.failed.append(record_id)
        for r in self._records:
            if r["id"] == record_id:
                r["attempts"] += 1

    async def mark_dead(self, record_id: int) -> None:
        self.dead.append(record_id)


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    conversations: FakeConversationReader = field(default_factory=FakeConversationReader)
    conversations_w: FakeConversationWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    outbox: FakeOutboxWriter = field(default_factory=FakeOutboxWriter)
    _committed: bool = False
    _rollbacks: int = 0

    def __post_init__(self) -> None:
        if self.conversations_w is None:
            self.conversations_w = FakeConversationWriter(self.conversations, self.messages)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)

    def add_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations._store[conversation.id] = conversation
        return conversation

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        self._rollbacks += 1


# -- client-side store ----------------------------------------------------


class FakeStore:
    """In-memory ConversationStore with the server's semantics and fault injection.

    ``errors[name]`` holds exceptions raised, in order, by the next calls of
    that method. While ``append_gate`` is set, append_message blocks until the
    event fires; with ``commit_before_gate`` the message is stored first, as
    when a response is delayed after the server committed.
    """

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock or FakeClock()
        self.conversations: dict[UUID, Conversation] = {}
        self.messages: list[Message] = []
        self.errors: dict[str, list[Exception]] = {}
        self.calls: list[str] = []
        self.append_gate: asyncio.Event | None = None
        self.commit_before_gate = False

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        pending = self.errors.get(name)
        if pending:
            raise pending.pop(0)

    def fail(self, name: str, times: int = 1, exc: Exception | None = None) -> None:
        self.errors.setdefault(name, []).extend(
            [exc or StoreUnavailableError("store down")] * times
        )

    def add_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations[conversation.id] = conversation
        return conversation

    def thread(self, conversation_id: UUID) -> list[Message]:
        return sorted(
            (m for m in self.messages if m.conversation_id == conversation_id),
            key=lambda m: m.order_key,
        )

    def _get(self, conversation_id: UUID) -> Conversation:
        conv = self.conversations.get(conversation_id)
        if conv is None:
            raise NotFoundError("Conversation not found")
        return conv

    def _store_message(
        self, conversation_id: UUID, sender_id: str, content: str, client_msg_id: UUID | None,
    ) -> Message:
        conv = self._get(conversation_id)
        if client_msg_id is not None:
            for m in self.messages:
                if (m.conversation_id, m.sender_id, m.client_msg_id) == (
                    conversation_id, sender_id, client_msg_id,
                ):
                    return m
        role = SenderRole.BUYER if sender_id == conv.buyer_id else conv.counterpart_role
        message = make_message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            sender_role=role,
            content=content,
            created_at=self.clock.now(),
            client_msg_id=client_msg_id,
        )
        self.messages.append(message)
        conv = replace(
            conv, last_message=content, last_message_at=message.created_at, updated_at=self.clock.now(),
        )
        self.conversations[conversation_id] = recount(conv, self.messages)
        return message

    # ConversationStore

    async def list_conversations(self, participant_id: str) -> list[Conversation]:
        self._enter("list_conversations")
        return order_conversations(
            c for c in self.conversations.values() if c.is_participant(participant_id)
        )

    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        self._enter("get_conversation")
        return self._get(conversation_id)

    async def create_conversation(
        self,
        buyer_id: str | None,
        counterpart_id: str | None,
        product_id: str | None = None,
        subject: str | None = None,
        *,
        counterpart_role: SenderRole = SenderRole.SUPPLIER,
    ) -> Conversation:
        self._enter("create_conversation")
        if not counterpart_id:
            raise ValidationError("Counterpart is required")
        for c in self.conversations.values():
            if (c.buyer_id, c.counterpart_id, c.product_id) == (buyer_id, counterpart_id, product_id):
                return c
        conv = replace(
            make_conversation(
                buyer_id=buyer_id,
                counterpart_id=counterpart_id,
                counterpart_role=counterpart_role,
                product_id=product_id,
                updated_at=self.clock.now(),
            ),
            subject=subject or "General inquiry",
        )
        return self.add_conversation(conv)

    async def list_messages(self, conversation_id: UUID) -> list[Message]:
        self._enter("list_messages")
        self._get(conversation_id)
        return self.thread(conversation_id)

    async def append_message(
        self,
        conversation_id: UUID,
        sender_id: str,
        content: str,
        *,
        client_msg_id: UUID | None = None,
    ) -> Message:
        self._enter("append_message")
        if self.append_gate is not None:
            if self.commit_before_gate:
                self._store_message(conversation_id, sender_id, content, client_msg_id)
            await self.append_gate.wait()
        return self._store_message(conversation_id, sender_id, content, client_msg_id)

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> Conversation:
        self._enter("mark_read")
        conv = self._get(conversation_id)
        updated = {m.id: m for m in unread_receipts(self.thread(conversation_id), reader_id)}
        self.messages = [updated.get(m.id, m) for m in self.messages]
        conv = recount(replace(conv, updated_at=self.clock.now()), self.messages)
        self.conversations[conversation_id] = conv
        return conv

    async def get_unread_total(self, participant_id: str) -> int:
        self._enter("get_unread_total")
        return sum(c.unread_for(participant_id) for c in self.conversations.values())
