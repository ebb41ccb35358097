"""Local view state of one chat session, exposed as subscribable values."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Generic, TypeVar
from uuid import UUID

from marketplace_chat.client.merge import (
    DEFAULT_MATCH_WINDOW_SECONDS,
    RenderedMessage,
    find_confirmation,
    merge,
    merge_confirmed,
    merge_conversations,
)
from marketplace_chat.client.pending import Failed, PendingSend, Sending
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.entities.message import Message

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOAD_ERROR_MESSAGE = "unable to load conversations"


class Observable(Generic[T]):
    """A value that notifies subscribers when it changes."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        if value == self._value:
            return
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                logger.exception("Subscriber %r failed", callback)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe


class ChatViewState:
    def __init__(self, *, match_window_seconds: float = DEFAULT_MATCH_WINDOW_SECONDS) -> None:
        self.conversations: Observable[list[Conversation]] = Observable([])
        self.thread: Observable[list[RenderedMessage]] = Observable([])
        self.unread_total: Observable[int] = Observable(0)
        self.load_error: Observable[str | None] = Observable(None)

        self._window = match_window_seconds
        self._active_id: UUID | None = None
        self._confirmed: list[Message] = []
        self._pending: dict[UUID, PendingSend] = {}

    @property
    def active_conversation_id(self) -> UUID | None:
        return self._active_id

    @property
    def confirmed_messages(self) -> list[Message]:
        return list(self._confirmed)

    def pending_for(self, conversation_id: UUID) -> PendingSend | None:
        return self._pending.get(conversation_id)

    # conversation list / badge

    def apply_conversations(self, fetched: Iterable[Conversation]) -> None:
        self.conversations.set(merge_conversations(self.conversations.value, fetched))

    def apply_conversation(self, conversation: Conversation) -> None:
        self.apply_conversations([conversation])

    def apply_unread_total(self, total: int) -> None:
        self.unread_total.set(total)

    def set_load_error(self, degraded: bool) -> None:
        self.load_error.set(LOAD_ERROR_MESSAGE if degraded else None)

    # active thread

    def open_thread(self, conversation_id: UUID) -> None:
        if conversation_id != self._active_id:
            self._active_id = conversation_id
            self._confirmed = []
        self._render()

    def close_thread(self) -> None:
        self._active_id = None
        self._confirmed = []
        self._render()

    def apply_messages(self, conversation_id: UUID, fetched: Iterable[Message]) -> None:
        """Fold a thread fetch in. Fetches for a thread no longer open are dropped."""
        if conversation_id != self._active_id:
            logger.debug("Dropping messages for inactive conversation %s", conversation_id)
            return
        self._confirmed = merge_confirmed(self._confirmed, fetched)
        self._settle_pending(conversation_id)
        self._render()

    def known_message_ids(self, conversation_id: UUID) -> frozenset[UUID]:
        if conversation_id != self._active_id:
            return frozenset()
        return frozenset(m.id for m in self._confirmed)

    def find_confirmed(self, item: PendingSend) -> Message | None:
        """Confirmed message that supersedes ``item``, if the thread is open."""
        if item.conversation_id != self._active_id:
            return None
        return find_confirmation(self._confirmed, item, window_seconds=self._window)

    # optimistic slot

    def set_pending(self, item: PendingSend) -> None:
        self._pending[item.conversation_id] = item
        self._render()

    def fail_pending(self, item: Sending, reason: str) -> bool:
        """Turn ``item`` into Failed. False if its slot was already settled or replaced."""
        if self._pending.get(item.conversation_id) != item:
            return False
        self._pending[item.conversation_id] = item.fail(reason)
        self._render()
        return True

    def confirm_pending(self, item: PendingSend, message: Message) -> None:
        conversation_id = item.conversation_id
        if self._pending.get(conversation_id) == item:
            del self._pending[conversation_id]
        if conversation_id == self._active_id:
            self._confirmed = merge_confirmed(self._confirmed, [message])
        self._render()

    def discard_pending(self, conversation_id: UUID) -> PendingSend | None:
        item = self._pending.pop(conversation_id, None)
        self._render()
        return item

    def _settle_pending(self, conversation_id: UUID) -> None:
        item = self._pending.get(conversation_id)
        if item is None:
            return
        if find_confirmation(self._confirmed, item, window_seconds=self._window) is not None:
            # Failed slots are confirmed too: the server may have committed a timed-out send.
            logger.debug(
                "Pending %s confirmed by poll (was %s)",
                item.client_msg_id, "failed" if isinstance(item, Failed) else "sending",
            )
            del self._pending[conversation_id]

    def _render(self) -> None:
        if self._active_id is None:
            self.thread.set([])
            return
        self.thread.set(
            merge(
                self._confirmed,
                self._pending.get(self._active_id),
                window_seconds=self._window,
            )
        )
