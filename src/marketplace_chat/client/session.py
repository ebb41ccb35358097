from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from functools import partial
from types import TracebackType
from typing import Self, TypeVar
from uuid import UUID

from marketplace_chat.application.exceptions import (
    AppError,
    ConflictError,
    IdentityMissingError,
    NotFoundError,
    SendTimeoutError,
    ValidationError,
)
from marketplace_chat.application.ports.clock import Clock, SystemClock
from marketplace_chat.client.config import ClientSettings, client_settings
from marketplace_chat.client.pending import Failed, Sending
from marketplace_chat.client.polling import PollingLoop
from marketplace_chat.client.state import ChatViewState
from marketplace_chat.client.store import ConversationStore
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.entities.message import Message
from marketplace_chat.domain.value_objects.enums import SenderRole

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChatSession:
    """One participant's chat client: view state plus its polling loops.

    The conversation list and unread badge poll on slow cadences for the
    whole session; the open thread polls on a fast one. User actions
    (send, mark read, start a conversation) go straight to the store and
    fold their results into the same state through the merge functions.
    """

    def __init__(
        self,
        store: ConversationStore,
        participant_id: str | None,
        *,
        role: SenderRole = SenderRole.BUYER,
        settings: ClientSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        if not participant_id:
            raise IdentityMissingError("Chat requires a signed-in participant")
        self.participant_id = participant_id
        self.role = role
        self._store = store
        self._settings = settings or client_settings
        self._clock = clock or SystemClock()
        self._window = self._settings.CHAT_PENDING_MATCH_WINDOW_SECONDS
        self.state = ChatViewState(match_window_seconds=self._window)
        self._degraded_loops: set[str] = set()
        self._closed = False

        self._list_loop: PollingLoop[list[Conversation]] = self._make_loop(
            "conversations",
            partial(store.list_conversations, participant_id),
            self.state.apply_conversations,
            self._settings.CHAT_LIST_POLL_SECONDS,
            reports_load_error=True,
        )
        self._unread_loop: PollingLoop[int] = self._make_loop(
            "unread-total",
            partial(store.get_unread_total, participant_id),
            self.state.apply_unread_total,
            self._settings.CHAT_UNREAD_POLL_SECONDS,
            reports_load_error=True,
        )
        self._thread_loop: PollingLoop[list[Message]] | None = None

    def _make_loop(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        apply: Callable[[T], None],
        interval: float,
        *,
        reports_load_error: bool = False,
    ) -> PollingLoop[T]:
        on_degraded = on_recovered = None
        if reports_load_error:
            on_degraded = partial(self._loop_degraded, name)
            on_recovered = partial(self._loop_recovered, name)
        return PollingLoop(
            name,
            fetch,
            apply,
            interval=interval,
            max_backoff=self._settings.CHAT_POLL_MAX_BACKOFF_SECONDS,
            failure_threshold=self._settings.CHAT_POLL_FAILURE_THRESHOLD,
            on_degraded=on_degraded,
            on_recovered=on_recovered,
        )

    def _loop_degraded(self, name: str) -> None:
        self._degraded_loops.add(name)
        self.state.set_load_error(True)

    def _loop_recovered(self, name: str) -> None:
        self._degraded_loops.discard(name)
        self.state.set_load_error(bool(self._degraded_loops))

    @property
    def list_loop(self) -> PollingLoop[list[Conversation]]:
        return self._list_loop

    @property
    def unread_loop(self) -> PollingLoop[int]:
        return self._unread_loop

    @property
    def thread_loop(self) -> PollingLoop[list[Message]] | None:
        return self._thread_loop

    # lifecycle

    def start(self) -> None:
        self._closed = False
        self._list_loop.start()
        self._unread_loop.start()

    async def aclose(self) -> None:
        self._closed = True
        await self.close_conversation()
        await self._list_loop.stop()
        await self._unread_loop.stop()

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def refresh(self) -> None:
        """Poll every loop once, now. Does nothing once the session is closed."""
        if self._closed:
            logger.debug("Refresh ignored, session for %s is closed", self.participant_id)
            return
        await self._list_loop.run_once()
        await self._unread_loop.run_once()
        if self._thread_loop is not None:
            await self._thread_loop.run_once()

    # conversations

    async def open_conversation(self, conversation_id: UUID, *, mark_read: bool = True) -> None:
        await self._stop_thread_loop()
        self.state.open_thread(conversation_id)
        self._thread_loop = self._make_loop(
            f"thread:{conversation_id}",
            partial(self._store.list_messages, conversation_id),
            partial(self.state.apply_messages, conversation_id),
            self._settings.CHAT_THREAD_POLL_SECONDS,
        )
        self._thread_loop.start()

        if mark_read:
            try:
                await self.mark_as_read(conversation_id)
            except AppError as exc:
                logger.warning("Implicit mark-read of %s failed: %s", conversation_id, exc.detail)

    async def close_conversation(self) -> None:
        await self._stop_thread_loop()
        self.state.close_thread()

    async def _stop_thread_loop(self) -> None:
        loop, self._thread_loop = self._thread_loop, None
        if loop is not None:
            await loop.stop()

    async def start_conversation(
        self,
        counterpart_id: str | None = None,
        counterpart_role: SenderRole = SenderRole.SUPPLIER,
        *,
        buyer_id: str | None = None,
        product_id: str | None = None,
        subject: str | None = None,
    ) -> Conversation:
        """Find or create the thread with a counterpart and open it."""
        if self.role is SenderRole.BUYER:
            buyer_id = self.participant_id
        else:
            if not buyer_id:
                raise ValidationError("buyer_id is required to contact a buyer")
            counterpart_id = self.participant_id
            counterpart_role = self.role

        conversation = await self._store.create_conversation(
            buyer_id,
            counterpart_id,
            product_id,
            subject,
            counterpart_role=counterpart_role,
        )
        self.state.apply_conversation(conversation)
        await self.open_conversation(conversation.id)
        return conversation

    async def mark_as_read(self, conversation_id: UUID) -> Conversation:
        """Raises NotFoundError for an unknown conversation; badge state is left alone."""
        try:
            conversation = await self._store.mark_read(conversation_id, self.participant_id)
        except NotFoundError:
            logger.info("Mark-read on unknown conversation %s", conversation_id)
            raise
        self.state.apply_conversation(conversation)
        self._unread_loop.trigger()
        return conversation

    # sending

    async def send(self, conversation_id: UUID, content: str) -> Message:
        text = content.strip()
        if not text:
            raise ValidationError("Message content is empty")
        if isinstance(self.state.pending_for(conversation_id), Sending):
            raise ConflictError("A message is already being sent in this conversation")

        item = Sending(
            conversation_id=conversation_id,
            sender_id=self.participant_id,
            content=text,
            client_msg_id=uuid.uuid4(),
            created_at=self._clock.now(),
            known_ids=self.state.known_message_ids(conversation_id),
        )
        return await self._deliver(item)

    async def retry(self, conversation_id: UUID) -> Message:
        """Re-send a failed message. Reuses its client id so the server can deduplicate."""
        failed = self.state.pending_for(conversation_id)
        if not isinstance(failed, Failed):
            raise NotFoundError("No failed message to retry")
        item = Sending(
            conversation_id=failed.conversation_id,
            sender_id=failed.sender_id,
            content=failed.content,
            client_msg_id=failed.client_msg_id,
            created_at=self._clock.now(),
            known_ids=failed.known_ids,
        )
        return await self._deliver(item)

    def discard_failed(self, conversation_id: UUID) -> bool:
        if not isinstance(self.state.pending_for(conversation_id), Failed):
            return False
        self.state.discard_pending(conversation_id)
        return True

    async def _deliver(self, item: Sending) -> Message:
        self.state.set_pending(item)
        try:
            message = await asyncio.wait_for(
                self._store.append_message(
                    item.conversation_id,
                    item.sender_id,
                    item.content,
                    client_msg_id=item.client_msg_id,
                ),
                timeout=self._settings.CHAT_SEND_TIMEOUT_SECONDS,
            )
        except TimeoutError as exc:
            confirmed = self.state.find_confirmed(item)
            if confirmed is not None:
                # A thread poll saw the message land while the request hung.
                self.state.confirm_pending(item, confirmed)
                return confirmed
            self.state.fail_pending(item, "timeout")
            logger.warning(
                "Send %s to %s timed out after %.1fs",
                item.client_msg_id, item.conversation_id,
                self._settings.CHAT_SEND_TIMEOUT_SECONDS,
            )
            raise SendTimeoutError("Failed to send, tap to retry") from exc
        except AppError as exc:
            self.state.fail_pending(item, exc.detail or type(exc).__name__)
            logger.warning("Send %s to %s failed: %s", item.client_msg_id, item.conversation_id, exc)
            raise
        except BaseException as exc:
            # Cancelled or crashed sends must not stay in Sending.
            self.state.fail_pending(item, type(exc).__name__)
            logger.warning(
                "Send %s to %s aborted: %s", item.client_msg_id, item.conversation_id, type(exc).__name__,
            )
            raise

        self.state.confirm_pending(item, message)
        self._list_loop.trigger()
        return message
