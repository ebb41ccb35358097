"""Store contract consumed by the client, and its HTTP implementation."""
from __future__ import annotations

import logging
import uuid
from types import TracebackType
from typing import Any, Protocol, Self, TypeVar
from uuid import UUID

import httpx
import pydantic

from marketplace_chat.api.v1.schemas.conversation import (
    ConversationResponse,
    UnreadTotalResponse,
)
from marketplace_chat.api.v1.schemas.message import MessageResponse
from marketplace_chat.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    IdentityMissingError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from marketplace_chat.client.config import ClientSettings, client_settings
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.entities.message import Message
from marketplace_chat.domain.value_objects.enums import SenderRole

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ResponseT = TypeVar("ResponseT", bound=pydantic.BaseModel)

_STATUS_ERRORS: dict[int, type[AppError]] = {
    401: IdentityMissingError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


class ConversationStore(Protocol):
    async def list_conversations(self, participant_id: str) -> list[Conversation]: ...

    async def get_conversation(self, conversation_id: UUID) -> Conversation: ...

    async def create_conversation(
        self,
        buyer_id: str | None,
        counterpart_id: str | None,
        product_id: str | None = None,
        subject: str | None = None,
        *,
        counterpart_role: SenderRole = SenderRole.SUPPLIER,
    ) -> Conversation: ...

    async def list_messages(self, conversation_id: UUID) -> list[Message]: ...

    async def append_message(
        self,
        conversation_id: UUID,
        sender_id: str,
        content: str,
        *,
        client_msg_id: UUID | None = None,
    ) -> Message: ...

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> Conversation: ...

    async def get_unread_total(self, participant_id: str) -> int: ...


class HttpConversationStore:
    """ConversationStore over the chat service HTTP API.

    Identity is carried by the bearer token; the participant id arguments are
    accepted for contract compatibility and checked against nothing locally.
    """

    def __init__(
        self,
        token: str,
        *,
        settings: ClientSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = settings or client_settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.CHAT_API_URL,
            timeout=settings.CHAT_HTTP_TIMEOUT_SECONDS,
        )
        self._headers = {"Authorization": f"Bearer {token}"}

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def _request(
        self, method: str, path: str, *, json: dict[str, Any] | None = None,
    ) -> Any:
        request_id = uuid.uuid4().hex
        headers = {**self._headers, REQUEST_ID_HEADER: request_id}
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("Chat API %s %s timed out [%s]", method, path, request_id)
            raise StoreUnavailableError(f"Request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Chat API %s %s transport error [%s]: %s", method, path, request_id, exc)
            raise StoreUnavailableError(f"Transport error: {exc}") from exc

        if response.status_code >= 500:
            logger.warning(
                "Chat API %s %s returned %d [%s]", method, path, response.status_code, request_id,
            )
            raise StoreUnavailableError(f"Chat API returned {response.status_code}")
        if response.status_code >= 400:
            error_cls = _STATUS_ERRORS.get(response.status_code, AppError)
            raise error_cls(_detail(response))
        try:
            return response.json()
        except ValueError as exc:
            logger.warning(
                "Chat API %s %s returned a non-JSON body [%s]", method, path, request_id,
            )
            raise StoreUnavailableError("Chat API returned an unreadable response") from exc

    async def list_conversations(self, participant_id: str) -> list[Conversation]:
        data = await self._request("GET", "/api/v1/chat/conversations")
        return [c.to_entity() for c in _parse_list(ConversationResponse, data)]

    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        data = await self._request("GET", f"/api/v1/chat/conversations/{conversation_id}")
        return _parse(ConversationResponse, data).to_entity()

    async def create_conversation(
        self,
        buyer_id: str | None,
        counterpart_id: str | None,
        product_id: str | None = None,
        subject: str | None = None,
        *,
        counterpart_role: SenderRole = SenderRole.SUPPLIER,
    ) -> Conversation:
        body = {
            "buyer_id": buyer_id,
            "counterpart_id": counterpart_id,
            "counterpart_role": str(counterpart_role),
            "product_id": product_id,
            "subject": subject,
        }
        data = await self._request("POST", "/api/v1/chat/conversations", json=body)
        return _parse(ConversationResponse, data).to_entity()

    async def list_messages(self, conversation_id: UUID) -> list[Message]:
        data = await self._request("GET", f"/api/v1/chat/conversations/{conversation_id}/messages")
        return [m.to_entity() for m in _parse_list(MessageResponse, data)]

    async def append_message(
        self,
        conversation_id: UUID,
        sender_id: str,
        content: str,
        *,
        client_msg_id: UUID | None = None,
    ) -> Message:
        body: dict[str, Any] = {"content": content}
        if client_msg_id is not None:
            body["client_msg_id"] = str(client_msg_id)
        data = await self._request(
            "POST", f"/api/v1/chat/conversations/{conversation_id}/messages", json=body,
        )
        return _parse(MessageResponse, data).to_entity()

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> Conversation:
        data = await self._request("POST", f"/api/v1/chat/conversations/{conversation_id}/read")
        return _parse(ConversationResponse, data).to_entity()

    async def get_unread_total(self, participant_id: str) -> int:
        data = await self._request("GET", "/api/v1/chat/unread-count")
        return _parse(UnreadTotalResponse, data).total


def _parse(model: type[ResponseT], data: Any) -> ResponseT:
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        logger.warning("Chat API payload does not match %s: %s", model.__name__, exc)
        raise StoreUnavailableError(f"Unexpected {model.__name__} payload") from exc


def _parse_list(model: type[ResponseT], data: Any) -> list[ResponseT]:
    if not isinstance(data, list):
        raise StoreUnavailableError(f"Expected a list of {model.__name__}")
    return [_parse(model, item) for item in data]


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return response.text
