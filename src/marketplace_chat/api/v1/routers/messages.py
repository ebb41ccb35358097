from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from marketplace_chat.api.deps import CurrentPrincipal, UoWDep
from marketplace_chat.api.v1.schemas.message import MessageResponse, SendMessageRequest
from marketplace_chat.config import settings
from marketplace_chat.services import message_service

router = APIRouter(prefix="/api/v1/chat/conversations", tags=["messages"])


@router.get("/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    limit: int = Query(settings.MESSAGE_PAGE_LIMIT, ge=1, le=1000),
) -> list[MessageResponse]:
    messages = await message_service.list_messages(conversation_id, principal, limit, uow)
    return [MessageResponse.model_validate(m, from_attributes=True) for m in messages]


@router.post("/{conversation_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    conversation_id: UUID,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
) -> MessageResponse:
    msg, created = await message_service.send_message(
        conversation_id,
        principal,
        body.content,
        body.client_msg_id,
        uow,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return MessageResponse.model_validate(msg, from_attributes=True)
