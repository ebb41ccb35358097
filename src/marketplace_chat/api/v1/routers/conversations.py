from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from marketplace_chat.api.deps import CurrentPrincipal, UoWDep
from marketplace_chat.api.v1.schemas.conversation import (
    ConversationResponse,
    ResolveConversationRequest,
)
from marketplace_chat.application.dto.conversation import ResolveConversationDTO
from marketplace_chat.config import settings
from marketplace_chat.services import conversation_service, unread_service

router = APIRouter(prefix="/api/v1/chat/conversations", tags=["conversations"])


@router.post("", response_model=ConversationResponse)
async def resolve_conversation(
    body: ResolveConversationRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
) -> ConversationResponse:
    conv, created = await conversation_service.resolve_for_principal(
        principal,
        ResolveConversationDTO(
            buyer_id=body.buyer_id,
            counterpart_id=body.counterpart_id,
            counterpart_role=body.counterpart_role,
            product_id=body.product_id,
            subject=body.subject,
            initial_message=body.initial_message,
            client_msg_id=body.client_msg_id,
        ),
        settings.SUPPORT_COUNTERPART_ID,
        uow,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return ConversationResponse.model_validate(conv, from_attributes=True)


@router.get("", response_model=list[ConversationResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
    limit: int = Query(settings.CONVERSATION_PAGE_LIMIT, ge=1, le=500),
) -> list[ConversationResponse]:
    convs = await conversation_service.list_conversations(principal, limit, uow)
    return [ConversationResponse.model_validate(c, from_attributes=True) for c in convs]


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.get_conversation(conversation_id, principal, uow)
    return ConversationResponse.model_validate(conv, from_attributes=True)


@router.post("/{conversation_id}/read", response_model=ConversationResponse)
async def mark_read(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await unread_service.mark_read(conversation_id, principal, uow)
    return ConversationResponse.model_validate(conv, from_attributes=True)
