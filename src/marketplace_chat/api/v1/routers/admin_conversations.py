from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query

from marketplace_chat.api.deps import CurrentAdmin, UoWDep
from marketplace_chat.api.v1.schemas.conversation import ConversationResponse
from marketplace_chat.config import settings
from marketplace_chat.domain.value_objects.enums import SenderRole
from marketplace_chat.services import conversation_service, unread_service

router = APIRouter(prefix="/api/v1/chat/admin/conversations", tags=["admin"])


@router.get("", response_model=list[ConversationResponse])
async def list_conversations(
    admin: CurrentAdmin,
    uow: UoWDep,
    counterpart_role: SenderRole | None = Query(None),
    limit: int = Query(settings.CONVERSATION_PAGE_LIMIT, ge=1, le=500),
) -> list[ConversationResponse]:
    convs = await conversation_service.list_all_conversations(
        admin, limit, uow, counterpart_role=counterpart_role,
    )
    return [ConversationResponse.model_validate(c, from_attributes=True) for c in convs]


@router.post("/{conversation_id}/reconcile", response_model=ConversationResponse)
async def reconcile_unread(
    conversation_id: UUID,
    admin: CurrentAdmin,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await unread_service.reconcile(conversation_id, admin, uow)
    return ConversationResponse.model_validate(conv, from_attributes=True)
