from __future__ import annotations

from fastapi import APIRouter

from marketplace_chat.api.deps import CurrentPrincipal, UoWDep
from marketplace_chat.api.v1.schemas.conversation import UnreadTotalResponse
from marketplace_chat.services import unread_service

router = APIRouter(prefix="/api/v1/chat", tags=["unread"])


@router.get("/unread-count", response_model=UnreadTotalResponse)
async def get_unread_total(principal: CurrentPrincipal, uow: UoWDep) -> UnreadTotalResponse:
    total = await unread_service.get_unread_total(principal, uow)
    return UnreadTotalResponse(total=total)
