"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from marketplace_chat.application.dto.principal import Principal
from marketplace_chat.application.exceptions import ForbiddenError, IdentityMissingError
from marketplace_chat.application.ports.auth import TokenVerifier
from marketplace_chat.config import settings
from marketplace_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from marketplace_chat.infrastructure.db.session import AsyncSessionLocal
from marketplace_chat.infrastructure.db.uow import SqlAlchemyUoW

# auto_error=False so a missing header surfaces as IdentityMissingError (401).
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        try:
            yield uow
        finally:
            await session.close()


UoWDep = Annotated[SqlAlchemyUoW, Depends(get_uow)]


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = HS256Verifier(
            settings.JWT_SECRET,
            settings.JWT_ALGORITHM,
            settings.JWT_AUDIENCE,
        )
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise IdentityMissingError("Authentication required")
    return await get_verifier().verify(credentials.credentials)


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def get_current_admin(principal: CurrentPrincipal) -> Principal:
    if not principal.is_admin:
        raise ForbiddenError("Admin access required")
    return principal


CurrentAdmin = Annotated[Principal, Depends(get_current_admin)]
