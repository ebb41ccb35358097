from __future__ import annotations

from typing import Protocol

from marketplace_chat.application.dto.principal import Principal


class TokenVerifier(Protocol):
    """Turns a bearer token into the calling participant.

    Implementations raise IdentityMissingError for any token that does not
    name a participant, so callers never see a partial identity.
    """

    async def verify(self, token: str) -> Principal: ...
