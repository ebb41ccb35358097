from __future__ import annotations

import logging

import jwt

from marketplace_chat.application.dto.principal import Principal
from marketplace_chat.application.exceptions import IdentityMissingError
from marketplace_chat.domain.value_objects.enums import SenderRole

logger = logging.getLogger(__name__)


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        audience: str | None = None,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience

    async def verify(self, token: str) -> Principal:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except jwt.PyJWTError as exc:
            logger.info("Rejected token: %s", exc)
            raise IdentityMissingError("Invalid token") from exc

        subject = payload.get("sub")
        if not subject:
            raise IdentityMissingError("Token has no subject")

        role_raw = payload.get("role", SenderRole.BUYER)
        try:
            role = SenderRole(role_raw)
        except ValueError:
            role = SenderRole.BUYER
        return Principal(
            participant_id=str(subject),
            role=role,
            roles=list(payload.get("roles", [])),
        )
