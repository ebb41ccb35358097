from __future__ import annotations

from dataclasses import dataclass, field

from marketplace_chat.domain.value_objects.enums import SenderRole


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from JWT."""

    participant_id: str
    role: SenderRole
    roles: list[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == SenderRole.ADMIN or "admin" in self.roles

    @property
    def is_buyer(self) -> bool:
        return self.role == SenderRole.BUYER
