from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from marketplace_chat.domain.value_objects.enums import Party


@dataclass(frozen=True, slots=True)
class Conversation:
    id: UUID
    buyer_id: str
    counterpart_id: str
    counterpart_role: str
    product_id: str | None
    subject: str
    last_message: str | None
    last_message_at: datetime | None
    unread_count_buyer: int
    unread_count_counterpart: int
    created_at: datetime
    updated_at: datetime

    def party_of(self, participant_id: str) -> Party | None:
        if participant_id == self.buyer_id:
            return Party.BUYER
        if participant_id == self.counterpart_id:
            return Party.COUNTERPART
        return None

    def is_participant(self, participant_id: str) -> bool:
        return self.party_of(participant_id) is not None

    def unread_for(self, participant_id: str) -> int:
        party = self.party_of(participant_id)
        if party is Party.BUYER:
            return self.unread_count_buyer
        if party is Party.COUNTERPART:
            return self.unread_count_counterpart
        return 0
