from __future__ import annotations

import uuid
from dataclasses import dataclass

from marketplace_chat.domain.value_objects.enums import SenderRole


@dataclass(frozen=True, slots=True)
class ResolveConversationDTO:
    buyer_id: str | None
    counterpart_id: str | None
    counterpart_role: SenderRole = SenderRole.ADMIN
    product_id: str | None = None
    subject: str | None = None
    # Posted by the caller right after the thread is resolved
    initial_message: str | None = None
    client_msg_id: uuid.UUID | None = None
