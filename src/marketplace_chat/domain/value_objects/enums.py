from __future__ import annotations

from enum import StrEnum


class SenderRole(StrEnum):
    BUYER = "buyer"
    SUPPLIER = "supplier"
    ADMIN = "admin"


class Party(StrEnum):
    """Side of a conversation a participant sits on."""

    BUYER = "buyer"
    COUNTERPART = "counterpart"


class DeliveryStatus(StrEnum):
    SENT = "sent"
    SENDING = "sending"
    FAILED = "failed"
