from __future__ import annotations

from typing import Any, Protocol


class EventPublisher(Protocol):
    """Outbound feed of chat.* events, drained from the outbox by the worker."""

    async def publish(self, channel: str, payload: dict[str, Any]) -> None: ...
