from __future__ import annotations

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    """Polling client tuning. Every field has a default so the client imports standalone."""

    CHAT_API_URL: str = "http://localhost:8000"

    CHAT_LIST_POLL_SECONDS: float = Field(30.0, gt=0)
    CHAT_THREAD_POLL_SECONDS: float = Field(3.0, ge=2.0, le=5.0)
    CHAT_UNREAD_POLL_SECONDS: float = Field(30.0, gt=0)

    CHAT_SEND_TIMEOUT_SECONDS: float = Field(12.0, gt=0)
    # Optimistic sends without an exact client id match inside this window
    CHAT_PENDING_MATCH_WINDOW_SECONDS: float = Field(5.0, ge=0)

    CHAT_POLL_MAX_BACKOFF_SECONDS: float = Field(60.0, gt=0)
    CHAT_POLL_FAILURE_THRESHOLD: int = Field(3, ge=1)

    CHAT_HTTP_TIMEOUT_SECONDS: float = Field(10.0, gt=0)

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


client_settings = ClientSettings()
