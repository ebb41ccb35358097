from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace_chat.infrastructure.db.base import Base


class ConversationModel(Base):
    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    counterpart_id: Mapped[str] = mapped_column(String(64), nullable=False)
    counterpart_role: Mapped[str] = mapped_column(String(20), nullable=False, default="admin")
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    last_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    unread_count_buyer: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )
    unread_count_counterpart: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
        onupdate=text("now()"),
    )

    messages = relationship("MessageModel", back_populates="conversation", lazy="noload")

    __table_args__ = (
        # One thread per (buyer, counterpart, product); null product is its own slot.
        Index(
            "uq_conversations_product_thread",
            "buyer_id",
            "counterpart_id",
            "product_id",
            unique=True,
            postgresql_where=text("product_id IS NOT NULL"),
        ),
        Index(
            "uq_conversations_general_thread",
            "buyer_id",
            "counterpart_id",
            unique=True,
            postgresql_where=text("product_id IS NULL"),
        ),
        Index("ix_conversations_buyer_activity", "buyer_id", "last_message_at"),
        Index("ix_conversations_counterpart_activity", "counterpart_id", "last_message_at"),
        CheckConstraint("unread_count_buyer >= 0", name="ck_conversations_unread_buyer_non_negative"),
        CheckConstraint("unread_count_counterpart >= 0", name="ck_conversations_unread_counterpart_non_negative"),
    )
