"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from replyflow.db.base import Base
from replyflow.db.enums import DEFAULT_CONVERSATION_STATUS
from replyflow.db.types import utc_now

if TYPE_CHECKING:
    from replyflow.db.models import Contact, Lead


class InboundDedupRecord(Base):
    """
    One row per physical inbound event.

    The unique (channel, dedup_key) constraint is the dedup mechanism itself;
    rows are never mutated.
    """

    __tablename__ = "inbound_dedup_records"
    __table_args__ = (
        UniqueConstraint("channel", "dedup_key", name="uq_inbound_dedup_channel_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    channel: Mapped[str] = mapped_column(String(30), nullable=False)
    dedup_key: Mapped[str] = mapped_column(String(255), nullable=False)
    key_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)


class Conversation(Base):
    """
    A single thread per contact per channel.

    When ``assigned_user_id`` is set a human owns the thread and automation
    stays out of it.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("contact_id", "channel", name="uq_conversations_contact_channel"),
        Index("idx_conversations_lead", "lead_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    channel: Mapped[str] = mapped_column(String(30), nullable=False)
    lead_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("leads.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_CONVERSATION_STATUS.value, nullable=False
    )
    # Users live outside this service; no FK.
    assigned_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    last_question_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_inbound_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_outbound_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    contact: Mapped["Contact"] = relationship(back_populates="conversations")
    lead: Mapped["Lead | None"] = relationship()


class Message(Base):
    """Append-only log row per inbound/outbound event."""

    __tablename__ = "messages"
    __table_args__ = (
        Index(
            "uq_messages_conversation_provider_id",
            "conversation_id",
            "provider_message_id",
            unique=True,
            postgresql_where=text("provider_message_id IS NOT NULL"),
            sqlite_where=text("provider_message_id IS NOT NULL"),
        ),
        Index("idx_messages_channel_provider_id", "channel", "provider_message_id"),
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    lead_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("leads.id", ondelete="SET NULL"), nullable=True
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    channel: Mapped[str] = mapped_column(String(30), nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    outbound_job_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
