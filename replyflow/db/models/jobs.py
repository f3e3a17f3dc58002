"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from replyflow.core.config import settings
from replyflow.db.base import Base
from replyflow.db.enums import DEFAULT_JOB_KIND, DEFAULT_JOB_STATUS
from replyflow.db.types import JSONDocument, utc_now


class OutboundJob(Base):
    """
    Durable queue entry meaning "an outbound message is owed".

    ``claimed_at`` is a soft lease: a claim older than the lease window is
    treated as abandoned. Only the job processor mutates these rows.
    """

    __tablename__ = "outbound_jobs"
    __table_args__ = (
        Index("uq_outbound_jobs_idempotency_key", "idempotency_key", unique=True),
        Index(
            "idx_outbound_jobs_claimable",
            "status",
            "run_at",
            postgresql_where=text("status IN ('pending', 'ready_to_send')"),
        ),
        Index("idx_outbound_jobs_conversation", "conversation_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_JOB_KIND.value, nullable=False
    )
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    trigger_message_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True
    )
    trigger_provider_message_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    question_key: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_JOB_STATUS.value, nullable=False
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(
        Integer, default=lambda: settings.JOB_MAX_ATTEMPTS, nullable=False
    )
    run_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    claimed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_attempt_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Staged output
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    template_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    template_params: Mapped[list[Any] | None] = mapped_column(JSONDocument, nullable=True)

    error: Mapped[str | None] = mapped_column(String(500), nullable=True)
    error_log: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    skip_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )


class OutboundMessageLog(Base):
    """
    At-most-once send ledger.

    A row is inserted before the provider is called; the unique dedupe key
    (conversation, triggering inbound id, question key) guarantees a second
    worker never sends the same reply.
    """

    __tablename__ = "outbound_message_logs"
    __table_args__ = (
        Index("uq_outbound_message_logs_dedupe_key", "dedupe_key", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    dedupe_key: Mapped[str] = mapped_column(String(64), nullable=False)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    outbound_job_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    trigger_provider_message_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    question_key: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
