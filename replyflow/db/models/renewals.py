"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from replyflow.core.constants import DEFAULT_REMINDER_SCHEDULE_DAYS
from replyflow.db.base import Base
from replyflow.db.enums import DEFAULT_RENEWAL_STATUS
from replyflow.db.types import JSONDocument, utc_now


class ExpiryItem(Base):
    """A tracked document/permit with an expiry date. Drives renewal sweeps."""

    __tablename__ = "expiry_items"
    __table_args__ = (
        UniqueConstraint(
            "contact_id", "item_type", "expiry_date", name="uq_expiry_items_contact_type_date"
        ),
        Index("idx_expiry_items_due", "renewal_status", "expiry_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    lead_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("leads.id", ondelete="SET NULL"), nullable=True
    )
    item_type: Mapped[str] = mapped_column(String(50), nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    reminder_schedule_days: Mapped[list[int]] = mapped_column(
        JSONDocument, default=lambda: list(DEFAULT_REMINDER_SCHEDULE_DAYS), nullable=False
    )
    reminders_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    renewal_status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_RENEWAL_STATUS.value, nullable=False
    )
    last_reminder_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_reminder_stage: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )


class AutomationRunLog(Base):
    """
    Append-only ledger for periodic automations.

    The existence of a row for an action key is itself the "already handled"
    signal.
    """

    __tablename__ = "automation_run_logs"
    __table_args__ = (
        Index("uq_automation_run_logs_action_key", "action_key", unique=True),
        Index("idx_automation_run_logs_rule_date", "rule", "run_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    action_key: Mapped[str] = mapped_column(String(255), nullable=False)
    rule: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    run_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    lead_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("leads.id", ondelete="SET NULL"), nullable=True
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
