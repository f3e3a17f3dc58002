"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import uuid
from datetime import date, datetime

from sqlalchemy import Date, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from replyflow.db.base import Base
from replyflow.db.enums import DEFAULT_LEAD_STAGE
from replyflow.db.types import JSONDocument, utc_now

if TYPE_CHECKING:
    from replyflow.db.models import Contact


class Lead(Base):
    """
    Business-process anchor for a customer request.

    ``data_json`` holds the structured LeadData document that extractors merge
    into and qualifiers persist their progress in.
    """

    __tablename__ = "leads"
    __table_args__ = (
        Index("idx_leads_contact_touched", "contact_id", "last_touched_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    stage: Mapped[str] = mapped_column(
        String(30), default=DEFAULT_LEAD_STAGE.value, nullable=False
    )
    service_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    requested_service_raw: Mapped[str | None] = mapped_column(Text, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    data_json: Mapped[dict[str, Any]] = mapped_column(
        JSONDocument, default=dict, nullable=False
    )
    last_contact_channel: Mapped[str | None] = mapped_column(String(30), nullable=True)
    last_inbound_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_touched_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    contact: Mapped["Contact"] = relationship(back_populates="leads")
