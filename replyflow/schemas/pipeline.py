"""Pydantic schemas for the inbound pipeline."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class InboundPayload(BaseModel):
    """A single inbound message as delivered by a channel."""
    provider_message_id: str | None = Field(None, max_length=255)
    from_phone: str | None = Field(None, max_length=50)
    from_email: str | None = Field(None, max_length=255)
    from_name: str | None = Field(None, max_length=255)
    wa_id: str | None = Field(None, max_length=50)
    text: str | None = None
    received_at: datetime | None = None


class InboundResult(BaseModel):
    """Outcome of submitting an inbound message."""
    status: Literal["processed", "duplicate", "rejected"]
    conversation_id: UUID | None = None
    lead_id: UUID | None = None
    message_id: UUID | None = None
    tasks_created: list[str] = Field(default_factory=list)
    job_id: UUID | None = None
    skip_reason: str | None = None
