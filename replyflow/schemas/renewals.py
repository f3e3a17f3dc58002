"""Pydantic schemas for renewal sweeps."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, Field


class RenewalCandidate(BaseModel):
    """One expiry item considered by a sweep, with its send decision."""
    expiry_item_id: UUID
    contact_id: UUID
    lead_id: UUID | None = None
    item_type: str
    expiry_date: date
    days_until_expiry: int
    stage: str | None = None
    template_name: str | None = None
    variables: dict[str, str] = Field(default_factory=dict)
    will_send: bool = False
    skip_reason: str | None = None
    job_id: UUID | None = None


class RenewalSweepRequest(BaseModel):
    dry_run: bool = True
    window_days: int = Field(90, ge=1, le=365)
