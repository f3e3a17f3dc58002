"""Typed schema for ``Lead.data_json``.

The document is versioned and merge-only: extracted facts are filled in when
absent and appended when list-valued, never overwritten. Qualifier flows keep
their progress in per-service sub-models (``goldenVisa`` for Golden Visa).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

LEAD_DATA_VERSION = 1


class ExpiryFact(BaseModel):
    type: str
    expires_on: date
    source_text: str | None = None


class LeadCounts(BaseModel):
    partners: int | None = None
    visas: int | None = None


class LeadIdentity(BaseModel):
    name: str | None = None
    email: str | None = None


class QualifierState(BaseModel):
    """Progress shared by every qualifier flow."""

    model_config = ConfigDict(populate_by_name=True)

    step: str | None = None  # Question currently awaiting an answer
    answers: dict[str, Any] = Field(default_factory=dict)
    questions_asked: int = 0
    likely_eligible: bool | None = None
    escalated: bool = False
    completed: bool = False
    last_inbound_id: str | None = None
    last_reply: str | None = None
    last_question_key: str | None = None


class GoldenVisaState(QualifierState):
    kind: Literal["golden_visa"] = "golden_visa"
    category: str | None = None
    proof: str | None = None  # yes / partly / no
    timeline: str | None = None  # asap / this_week / this_month / no_rush


class LeadData(BaseModel):
    """Structured data collected for a lead."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: int = LEAD_DATA_VERSION
    service: str | None = None
    service_raw: str | None = None
    nationality: str | None = None
    expiries: list[ExpiryFact] = Field(default_factory=list)
    expiry_hint_text: str | None = None
    counts: LeadCounts = Field(default_factory=LeadCounts)
    identity: LeadIdentity = Field(default_factory=LeadIdentity)
    extracted_at: datetime | None = None

    golden_visa: GoldenVisaState | None = Field(default=None, alias="goldenVisa")

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> "LeadData":
        return cls.model_validate(data or {})

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def has_expiry(self, item_type: str, expiry_date: date) -> bool:
        return any(e.type == item_type and e.expires_on == expiry_date for e in self.expiries)
