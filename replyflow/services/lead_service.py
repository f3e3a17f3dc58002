"""Lead resolution and structured-data merging."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from replyflow.core.config import settings
from replyflow.db.enums import CLOSED_LEAD_STAGES, MessageDirection
from replyflow.db.models import Contact, Lead
from replyflow.db.types import as_utc
from replyflow.schemas.lead_data import ExpiryFact, LeadData
from replyflow.services import contact_service, conversation_service
from replyflow.services.field_extractors import ExtractedFields

logger = logging.getLogger(__name__)


def find_open_lead(
    db: Session,
    contact_id,
    *,
    as_of: datetime,
    window_days: int | None = None,
) -> Lead | None:
    """Most recently touched lead that is still open and inside the reopen window."""
    window_days = window_days or settings.LEAD_REOPEN_WINDOW_DAYS
    cutoff = as_utc(as_of) - timedelta(days=window_days)
    return (
        db.query(Lead)
        .filter(
            Lead.contact_id == contact_id,
            Lead.stage.notin_([stage.value for stage in CLOSED_LEAD_STAGES]),
            Lead.last_touched_at >= cutoff,
        )
        .order_by(Lead.last_touched_at.desc())
        .first()
    )


def resolve_lead(
    db: Session,
    contact: Contact,
    *,
    channel: str,
    provider_message_id: str | None,
    received_at: datetime,
) -> Lead:
    """
    Resolve the lead for an inbound message.

    1. A replayed provider message id already linked to a lead returns that lead.
    2. Otherwise reuse the most recently touched open lead within the window.
    3. Otherwise create a new lead.
    """
    received_at = as_utc(received_at)

    if provider_message_id:
        existing = conversation_service.find_message_by_provider_id(
            db, channel, provider_message_id, direction=MessageDirection.INBOUND
        )
        if existing and existing.lead_id:
            lead = db.get(Lead, existing.lead_id)
            if lead:
                logger.info("Replay of linked inbound resolved to lead %s", lead.id)
                return lead

    lead = find_open_lead(db, contact.id, as_of=received_at)
    if lead is None:
        lead = Lead(contact_id=contact.id, last_touched_at=received_at, data_json={})
        db.add(lead)
        db.flush()
        logger.info("Created lead %s for contact %s", lead.id, contact.id)

    if as_utc(lead.last_touched_at) < received_at:
        lead.last_touched_at = received_at
    lead.last_inbound_at = received_at
    lead.last_contact_channel = channel
    db.flush()
    return lead


def merge_extracted_fields(data: LeadData, extracted: ExtractedFields, now: datetime) -> LeadData:
    """
    Merge extraction results into a copy of ``data``.

    Scalars are set only when absent, expiries are appended without
    duplicates, counts and identity are filled key by key.
    """
    merged = data.model_copy(deep=True)

    if extracted.service and not merged.service:
        merged.service = extracted.service.service.value
        merged.service_raw = extracted.service.matched_term
    if extracted.nationality and not merged.nationality:
        merged.nationality = extracted.nationality

    for expiry in extracted.expiries:
        if not merged.has_expiry(expiry.item_type.value, expiry.expiry_date):
            merged.expiries.append(
                ExpiryFact(
                    type=expiry.item_type.value,
                    expires_on=expiry.expiry_date,
                    source_text=expiry.matched_text,
                )
            )
    if extracted.expiry_hint_text and not merged.expiry_hint_text:
        merged.expiry_hint_text = extracted.expiry_hint_text

    if merged.counts.partners is None and extracted.counts.partners is not None:
        merged.counts.partners = extracted.counts.partners
    if merged.counts.visas is None and extracted.counts.visas is not None:
        merged.counts.visas = extracted.counts.visas

    if not merged.identity.name and extracted.identity.name:
        merged.identity.name = extracted.identity.name
    if not merged.identity.email and extracted.identity.email:
        merged.identity.email = extracted.identity.email

    merged.extracted_at = now
    return merged


def _earliest_upcoming(expiries: list[ExpiryFact], today: date) -> date | None:
    upcoming = sorted(e.expires_on for e in expiries if e.expires_on >= today)
    return upcoming[0] if upcoming else None


def apply_extracted_fields(
    db: Session,
    lead: Lead,
    contact: Contact,
    extracted: ExtractedFields,
    now: datetime,
) -> LeadData:
    """Persist extraction results on the lead and fill empty contact fields."""
    data = merge_extracted_fields(LeadData.from_json(lead.data_json), extracted, now)
    lead.data_json = data.to_json()

    if extracted.service:
        if not lead.service_type:
            lead.service_type = extracted.service.service.value
        if not lead.requested_service_raw:
            lead.requested_service_raw = extracted.service.matched_term
    if not lead.expiry_date:
        lead.expiry_date = _earliest_upcoming(data.expiries, now.date())

    contact_service.fill_contact_details(
        db,
        contact,
        name=extracted.identity.name,
        email=extracted.identity.email,
        nationality=extracted.nationality,
    )
    db.flush()
    return data


def save_lead_data(db: Session, lead: Lead, data: LeadData) -> None:
    lead.data_json = data.to_json()
    db.flush()
