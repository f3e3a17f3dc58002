"""Inbound message pipeline.

Runs dedup, entity resolution, extraction and task creation for one inbound
message inside a single transaction, then enqueues the auto-reply when one is
owed. Everything commits together: a crash part-way leaves no dedup record
behind, so a provider retry is processed in full.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from replyflow.core.config import settings
from replyflow.core.structured_logging import build_log_context
from replyflow.db.enums import MessageDirection
from replyflow.db.models import Contact, Lead
from replyflow.db.types import as_utc, utc_now
from replyflow.schemas.pipeline import InboundPayload, InboundResult
from replyflow.services import (
    contact_service,
    conversation_service,
    dedup_service,
    lead_service,
    outbound_job_service,
    task_service,
)
from replyflow.services.field_extractors import ExtractedFields, extract_fields
from replyflow.utils.business_hours import business_date
from replyflow.utils.normalization import normalize_channel

logger = logging.getLogger(__name__)

REJECT_MISSING_IDENTITY = "missing_identity"
REJECT_INVALID_PHONE = "invalid_phone"
REJECT_MISSING_CHANNEL = "missing_channel"

SKIP_CHANNEL_DISABLED = "auto_reply_disabled"
SKIP_EMPTY_TEXT = "empty_text"
SKIP_ASSIGNED_TO_HUMAN = "assigned_to_human"


def _duplicate_result(db: Session, channel: str, payload: InboundPayload) -> InboundResult:
    result = InboundResult(status="duplicate")
    if payload.provider_message_id:
        existing = conversation_service.find_message_by_provider_id(
            db, channel, payload.provider_message_id, direction=MessageDirection.INBOUND
        )
        if existing is not None:
            result.conversation_id = existing.conversation_id
            result.lead_id = existing.lead_id
            result.message_id = existing.id
    db.rollback()
    return result


def _extract_and_merge(
    db: Session, lead: Lead, contact: Contact, text: str | None, now: datetime
) -> ExtractedFields | None:
    """Extraction never fails the pipeline; errors roll back to the savepoint."""
    try:
        with db.begin_nested():
            extracted = extract_fields(text, business_date(now))
            lead_service.apply_extracted_fields(db, lead, contact, extracted, now)
    except Exception:
        logger.exception(
            "Field extraction failed; continuing without extracted data",
            extra=build_log_context(lead_id=lead.id),
        )
        return None
    if extracted.failed_extractors:
        logger.warning(
            "Extractors failed: %s",
            ", ".join(extracted.failed_extractors),
            extra=build_log_context(lead_id=lead.id),
        )
    return extracted


def submit_inbound_message(
    db: Session,
    channel: str,
    payload: InboundPayload,
    *,
    now: datetime | None = None,
) -> InboundResult:
    """
    Process one inbound message end to end.

    Validation failures return ``rejected`` with a reason and never raise;
    a replayed message returns ``duplicate`` with the original ids.
    """
    now = now or utc_now()
    received_at = as_utc(payload.received_at) or now

    channel = normalize_channel(channel or "")
    if not channel:
        return InboundResult(status="rejected", skip_reason=REJECT_MISSING_CHANNEL)

    try:
        identity = contact_service.build_identity(
            phone=payload.from_phone,
            email=payload.from_email,
            name=payload.from_name,
            wa_id=payload.wa_id,
        )
    except ValueError:
        logger.info("Rejected inbound with unparseable phone channel=%s", channel)
        return InboundResult(status="rejected", skip_reason=REJECT_INVALID_PHONE)
    if identity.is_empty():
        return InboundResult(status="rejected", skip_reason=REJECT_MISSING_IDENTITY)

    dedup = dedup_service.check_and_record(
        db,
        channel,
        payload.provider_message_id,
        sender=identity.sender_key,
        body=payload.text,
        received_at=received_at,
    )
    if dedup.is_duplicate:
        return _duplicate_result(db, channel, payload)

    contact = contact_service.resolve_contact(db, identity, source=channel)
    lead = lead_service.resolve_lead(
        db,
        contact,
        channel=channel,
        provider_message_id=payload.provider_message_id,
        received_at=received_at,
    )
    conversation = conversation_service.get_or_create_conversation(db, contact.id, channel)
    conversation_service.touch_inbound(db, conversation, lead=lead, received_at=received_at)

    message = conversation_service.record_inbound_message(
        db,
        conversation=conversation,
        lead=lead,
        body=payload.text,
        provider_message_id=payload.provider_message_id,
        received_at=received_at,
    )

    extracted = _extract_and_merge(db, lead, contact, payload.text, now)
    created = task_service.create_inbound_tasks(
        db,
        lead=lead,
        conversation=conversation,
        message=message,
        extracted=extracted,
        now=now,
    )

    job_id = None
    skip_reason = None
    if channel not in settings.auto_reply_channels_list:
        skip_reason = SKIP_CHANNEL_DISABLED
    elif not (payload.text or "").strip():
        skip_reason = SKIP_EMPTY_TEXT
    elif conversation.assigned_user_id is not None:
        skip_reason = SKIP_ASSIGNED_TO_HUMAN
    else:
        job_id = outbound_job_service.enqueue_reply(db, conversation.id, message.id, run_at=now)

    result = InboundResult(
        status="processed",
        conversation_id=conversation.id,
        lead_id=lead.id,
        message_id=message.id,
        tasks_created=created.keys,
        job_id=job_id,
        skip_reason=skip_reason,
    )
    db.commit()

    logger.info(
        "Processed inbound tasks=%s reply_enqueued=%s",
        len(created.keys),
        job_id is not None,
        extra=build_log_context(
            conversation_id=result.conversation_id, lead_id=result.lead_id, channel=channel
        ),
    )
    return result
