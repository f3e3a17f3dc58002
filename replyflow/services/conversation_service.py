"""Conversation threads and the append-only message log."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from replyflow.db.enums import (
    ConversationStatus,
    MessageDirection,
    MessageStatus,
    MessageType,
)
from replyflow.db.models import Conversation, Lead, Message
from replyflow.db.types import as_utc
from replyflow.services.idempotency import try_insert
from replyflow.utils.normalization import normalize_channel

logger = logging.getLogger(__name__)


def get_conversation(db: Session, contact_id: UUID, channel: str) -> Conversation | None:
    return (
        db.query(Conversation)
        .filter(
            Conversation.contact_id == contact_id,
            Conversation.channel == normalize_channel(channel),
        )
        .first()
    )


def get_or_create_conversation(db: Session, contact_id: UUID, channel: str) -> Conversation:
    """One thread per (contact, channel); the unique constraint settles races."""
    channel = normalize_channel(channel)
    conversation = get_conversation(db, contact_id, channel)
    if conversation:
        return conversation

    result = try_insert(db, Conversation(contact_id=contact_id, channel=channel))
    if result.inserted:
        logger.info("Created conversation %s channel=%s", result.row.id, channel)
        return result.row

    conversation = get_conversation(db, contact_id, channel)
    if conversation is None:
        raise RuntimeError("Conversation insert conflicted but no matching row was found")
    return conversation


def _later(current: datetime | None, candidate: datetime) -> datetime:
    current = as_utc(current)
    candidate = as_utc(candidate)
    return candidate if current is None or candidate > current else current


def touch_inbound(
    db: Session,
    conversation: Conversation,
    *,
    lead: Lead,
    received_at: datetime,
) -> Conversation:
    """Record an inbound event on the thread and (re)open it."""
    conversation.last_inbound_at = _later(conversation.last_inbound_at, received_at)
    conversation.last_message_at = _later(conversation.last_message_at, received_at)
    conversation.lead_id = lead.id
    conversation.status = ConversationStatus.OPEN.value
    db.flush()
    return conversation


def touch_outbound(db: Session, conversation: Conversation, *, sent_at: datetime) -> None:
    conversation.last_outbound_at = _later(conversation.last_outbound_at, sent_at)
    conversation.last_message_at = _later(conversation.last_message_at, sent_at)
    db.flush()


def find_message_by_provider_id(
    db: Session,
    channel: str,
    provider_message_id: str,
    *,
    direction: MessageDirection | None = None,
) -> Message | None:
    query = db.query(Message).filter(
        Message.channel == normalize_channel(channel),
        Message.provider_message_id == provider_message_id,
    )
    if direction is not None:
        query = query.filter(Message.direction == direction.value)
    return query.order_by(Message.created_at.asc()).first()


def record_inbound_message(
    db: Session,
    *,
    conversation: Conversation,
    lead: Lead,
    body: str | None,
    provider_message_id: str | None,
    received_at: datetime,
) -> Message:
    """
    Append an inbound message.

    A provider id already stored on this conversation returns the existing row.
    """
    result = try_insert(
        db,
        Message(
            conversation_id=conversation.id,
            lead_id=lead.id,
            contact_id=conversation.contact_id,
            direction=MessageDirection.INBOUND.value,
            channel=conversation.channel,
            message_type=MessageType.TEXT.value,
            status=MessageStatus.RECEIVED.value,
            body=body,
            provider_message_id=provider_message_id,
            created_at=as_utc(received_at),
        ),
    )
    if result.inserted:
        return result.row

    logger.warning(
        "Inbound message already stored conversation=%s; reusing existing row",
        conversation.id,
    )
    return (
        db.query(Message)
        .filter(
            Message.conversation_id == conversation.id,
            Message.provider_message_id == provider_message_id,
        )
        .one()
    )


def record_outbound_message(
    db: Session,
    *,
    conversation: Conversation,
    body: str,
    provider_message_id: str | None,
    message_type: MessageType,
    outbound_job_id: UUID | None,
    sent_at: datetime,
) -> Message:
    message = Message(
        conversation_id=conversation.id,
        lead_id=conversation.lead_id,
        contact_id=conversation.contact_id,
        direction=MessageDirection.OUTBOUND.value,
        channel=conversation.channel,
        message_type=message_type.value,
        status=MessageStatus.SENT.value,
        body=body,
        provider_message_id=provider_message_id,
        outbound_job_id=outbound_job_id,
        created_at=sent_at,
    )
    db.add(message)
    touch_outbound(db, conversation, sent_at=sent_at)
    return message


def get_recent_messages(db: Session, conversation_id: UUID, limit: int) -> list[Message]:
    """Most recent ``limit`` messages, oldest first."""
    rows = (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))
