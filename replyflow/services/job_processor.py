"""Outbound job processor.

One pass recovers stale leases, claims a batch and drives each job to a
resting state: SENT, FAILED, or back to PENDING with a backoff. Generation
and network sends happen after the claim transaction has committed.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from replyflow.core.structured_logging import build_log_context
from replyflow.db.enums import (
    MessageType,
    OutboundJobKind,
    OutboundJobStatus,
    TaskType,
)
from replyflow.db.models import Contact, Conversation, Lead, Message, OutboundJob
from replyflow.db.types import utc_now
from replyflow.schemas.jobs import QueueRunResult
from replyflow.services import conversation_service, outbound_job_service, task_service
from replyflow.services.channel_provider import ChannelProvider, get_channel_provider
from replyflow.services.errors import RequiresTemplateError
from replyflow.services.reply_service import ReplyContext, ReplyGenerator
from replyflow.services.send_service import (
    Duplicate,
    Retryable,
    Sent,
    check_session_window,
    send_with_idempotency,
)

logger = logging.getLogger(__name__)

SKIP_ASSIGNED_TO_HUMAN = "assigned_to_human"
SKIP_DUPLICATE_SEND = "duplicate_send"

PROCESSED = "processed"
FAILED = "failed"
RETRIED = "retried"
SKIPPED = "skipped"


def _template_content(job: OutboundJob) -> str:
    params = ", ".join(str(p) for p in job.template_params or [])
    return f"[template:{job.template_name}] {params}".strip()


def _recipient(db: Session, conversation: Conversation) -> str | None:
    contact = db.get(Contact, conversation.contact_id)
    if contact is None:
        return None
    return contact.phone_normalized or contact.wa_id


def _create_template_followup(
    db: Session, job: OutboundJob, conversation: Conversation, now: datetime
) -> None:
    task_service.create_task_if_absent(
        db,
        task_service.template_followup_task_key(
            conversation.id, job.trigger_provider_message_id or str(job.id)
        ),
        title="Session window closed: send a template message",
        description="The automated reply could not be sent as free-form text.",
        task_type=TaskType.TEMPLATE_FOLLOWUP,
        due_at=now,
        lead_id=conversation.lead_id,
        conversation_id=conversation.id,
    )


def _complete_reply_task(db: Session, job: OutboundJob, trigger: Message | None, now: datetime) -> None:
    if job.kind != OutboundJobKind.AUTO_REPLY.value or trigger is None or trigger.lead_id is None:
        return
    task_service.complete_task(
        db,
        task_service.reply_task_key(trigger.lead_id, task_service.message_trigger_id(trigger)),
        now=now,
    )


async def _stage_content(
    db: Session,
    job: OutboundJob,
    conversation: Conversation,
    trigger: Message | None,
    generator: ReplyGenerator,
    now: datetime,
) -> None:
    """Move a GENERATING job to READY_TO_SEND, calling the generator at most once."""
    if job.kind == OutboundJobKind.TEMPLATE.value:
        content = _template_content(job)
    elif job.content:
        content = job.content
    else:
        lead = None
        if trigger is not None and trigger.lead_id is not None:
            lead = db.get(Lead, trigger.lead_id)
        elif conversation.lead_id is not None:
            lead = db.get(Lead, conversation.lead_id)
        content = await generator.generate(
            ReplyContext(
                db=db,
                job=job,
                conversation=conversation,
                lead=lead,
                trigger_message=trigger,
                now=now,
            )
        )
    outbound_job_service.mark_ready(job, content)
    db.commit()


async def _run_job(
    db: Session,
    job: OutboundJob,
    generator: ReplyGenerator,
    channel_provider: ChannelProvider | None,
    now: datetime,
) -> str:
    conversation = db.get(Conversation, job.conversation_id)
    log_context = build_log_context(job_id=job.id, conversation_id=job.conversation_id)

    if conversation.assigned_user_id is not None:
        outbound_job_service.mark_sent(job, now, skip_reason=SKIP_ASSIGNED_TO_HUMAN)
        db.commit()
        logger.info("Conversation assigned to a human; job skipped", extra=log_context)
        return SKIPPED

    if job.kind == OutboundJobKind.AUTO_REPLY.value:
        try:
            check_session_window(conversation, now)
        except RequiresTemplateError as exc:
            outbound_job_service.mark_failed(job, f"{exc.reason}: {exc}", now, exc)
            job.skip_reason = exc.reason
            _create_template_followup(db, job, conversation, now)
            db.commit()
            logger.warning("Session window closed; template required", extra=log_context)
            return FAILED

    trigger = db.get(Message, job.trigger_message_id) if job.trigger_message_id else None

    if job.status == OutboundJobStatus.GENERATING.value:
        await _stage_content(db, job, conversation, trigger, generator, now)

    recipient = _recipient(db, conversation)
    if not recipient:
        outbound_job_service.mark_failed(job, "no_recipient: contact has no phone or wa_id", now)
        db.commit()
        return FAILED

    provider = channel_provider or get_channel_provider(conversation.channel)
    content = job.content
    result = await send_with_idempotency(
        db, job=job, recipient=recipient, content=content, provider=provider, now=now
    )

    if isinstance(result, Duplicate):
        outbound_job_service.mark_sent(job, now, skip_reason=SKIP_DUPLICATE_SEND)
        db.commit()
        return SKIPPED

    if isinstance(result, Sent):
        message = conversation_service.record_outbound_message(
            db,
            conversation=conversation,
            body=content,
            provider_message_id=result.provider_message_id,
            message_type=(
                MessageType.TEMPLATE
                if job.kind == OutboundJobKind.TEMPLATE.value
                else MessageType.TEXT
            ),
            outbound_job_id=job.id,
            sent_at=now,
        )
        message_id = message.id
        outbound_job_service.mark_sent(job, now)
        _complete_reply_task(db, job, trigger, now)
        db.commit()

        if db.query(Message.id).filter(Message.id == message_id).first() is None:
            logger.warning("Outbound message %s missing after commit", message_id, extra=log_context)
        logger.info("Outbound job sent", extra=log_context)
        return PROCESSED

    if isinstance(result, Retryable):
        status = outbound_job_service.record_failure(job, result.reason, now, retryable=True)
        db.commit()
        return RETRIED if status == OutboundJobStatus.PENDING else FAILED

    outbound_job_service.record_failure(job, result.reason, now, retryable=False)
    if result.reason == RequiresTemplateError.reason:
        job.skip_reason = result.reason
        _create_template_followup(db, job, conversation, now)
    db.commit()
    return FAILED


async def process_job(
    db: Session,
    job: OutboundJob,
    *,
    generator: ReplyGenerator,
    channel_provider: ChannelProvider | None = None,
    now: datetime,
) -> str:
    """Process one claimed job; unexpected errors become a retry on the job row."""
    job_id = job.id
    try:
        return await _run_job(db, job, generator, channel_provider, now)
    except Exception as exc:
        db.rollback()
        logger.exception(
            "Unexpected error processing outbound job %s",
            job_id,
            extra=build_log_context(job_id=job_id),
        )
        job = db.get(OutboundJob, job_id)
        if job.status == OutboundJobStatus.SENT.value:
            return PROCESSED
        if job.status == OutboundJobStatus.FAILED.value:
            return FAILED
        status = outbound_job_service.record_failure(
            job, f"{type(exc).__name__}: {exc}", now, retryable=True, exc=exc
        )
        db.commit()
        return RETRIED if status == OutboundJobStatus.PENDING else FAILED


async def process_queue_once(
    db: Session,
    max_jobs: int,
    *,
    generator: ReplyGenerator | None = None,
    channel_provider: ChannelProvider | None = None,
    now: datetime | None = None,
) -> QueueRunResult:
    """Recover stale leases, claim up to ``max_jobs`` and process them."""
    now = now or utc_now()
    outbound_job_service.recover_stale_jobs(db, now)
    jobs = outbound_job_service.claim_jobs(db, max_jobs, now)

    result = QueueRunResult()
    if not jobs:
        return result

    generator = generator or ReplyGenerator()
    buckets = {
        PROCESSED: result.processed,
        FAILED: result.failed,
        RETRIED: result.retried,
        SKIPPED: result.skipped,
    }
    for job in jobs:
        job_id = job.id
        outcome = await process_job(
            db, job, generator=generator, channel_provider=channel_provider, now=now
        )
        buckets[outcome].append(job_id)

    logger.info(
        "Queue pass processed=%s retried=%s failed=%s skipped=%s",
        len(result.processed),
        len(result.retried),
        len(result.failed),
        len(result.skipped),
    )
    return result
