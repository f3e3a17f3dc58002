"""Outbound job queue.

Jobs are rows in the database; ownership is the (status, claimed_at) pair.
Claiming uses ``FOR UPDATE SKIP LOCKED`` inside a short transaction, after
which ``claimed_at`` acts as a soft lease. A lease older than
``JOB_LEASE_MINUTES`` is presumed abandoned and recycled to PENDING.

State machine::

    PENDING -> GENERATING -> READY_TO_SEND -> SENT
                   |               |
                   +-> FAILED <----+
                   +-> PENDING (retry / stale) <-+

SENT and FAILED are terminal.
"""

from __future__ import annotations

import logging
import traceback
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import case, or_, update
from sqlalchemy.orm import Session

from replyflow.core.config import settings
from replyflow.core.constants import JOB_ERROR_MAX_LENGTH, JOB_STACK_MAX_LENGTH
from replyflow.core.structured_logging import build_log_context
from replyflow.db.enums import (
    CLAIMABLE_JOB_STATUSES,
    LEASED_JOB_STATUSES,
    OutboundJobKind,
    OutboundJobStatus,
)
from replyflow.db.models import Conversation, Message, OutboundJob
from replyflow.db.types import utc_now
from replyflow.services.errors import InvalidJobTransition
from replyflow.services.idempotency import hash_key, try_insert

logger = logging.getLogger(__name__)

AUTO_REPLY_QUESTION_KEY = "auto_reply"
STALE_LEASE_EXHAUSTED_ERROR = "lease_expired: abandoned after max attempts"

ALLOWED_TRANSITIONS: dict[OutboundJobStatus, frozenset[OutboundJobStatus]] = {
    OutboundJobStatus.PENDING: frozenset({OutboundJobStatus.GENERATING}),
    OutboundJobStatus.GENERATING: frozenset(
        {
            OutboundJobStatus.READY_TO_SEND,
            OutboundJobStatus.PENDING,
            OutboundJobStatus.FAILED,
            # Human takeover / duplicate send skip
            OutboundJobStatus.SENT,
        }
    ),
    OutboundJobStatus.READY_TO_SEND: frozenset(
        {OutboundJobStatus.SENT, OutboundJobStatus.PENDING, OutboundJobStatus.FAILED}
    ),
    OutboundJobStatus.SENT: frozenset(),
    OutboundJobStatus.FAILED: frozenset(),
}


def can_transition(from_status: str, to_status: OutboundJobStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS[OutboundJobStatus(from_status)]


def transition_job(job: OutboundJob, to_status: OutboundJobStatus) -> None:
    """Move ``job`` to ``to_status`` or raise InvalidJobTransition."""
    if not can_transition(job.status, to_status):
        raise InvalidJobTransition(job.id, job.status, to_status.value)
    job.status = to_status.value


def compute_backoff(attempts: int) -> timedelta:
    """Retry delay: 2^attempts seconds."""
    return timedelta(seconds=2 ** max(attempts, 0))


def _lease_cutoff(now: datetime) -> datetime:
    return now - timedelta(minutes=settings.JOB_LEASE_MINUTES)


# =============================================================================
# Enqueue
# =============================================================================


def reply_idempotency_key(conversation: Conversation, trigger_id: str | None) -> str:
    return hash_key(
        f"conv:{conversation.id}",
        f"inbound:{trigger_id or 'none'}",
        f"channel:{conversation.channel}",
        f"purpose:{AUTO_REPLY_QUESTION_KEY}",
    )


def get_job_by_key(db: Session, idempotency_key: str) -> OutboundJob | None:
    return db.query(OutboundJob).filter(OutboundJob.idempotency_key == idempotency_key).first()


def enqueue_reply(
    db: Session,
    conversation_id: UUID,
    trigger_message_id: UUID,
    *,
    run_at: datetime | None = None,
) -> UUID:
    """
    Enqueue an auto-reply for an inbound message.

    Idempotent per (conversation, triggering inbound, channel): a second call
    returns the existing job id.
    """
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise ValueError(f"Conversation {conversation_id} not found")
    trigger = db.get(Message, trigger_message_id)
    if trigger is None or trigger.conversation_id != conversation.id:
        raise ValueError(f"Message {trigger_message_id} not found on conversation")

    trigger_id = trigger.provider_message_id or str(trigger.id)
    key = reply_idempotency_key(conversation, trigger_id)
    result = try_insert(
        db,
        OutboundJob(
            kind=OutboundJobKind.AUTO_REPLY.value,
            idempotency_key=key,
            conversation_id=conversation.id,
            trigger_message_id=trigger.id,
            trigger_provider_message_id=trigger_id,
            question_key=AUTO_REPLY_QUESTION_KEY,
            run_at=run_at or utc_now(),
        ),
    )
    if result.inserted:
        logger.info(
            "Enqueued auto-reply job %s",
            result.row.id,
            extra=build_log_context(job_id=result.row.id, conversation_id=conversation.id),
        )
        return result.row.id

    existing = get_job_by_key(db, key)
    return existing.id


def enqueue_template(
    db: Session,
    *,
    conversation_id: UUID,
    idempotency_key: str,
    template_name: str,
    template_params: list[Any],
    question_key: str,
    run_at: datetime | None = None,
) -> UUID:
    """Enqueue a template send (valid outside the session window)."""
    result = try_insert(
        db,
        OutboundJob(
            kind=OutboundJobKind.TEMPLATE.value,
            idempotency_key=idempotency_key,
            conversation_id=conversation_id,
            trigger_provider_message_id=idempotency_key,
            question_key=question_key,
            template_name=template_name,
            template_params=template_params,
            run_at=run_at or utc_now(),
        ),
    )
    if result.inserted:
        logger.info("Enqueued template job %s template=%s", result.row.id, template_name)
        return result.row.id
    return get_job_by_key(db, idempotency_key).id


# =============================================================================
# Lease recovery and claiming
# =============================================================================


def recover_stale_jobs(db: Session, now: datetime | None = None) -> int:
    """
    Reset jobs whose lease expired mid-flight back to PENDING.

    Jobs that already used every attempt are failed instead. Staged content
    is kept so a recovered READY_TO_SEND job does not call the generator
    again.
    """
    now = now or utc_now()
    stale = (
        OutboundJob.status.in_([s.value for s in LEASED_JOB_STATUSES]),
        OutboundJob.claimed_at.is_not(None),
        OutboundJob.claimed_at < _lease_cutoff(now),
    )
    exhausted = db.execute(
        update(OutboundJob)
        .where(*stale, OutboundJob.attempts >= OutboundJob.max_attempts)
        .values(
            status=OutboundJobStatus.FAILED.value,
            completed_at=now,
            claimed_at=None,
            error=STALE_LEASE_EXHAUSTED_ERROR,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    ).rowcount or 0
    if exhausted:
        logger.error("Failed %s stale outbound jobs with no attempts left", exhausted)

    result = db.execute(
        update(OutboundJob)
        .where(*stale, OutboundJob.attempts < OutboundJob.max_attempts)
        .values(status=OutboundJobStatus.PENDING.value, claimed_at=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    recovered = result.rowcount or 0
    if recovered:
        logger.warning("Recovered %s stale outbound jobs", recovered)
    db.commit()
    return recovered


def claim_jobs(db: Session, max_jobs: int, now: datetime | None = None) -> list[OutboundJob]:
    """
    Claim up to ``max_jobs`` eligible jobs.

    READY_TO_SEND jobs come first (content already generated), then earliest
    ``run_at``. Rows locked by another worker are skipped.
    """
    now = now or utc_now()
    priority = case(
        (OutboundJob.status == OutboundJobStatus.READY_TO_SEND.value, 0),
        else_=1,
    )
    jobs = (
        db.query(OutboundJob)
        .filter(
            OutboundJob.status.in_([s.value for s in CLAIMABLE_JOB_STATUSES]),
            OutboundJob.run_at <= now,
            OutboundJob.attempts < OutboundJob.max_attempts,
            or_(OutboundJob.claimed_at.is_(None), OutboundJob.claimed_at < _lease_cutoff(now)),
        )
        .order_by(priority, OutboundJob.run_at.asc())
        .limit(max_jobs)
        .with_for_update(skip_locked=True)
        .all()
    )

    for job in jobs:
        job.claimed_at = now
        job.attempts += 1
        job.last_attempt_at = now
        if job.status == OutboundJobStatus.PENDING.value:
            transition_job(job, OutboundJobStatus.GENERATING)

    db.commit()
    if jobs:
        logger.info("Claimed %s outbound jobs", len(jobs))
    return jobs


# =============================================================================
# Outcomes
# =============================================================================


def mark_ready(job: OutboundJob, content: str) -> None:
    transition_job(job, OutboundJobStatus.READY_TO_SEND)
    job.content = content


def mark_sent(job: OutboundJob, now: datetime, *, skip_reason: str | None = None) -> None:
    transition_job(job, OutboundJobStatus.SENT)
    job.completed_at = now
    job.claimed_at = None
    job.skip_reason = skip_reason
    job.error = None


def _error_log(job: OutboundJob, error: str, exc: BaseException | None, now: datetime) -> dict:
    stack = None
    if exc is not None:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        stack = stack[:JOB_STACK_MAX_LENGTH]
    return {
        "type": type(exc).__name__ if exc is not None else "Error",
        "message": error[:JOB_ERROR_MAX_LENGTH],
        "stack": stack,
        "attempt": job.attempts,
        "at": now.isoformat(),
    }


def schedule_retry(
    job: OutboundJob, error: str, now: datetime, exc: BaseException | None = None
) -> None:
    transition_job(job, OutboundJobStatus.PENDING)
    job.run_at = now + compute_backoff(job.attempts)
    job.claimed_at = None
    job.error = error[:JOB_ERROR_MAX_LENGTH]
    job.error_log = _error_log(job, error, exc, now)


def mark_failed(
    job: OutboundJob, error: str, now: datetime, exc: BaseException | None = None
) -> None:
    transition_job(job, OutboundJobStatus.FAILED)
    job.completed_at = now
    job.claimed_at = None
    job.error = error[:JOB_ERROR_MAX_LENGTH]
    job.error_log = _error_log(job, error, exc, now)


def record_failure(
    job: OutboundJob,
    error: str,
    now: datetime,
    *,
    retryable: bool,
    exc: BaseException | None = None,
) -> OutboundJobStatus:
    """Retry with backoff while attempts remain, otherwise fail terminally."""
    if retryable and job.attempts < job.max_attempts:
        schedule_retry(job, error, now, exc)
        logger.warning(
            "Outbound job %s attempt %s failed; retrying at %s",
            job.id,
            job.attempts,
            job.run_at.isoformat(),
            extra=build_log_context(job_id=job.id, conversation_id=job.conversation_id),
        )
        return OutboundJobStatus.PENDING

    mark_failed(job, error, now, exc)
    logger.error(
        "Outbound job %s failed after %s attempts: %s",
        job.id,
        job.attempts,
        job.error,
        extra=build_log_context(job_id=job.id, conversation_id=job.conversation_id),
    )
    return OutboundJobStatus.FAILED
