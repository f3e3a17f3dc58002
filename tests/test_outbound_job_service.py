"""Tests for the outbound job queue: state machine, claiming and leases."""

import uuid
from datetime import timedelta

import pytest

from replyflow.db.enums import OutboundJobKind, OutboundJobStatus
from replyflow.db.models import Contact, Conversation, OutboundJob
from replyflow.db.session import SessionLocal, engine
from replyflow.services import outbound_job_service
from replyflow.services.errors import InvalidJobTransition


def _job(db, conversation, *, status=OutboundJobStatus.PENDING, run_at, **kwargs) -> OutboundJob:
    job = OutboundJob(
        kind=OutboundJobKind.AUTO_REPLY.value,
        idempotency_key=f"test:{uuid.uuid4()}",
        conversation_id=conversation.id,
        question_key="auto_reply",
        status=status.value,
        run_at=run_at,
        **kwargs,
    )
    db.add(job)
    db.flush()
    return job


# =============================================================================
# State machine
# =============================================================================


@pytest.mark.parametrize(
    "from_status, to_status, allowed",
    [
        (OutboundJobStatus.PENDING, OutboundJobStatus.GENERATING, True),
        (OutboundJobStatus.PENDING, OutboundJobStatus.SENT, False),
        (OutboundJobStatus.GENERATING, OutboundJobStatus.READY_TO_SEND, True),
        (OutboundJobStatus.GENERATING, OutboundJobStatus.PENDING, True),
        (OutboundJobStatus.READY_TO_SEND, OutboundJobStatus.SENT, True),
        (OutboundJobStatus.READY_TO_SEND, OutboundJobStatus.GENERATING, False),
        (OutboundJobStatus.SENT, OutboundJobStatus.PENDING, False),
        (OutboundJobStatus.FAILED, OutboundJobStatus.PENDING, False),
    ],
)
def test_can_transition(from_status, to_status, allowed):
    assert outbound_job_service.can_transition(from_status.value, to_status) is allowed


def test_illegal_transition_raises():
    job = OutboundJob(status=OutboundJobStatus.SENT.value)

    with pytest.raises(InvalidJobTransition):
        outbound_job_service.transition_job(job, OutboundJobStatus.PENDING)
    assert job.status == OutboundJobStatus.SENT.value


def test_compute_backoff():
    assert outbound_job_service.compute_backoff(0) == timedelta(seconds=1)
    assert outbound_job_service.compute_backoff(3) == timedelta(seconds=8)


# =============================================================================
# Enqueue
# =============================================================================


def test_enqueue_reply_is_idempotent(db, conversation, inbound_message, now):
    first = outbound_job_service.enqueue_reply(db, conversation.id, inbound_message.id, run_at=now)
    second = outbound_job_service.enqueue_reply(db, conversation.id, inbound_message.id, run_at=now)

    assert first == second
    job = db.get(OutboundJob, first)
    assert job.status == OutboundJobStatus.PENDING.value
    assert job.trigger_provider_message_id == inbound_message.provider_message_id
    assert job.question_key == outbound_job_service.AUTO_REPLY_QUESTION_KEY


def test_enqueue_reply_rejects_foreign_message(db, conversation, inbound_message):
    with pytest.raises(ValueError):
        outbound_job_service.enqueue_reply(db, uuid.uuid4(), inbound_message.id)


def test_enqueue_template_is_idempotent(db, conversation, now):
    kwargs = dict(
        conversation_id=conversation.id,
        idempotency_key="renewal:item:T-30",
        template_name="visa_30",
        template_params=["Ahmed"],
        question_key="renewal_t-30",
        run_at=now,
    )

    assert outbound_job_service.enqueue_template(db, **kwargs) == outbound_job_service.enqueue_template(
        db, **kwargs
    )


# =============================================================================
# Claiming and leases
# =============================================================================


def test_claim_orders_ready_jobs_first_then_run_at(db, conversation, now):
    later = _job(db, conversation, run_at=now - timedelta(minutes=1))
    earlier = _job(db, conversation, run_at=now - timedelta(minutes=10))
    ready = _job(
        db, conversation, status=OutboundJobStatus.READY_TO_SEND, run_at=now, content="staged"
    )
    future = _job(db, conversation, run_at=now + timedelta(minutes=5))
    db.commit()
    expected = [ready.id, earlier.id, later.id]
    future_id = future.id

    claimed = outbound_job_service.claim_jobs(db, 10, now)

    assert [job.id for job in claimed] == expected
    assert future_id not in {job.id for job in claimed}


def test_claim_marks_lease_and_attempt(db, conversation, now):
    job = _job(db, conversation, run_at=now)
    db.commit()

    [claimed] = outbound_job_service.claim_jobs(db, 5, now)

    assert claimed.id == job.id
    assert claimed.status == OutboundJobStatus.GENERATING.value
    assert claimed.attempts == 1
    assert claimed.claimed_at == now
    assert outbound_job_service.claim_jobs(db, 5, now) == []


def test_claim_respects_max_jobs(db, conversation, now):
    for minutes in range(3):
        _job(db, conversation, run_at=now - timedelta(minutes=minutes))
    db.commit()

    assert len(outbound_job_service.claim_jobs(db, 2, now)) == 2


def test_recover_stale_jobs_keeps_staged_content(db, conversation, now):
    stale = _job(
        db,
        conversation,
        status=OutboundJobStatus.READY_TO_SEND,
        run_at=now - timedelta(minutes=30),
        claimed_at=now - timedelta(minutes=6),
        content="staged reply",
    )
    fresh = _job(
        db,
        conversation,
        status=OutboundJobStatus.GENERATING,
        run_at=now - timedelta(minutes=30),
        claimed_at=now - timedelta(minutes=1),
    )
    db.commit()

    recovered = outbound_job_service.recover_stale_jobs(db, now)

    assert recovered == 1
    db.refresh(stale)
    db.refresh(fresh)
    assert stale.status == OutboundJobStatus.PENDING.value
    assert stale.claimed_at is None
    assert stale.content == "staged reply"
    assert fresh.status == OutboundJobStatus.GENERATING.value


def test_stale_job_without_attempts_left_is_failed(db, conversation, now):
    job = _job(
        db,
        conversation,
        status=OutboundJobStatus.GENERATING,
        run_at=now - timedelta(minutes=30),
        claimed_at=now - timedelta(minutes=10),
        attempts=5,
        max_attempts=5,
    )
    db.commit()

    recovered = outbound_job_service.recover_stale_jobs(db, now)
    claimed = outbound_job_service.claim_jobs(db, 10, now)

    assert recovered == 0
    assert job.id not in [j.id for j in claimed]
    db.refresh(job)
    assert job.status == OutboundJobStatus.FAILED.value
    assert job.attempts == 5
    assert job.claimed_at is None
    assert job.completed_at == now
    assert "max attempts" in job.error


# =============================================================================
# Failures
# =============================================================================


def test_record_failure_retries_with_backoff_then_fails(db, conversation, now):
    job = _job(db, conversation, status=OutboundJobStatus.GENERATING, run_at=now, max_attempts=2)
    job.attempts = 1

    status = outbound_job_service.record_failure(job, "timeout", now, retryable=True)

    assert status == OutboundJobStatus.PENDING
    assert job.run_at == now + timedelta(seconds=2)
    assert job.error == "timeout"
    assert job.error_log["attempt"] == 1

    job.status = OutboundJobStatus.GENERATING.value
    job.attempts = 2
    status = outbound_job_service.record_failure(job, "timeout again", now, retryable=True)

    assert status == OutboundJobStatus.FAILED
    assert job.completed_at == now


def test_non_retryable_failure_is_terminal(db, conversation, now):
    job = _job(db, conversation, status=OutboundJobStatus.READY_TO_SEND, run_at=now)
    job.attempts = 1

    try:
        raise RuntimeError("bad recipient")
    except RuntimeError as exc:
        status = outbound_job_service.record_failure(
            job, "bad recipient", now, retryable=False, exc=exc
        )

    assert status == OutboundJobStatus.FAILED
    assert job.error_log["type"] == "RuntimeError"
    assert "bad recipient" in job.error_log["stack"]


def test_error_is_truncated(db, conversation, now):
    job = _job(db, conversation, status=OutboundJobStatus.GENERATING, run_at=now)

    outbound_job_service.mark_failed(job, "x" * 2000, now)

    assert len(job.error) == 500


@pytest.mark.skipif(engine.dialect.name != "postgresql", reason="SKIP LOCKED requires PostgreSQL")
def test_concurrent_claims_skip_locked_rows(now):
    """Two workers never claim the same row."""
    with SessionLocal() as holder, SessionLocal() as worker:
        contact = Contact(wa_id=f"skip-locked-{uuid.uuid4().hex[:8]}")
        holder.add(contact)
        holder.flush()
        conversation = Conversation(contact_id=contact.id, channel="whatsapp")
        holder.add(conversation)
        holder.flush()
        first = _job(holder, conversation, run_at=now - timedelta(minutes=2))
        second = _job(holder, conversation, run_at=now - timedelta(minutes=1))
        holder.commit()
        first_id, second_id = first.id, second.id

        try:
            holder.query(OutboundJob).filter(OutboundJob.id == first_id).with_for_update().one()

            claimed = outbound_job_service.claim_jobs(worker, 10, now)

            assert [job.id for job in claimed] == [second_id]
        finally:
            holder.rollback()
            holder.query(OutboundJob).filter(OutboundJob.conversation_id == conversation.id).delete()
            holder.delete(conversation)
            holder.delete(contact)
            holder.commit()
