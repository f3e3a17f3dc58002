"""At-most-once outbound sends.

A ledger row keyed by (conversation, triggering inbound, question key) is
committed before the provider is called. A second worker, or a retry after a
crash, finds the row and skips the send instead of repeating it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Union
from uuid import UUID

import httpx
from sqlalchemy import update
from sqlalchemy.orm import Session

from replyflow.core.config import settings
from replyflow.core.constants import JOB_ERROR_MAX_LENGTH
from replyflow.core.structured_logging import build_log_context
from replyflow.db.enums import OutboundJobKind, OutboundLogStatus
from replyflow.db.models import Conversation, OutboundJob, OutboundMessageLog
from replyflow.db.types import as_utc
from replyflow.services.channel_provider import ChannelProvider, SendReceipt
from replyflow.services.errors import (
    ChannelPermanentError,
    ChannelTransientError,
    RequiresTemplateError,
    SessionWindowClosedError,
)
from replyflow.services.idempotency import hash_key, try_insert

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Sent:
    provider_message_id: str


@dataclass(frozen=True)
class Retryable:
    reason: str


@dataclass(frozen=True)
class Fatal:
    reason: str


@dataclass(frozen=True)
class Duplicate:
    """Another attempt already owns (or completed) this send."""

    existing_status: str


SendResult = Union[Sent, Retryable, Fatal, Duplicate]


def send_dedupe_key(conversation_id: UUID, trigger_id: str | None, question_key: str) -> str:
    return hash_key(f"conv:{conversation_id}", f"trigger:{trigger_id or 'none'}", f"q:{question_key}")


def check_session_window(conversation: Conversation, now: datetime) -> None:
    """Raise RequiresTemplateError when free-form text is no longer allowed."""
    last_inbound = as_utc(conversation.last_inbound_at)
    if last_inbound is None:
        raise RequiresTemplateError("Conversation has no inbound message")
    if now - last_inbound > timedelta(hours=settings.SESSION_WINDOW_HOURS):
        raise RequiresTemplateError(
            f"Last inbound {last_inbound.isoformat()} is outside the "
            f"{settings.SESSION_WINDOW_HOURS}h session window"
        )


def _claim_ledger_row(
    db: Session, job: OutboundJob, key: str
) -> OutboundMessageLog | Duplicate:
    result = try_insert(
        db,
        OutboundMessageLog(
            dedupe_key=key,
            conversation_id=job.conversation_id,
            outbound_job_id=job.id,
            trigger_provider_message_id=job.trigger_provider_message_id,
            question_key=job.question_key,
            status=OutboundLogStatus.PENDING.value,
        ),
    )
    if result.inserted:
        return result.row

    existing = db.query(OutboundMessageLog).filter(OutboundMessageLog.dedupe_key == key).one()
    if existing.status != OutboundLogStatus.FAILED.value:
        return Duplicate(existing_status=existing.status)

    # Re-arm a failed attempt; only one worker wins the conditional update.
    rearmed = db.execute(
        update(OutboundMessageLog)
        .where(
            OutboundMessageLog.id == existing.id,
            OutboundMessageLog.status == OutboundLogStatus.FAILED.value,
        )
        .values(
            status=OutboundLogStatus.PENDING.value,
            outbound_job_id=job.id,
            error=None,
        )
        .execution_options(synchronize_session=False)
    )
    if rearmed.rowcount != 1:
        db.refresh(existing)
        return Duplicate(existing_status=existing.status)
    db.refresh(existing)
    return existing


def _fail_ledger_row(log: OutboundMessageLog, error: str) -> None:
    log.status = OutboundLogStatus.FAILED.value
    log.error = error[:JOB_ERROR_MAX_LENGTH]


async def _call_provider(
    provider: ChannelProvider, job: OutboundJob, recipient: str, content: str
) -> SendReceipt:
    if job.kind == OutboundJobKind.TEMPLATE.value:
        return await provider.send_template(
            recipient, job.template_name, list(job.template_params or [])
        )
    return await provider.send_text(recipient, content)


async def send_with_idempotency(
    db: Session,
    *,
    job: OutboundJob,
    recipient: str,
    content: str,
    provider: ChannelProvider,
    now: datetime,
) -> SendResult:
    """
    Send the job's message at most once.

    Returns Sent, Retryable, Fatal or Duplicate; provider errors never escape
    except unexpected ones, which are re-raised after the ledger row is
    released for a later retry.
    """
    key = send_dedupe_key(job.conversation_id, job.trigger_provider_message_id, job.question_key)
    claimed = _claim_ledger_row(db, job, key)
    if isinstance(claimed, Duplicate):
        logger.warning(
            "Send already recorded with status=%s; skipping",
            claimed.existing_status,
            extra=build_log_context(job_id=job.id, conversation_id=job.conversation_id),
        )
        return claimed

    log = claimed
    db.commit()

    try:
        receipt = await _call_provider(provider, job, recipient, content)
    except SessionWindowClosedError as exc:
        _fail_ledger_row(log, str(exc))
        return Fatal(reason=RequiresTemplateError.reason)
    except (ChannelTransientError, httpx.HTTPError) as exc:
        _fail_ledger_row(log, str(exc))
        return Retryable(reason=str(exc) or type(exc).__name__)
    except ChannelPermanentError as exc:
        _fail_ledger_row(log, str(exc))
        return Fatal(reason=str(exc))
    except Exception as exc:
        _fail_ledger_row(log, f"{type(exc).__name__}: {exc}")
        db.commit()
        raise

    log.status = OutboundLogStatus.SENT.value
    log.provider_message_id = receipt.provider_message_id
    log.sent_at = now
    return Sent(provider_message_id=receipt.provider_message_id)
