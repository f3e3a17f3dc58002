"""Renewal reminder engine.

Sweeps tracked expiry items, places each one in a stage band and runs it
through the guardrails. A dry run only reports; a live run records an
AutomationRunLog per (item, stage), enqueues a template job and opens an
outreach task, all keyed by the same action key.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from replyflow.core.config import settings
from replyflow.db.enums import (
    ACTIVE_RENEWAL_STATUSES,
    AutomationRunStatus,
    Channel,
    ExpiryItemType,
    RenewalSkipReason,
    RenewalStatus,
    TaskType,
)
from replyflow.db.models import AutomationRunLog, Contact, ExpiryItem
from replyflow.db.types import as_utc, utc_now
from replyflow.schemas.renewals import RenewalCandidate
from replyflow.services import conversation_service, outbound_job_service, task_service
from replyflow.services.idempotency import try_insert
from replyflow.utils.business_hours import business_date, is_business_time

logger = logging.getLogger(__name__)

RENEWAL_RULE = "renewal_reminder"
RENEWAL_ACTION = "send_template"
STAGE_EXPIRED = "EXPIRED"

TEMPLATE_VARIABLES = ("name", "document", "expiry_date", "days_remaining")

# Template names are "<prefix>_<threshold>" or "<prefix>_expired"
DEFAULT_TEMPLATE_PREFIXES = {
    ExpiryItemType.VISA_EXPIRY.value: "visa",
    ExpiryItemType.EMIRATES_ID_EXPIRY.value: "eid",
    ExpiryItemType.PASSPORT_EXPIRY.value: "passport",
    ExpiryItemType.TRADE_LICENSE_EXPIRY.value: "tl",
    ExpiryItemType.ESTABLISHMENT_CARD_EXPIRY.value: "ec",
    ExpiryItemType.INSURANCE_EXPIRY.value: "ins",
}

DOCUMENT_LABELS = {
    ExpiryItemType.VISA_EXPIRY.value: "UAE residence visa",
    ExpiryItemType.EMIRATES_ID_EXPIRY.value: "Emirates ID",
    ExpiryItemType.PASSPORT_EXPIRY.value: "passport",
    ExpiryItemType.TRADE_LICENSE_EXPIRY.value: "trade license",
    ExpiryItemType.ESTABLISHMENT_CARD_EXPIRY.value: "establishment card",
    ExpiryItemType.INSURANCE_EXPIRY.value: "insurance",
    ExpiryItemType.DOCUMENT_EXPIRY.value: "document",
}


def stage_label(threshold: int) -> str:
    return f"T-{threshold}"


def compute_stage(days_until_expiry: int, thresholds: list[int] | None = None) -> str | None:
    """
    Map days-until-expiry onto a stage band.

    The stage is the smallest threshold that is still >= the day count, so
    with [90, 60, 30, 7] an item 45 days out is in T-60 and one 3 days out is
    in T-7. Negative counts are EXPIRED; counts beyond the largest threshold
    have no stage.
    """
    if days_until_expiry < 0:
        return STAGE_EXPIRED
    thresholds = thresholds if thresholds is not None else settings.RENEWAL_STAGE_THRESHOLDS
    covering = [t for t in thresholds if t >= days_until_expiry]
    return stage_label(min(covering)) if covering else None


def item_thresholds(item: ExpiryItem) -> list[int]:
    """Per-item reminder cadence, falling back to the configured thresholds."""
    days = sorted({d for d in item.reminder_schedule_days or [] if isinstance(d, int) and d > 0})
    return days or list(settings.RENEWAL_STAGE_THRESHOLDS)


def get_template_name(item_type: str, stage: str) -> str | None:
    override = settings.RENEWAL_TEMPLATES.get(item_type, {}).get(stage)
    if override:
        return override
    prefix = DEFAULT_TEMPLATE_PREFIXES.get(item_type)
    if prefix is None:
        return None
    if stage == STAGE_EXPIRED:
        return f"{prefix}_expired"
    return f"{prefix}_{stage.removeprefix('T-')}"


def build_template_variables(
    item: ExpiryItem, contact: Contact | None, today: date
) -> tuple[dict[str, str], list[str]]:
    """Return (variables, missing variable names)."""
    variables: dict[str, str] = {}
    if contact is not None and contact.full_name and contact.full_name.strip():
        variables["name"] = contact.full_name.strip().split()[0]
    document = DOCUMENT_LABELS.get(item.item_type)
    if document:
        variables["document"] = document
    variables["expiry_date"] = item.expiry_date.strftime("%d/%m/%Y")
    variables["days_remaining"] = str(max((item.expiry_date - today).days, 0))
    missing = [name for name in TEMPLATE_VARIABLES if name not in variables]
    return variables, missing


def renewal_action_key(item: ExpiryItem, stage: str) -> str:
    return task_service.renewal_task_key(item.id, stage)


def _evaluate(
    db: Session, item: ExpiryItem, *, today: date, now: datetime, in_business_hours: bool
) -> RenewalCandidate:
    days = (item.expiry_date - today).days
    candidate = RenewalCandidate(
        expiry_item_id=item.id,
        contact_id=item.contact_id,
        lead_id=item.lead_id,
        item_type=item.item_type,
        expiry_date=item.expiry_date,
        days_until_expiry=days,
    )

    def skip(reason: RenewalSkipReason) -> RenewalCandidate:
        candidate.skip_reason = reason.value
        return candidate

    stage = compute_stage(days, item_thresholds(item))
    if stage is None:
        return skip(RenewalSkipReason.NO_STAGE)
    candidate.stage = stage

    handled = (
        db.query(AutomationRunLog.id)
        .filter(AutomationRunLog.action_key == renewal_action_key(item, stage))
        .first()
    )
    if handled is not None:
        return skip(RenewalSkipReason.ALREADY_HANDLED)

    last_reminder_at = as_utc(item.last_reminder_at)
    if last_reminder_at and now - last_reminder_at < timedelta(
        hours=settings.RENEWAL_MIN_INTERVAL_HOURS
    ):
        return skip(RenewalSkipReason.RATE_LIMITED)

    candidate.template_name = get_template_name(item.item_type, stage)
    if not candidate.template_name:
        return skip(RenewalSkipReason.MISSING_TEMPLATE)

    contact = db.get(Contact, item.contact_id)
    candidate.variables, missing = build_template_variables(item, contact, today)
    if missing:
        return skip(RenewalSkipReason.MISSING_VARIABLES)

    if contact is None or not (contact.phone_normalized or contact.wa_id):
        return skip(RenewalSkipReason.NO_PHONE)

    if not in_business_hours:
        return skip(RenewalSkipReason.OUTSIDE_BUSINESS_HOURS)

    candidate.will_send = True
    return candidate


def _execute(
    db: Session, item: ExpiryItem, candidate: RenewalCandidate, *, today: date, now: datetime
) -> None:
    key = renewal_action_key(item, candidate.stage)
    run_log = try_insert(
        db,
        AutomationRunLog(
            action_key=key,
            rule=RENEWAL_RULE,
            action=RENEWAL_ACTION,
            run_date=today,
            status=AutomationRunStatus.SUCCESS.value,
            lead_id=item.lead_id,
            contact_id=item.contact_id,
            details={
                "stage": candidate.stage,
                "template": candidate.template_name,
                "item_type": item.item_type,
                "days_until_expiry": candidate.days_until_expiry,
            },
        ),
    )
    if run_log.already_exists:
        candidate.will_send = False
        candidate.skip_reason = RenewalSkipReason.ALREADY_HANDLED.value
        return

    conversation = conversation_service.get_or_create_conversation(
        db, item.contact_id, Channel.WHATSAPP.value
    )
    candidate.job_id = outbound_job_service.enqueue_template(
        db,
        conversation_id=conversation.id,
        idempotency_key=key,
        template_name=candidate.template_name,
        template_params=[candidate.variables[name] for name in TEMPLATE_VARIABLES],
        question_key=f"renewal_{candidate.stage.lower()}",
        run_at=now,
    )

    document = candidate.variables.get("document", item.item_type)
    task_service.create_task_if_absent(
        db,
        key,
        title=f"Renewal outreach: {document} expires {candidate.variables['expiry_date']}",
        description=f"Reminder {candidate.stage} sent with template {candidate.template_name}.",
        task_type=TaskType.RENEWAL_OUTREACH,
        due_at=now,
        lead_id=item.lead_id,
        conversation_id=conversation.id,
        expiry_item_id=item.id,
    )

    item.last_reminder_at = now
    item.last_reminder_stage = candidate.stage
    if item.renewal_status == RenewalStatus.PENDING.value:
        item.renewal_status = RenewalStatus.IN_PROGRESS.value
    db.flush()


def sweep_renewals(
    db: Session,
    dry_run: bool = True,
    window_days: int = 90,
    *,
    now: datetime | None = None,
) -> list[RenewalCandidate]:
    """
    Evaluate every active expiry item due within ``window_days``.

    Dry runs write nothing. Live runs commit once at the end.
    """
    now = now or utc_now()
    today = business_date(now)
    in_business_hours = is_business_time(now)

    items = (
        db.query(ExpiryItem)
        .filter(
            ExpiryItem.reminders_enabled.is_(True),
            ExpiryItem.renewal_status.in_([s.value for s in ACTIVE_RENEWAL_STATUSES]),
            ExpiryItem.expiry_date >= today - timedelta(days=settings.RENEWAL_EXPIRED_LOOKBACK_DAYS),
            ExpiryItem.expiry_date <= today + timedelta(days=window_days),
        )
        .order_by(ExpiryItem.expiry_date.asc())
        .all()
    )

    candidates = []
    for item in items:
        candidate = _evaluate(db, item, today=today, now=now, in_business_hours=in_business_hours)
        if candidate.will_send and not dry_run:
            _execute(db, item, candidate, today=today, now=now)
        candidates.append(candidate)

    if not dry_run:
        db.commit()

    sendable = sum(1 for c in candidates if c.will_send)
    logger.info(
        "Renewal sweep dry_run=%s candidates=%s sendable=%s",
        dry_run,
        len(candidates),
        sendable,
    )
    return candidates
