"""Idempotent task and notification creation.

Every task carries a deterministic idempotency key built from stable
identifiers (lead id, provider message id, ISO date, expiry stage). A unique
violation on the key is the success path for "already created".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from replyflow.core.constants import (
    CONFIRM_EXPIRY_TASK_DUE_DAYS,
    QUALIFY_TASK_DUE_HOURS,
    REPLY_TASK_DUE_MINUTES,
)
from replyflow.db.enums import (
    BUSINESS_SETUP_SERVICES,
    VISA_SERVICES,
    NotificationType,
    TaskStatus,
    TaskType,
)
from replyflow.db.models import Conversation, ExpiryItem, Lead, Message, Notification, Task
from replyflow.services.field_extractors import ExtractedFields
from replyflow.services.idempotency import InsertResult, try_insert
from replyflow.utils.business_hours import business_date, end_of_business_day

logger = logging.getLogger(__name__)


# =============================================================================
# Idempotency keys
# =============================================================================


def reply_task_key(lead_id: UUID, trigger_id: str) -> str:
    return f"reply:{lead_id}:{trigger_id}"


def quote_task_key(lead_id: UUID, day) -> str:
    return f"quote:{lead_id}:{day.isoformat()}"


def qualify_task_key(lead_id: UUID, day) -> str:
    return f"qualify:{lead_id}:{day.isoformat()}"


def expiry_task_key(lead_id: UUID, item_type: str, expiry_date) -> str:
    return f"expiry:{lead_id}:{item_type}:{expiry_date.isoformat()}"


def confirm_expiry_task_key(lead_id: UUID, day) -> str:
    return f"confirm-expiry:{lead_id}:{day.isoformat()}"


def renewal_task_key(expiry_item_id: UUID, stage: str) -> str:
    return f"renewal:{expiry_item_id}:{stage}"


def template_followup_task_key(conversation_id: UUID, trigger_id: str) -> str:
    return f"template-followup:{conversation_id}:{trigger_id}"


def consultation_task_key(lead_id: UUID, service: str) -> str:
    return f"{service.replace('_', '-')}-consultation:{lead_id}"


def message_trigger_id(message: Message) -> str:
    """Provider id when the channel gave one, otherwise our own message id."""
    return message.provider_message_id or str(message.id)


# =============================================================================
# Create-if-absent
# =============================================================================


def create_task_if_absent(
    db: Session,
    key: str,
    *,
    title: str,
    task_type: TaskType,
    due_at: datetime | None = None,
    description: str | None = None,
    lead_id: UUID | None = None,
    conversation_id: UUID | None = None,
    expiry_item_id: UUID | None = None,
) -> InsertResult[Task]:
    """Create a task unless one with ``key`` already exists."""
    if not key:
        raise ValueError("Tasks require an idempotency key")

    result = try_insert(
        db,
        Task(
            idempotency_key=key,
            title=title,
            description=description,
            task_type=task_type.value,
            due_at=due_at,
            lead_id=lead_id,
            conversation_id=conversation_id,
            expiry_item_id=expiry_item_id,
        ),
    )
    if result.inserted:
        logger.info("Created task %s type=%s", key, task_type.value)
    else:
        logger.debug("Task %s already exists", key)
    return result


def create_notification_if_absent(
    db: Session,
    key: str,
    *,
    title: str,
    notification_type: NotificationType,
    body: str | None = None,
    lead_id: UUID | None = None,
    conversation_id: UUID | None = None,
) -> InsertResult[Notification]:
    return try_insert(
        db,
        Notification(
            dedupe_key=key,
            title=title,
            body=body,
            notification_type=notification_type.value,
            lead_id=lead_id,
            conversation_id=conversation_id,
        ),
    )


def get_task_by_key(db: Session, key: str) -> Task | None:
    return db.query(Task).filter(Task.idempotency_key == key).first()


def complete_task(db: Session, key: str, *, now: datetime) -> bool:
    """Mark an open task done. Returns False if there is no open task for ``key``."""
    task = get_task_by_key(db, key)
    if task is None or task.status != TaskStatus.OPEN.value:
        return False
    task.status = TaskStatus.DONE.value
    task.completed_at = now
    db.flush()
    return True


# =============================================================================
# Inbound-derived tasks
# =============================================================================


@dataclass
class CreatedTasks:
    keys: list[str] = field(default_factory=list)
    expiry_item_ids: list[UUID] = field(default_factory=list)

    def add(self, result: InsertResult[Task]) -> None:
        if result.inserted:
            self.keys.append(result.row.idempotency_key)


def _record_expiry_item(
    db: Session, lead: Lead, item_type: str, expiry_date
) -> ExpiryItem | None:
    result = try_insert(
        db,
        ExpiryItem(
            contact_id=lead.contact_id,
            lead_id=lead.id,
            item_type=item_type,
            expiry_date=expiry_date,
        ),
    )
    if result.inserted:
        return result.row
    return (
        db.query(ExpiryItem)
        .filter(
            ExpiryItem.contact_id == lead.contact_id,
            ExpiryItem.item_type == item_type,
            ExpiryItem.expiry_date == expiry_date,
        )
        .first()
    )


def create_inbound_tasks(
    db: Session,
    *,
    lead: Lead,
    conversation: Conversation,
    message: Message,
    extracted: ExtractedFields | None,
    now: datetime,
) -> CreatedTasks:
    """Create the follow-up tasks an inbound message calls for."""
    created = CreatedTasks()
    today = business_date(now)

    created.add(
        create_task_if_absent(
            db,
            reply_task_key(lead.id, message_trigger_id(message)),
            title="Reply to customer message",
            task_type=TaskType.REPLY,
            due_at=now + timedelta(minutes=REPLY_TASK_DUE_MINUTES),
            lead_id=lead.id,
            conversation_id=conversation.id,
        )
    )

    if extracted is None:
        return created

    service = extracted.service.service if extracted.service else None
    if service in BUSINESS_SETUP_SERVICES:
        created.add(
            create_task_if_absent(
                db,
                quote_task_key(lead.id, today),
                title="Send business setup quotation",
                task_type=TaskType.QUOTE,
                due_at=end_of_business_day(now),
                lead_id=lead.id,
                conversation_id=conversation.id,
            )
        )
    elif service in VISA_SERVICES:
        created.add(
            create_task_if_absent(
                db,
                qualify_task_key(lead.id, today),
                title=f"Qualify {service.value.replace('_', ' ')} request",
                task_type=TaskType.QUALIFICATION,
                due_at=now + timedelta(hours=QUALIFY_TASK_DUE_HOURS),
                lead_id=lead.id,
                conversation_id=conversation.id,
            )
        )

    for expiry in extracted.expiries:
        item = _record_expiry_item(db, lead, expiry.item_type.value, expiry.expiry_date)
        if item is not None:
            created.expiry_item_ids.append(item.id)
        label = expiry.item_type.value.replace("_", " ")
        created.add(
            create_task_if_absent(
                db,
                expiry_task_key(lead.id, expiry.item_type.value, expiry.expiry_date),
                title=f"Follow up: {label} on {expiry.expiry_date.strftime('%d/%m/%Y')}",
                task_type=TaskType.EXPIRY_FOLLOWUP,
                due_at=now,
                lead_id=lead.id,
                conversation_id=conversation.id,
                expiry_item_id=item.id if item else None,
            )
        )

    if extracted.expiry_hint_text:
        key = confirm_expiry_task_key(lead.id, today)
        created.add(
            create_task_if_absent(
                db,
                key,
                title="Confirm expiry date with customer",
                description=f'Customer mentioned: "{extracted.expiry_hint_text}"',
                task_type=TaskType.CONFIRM_EXPIRY,
                due_at=now + timedelta(days=CONFIRM_EXPIRY_TASK_DUE_DAYS),
                lead_id=lead.id,
                conversation_id=conversation.id,
            )
        )
        create_notification_if_absent(
            db,
            key,
            title="Expiry mentioned without a date",
            body=extracted.expiry_hint_text,
            notification_type=NotificationType.EXPIRY_HINT,
            lead_id=lead.id,
            conversation_id=conversation.id,
        )

    return created
