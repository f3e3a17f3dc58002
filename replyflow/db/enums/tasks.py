"""Task and notification enums."""

from enum import Enum


class TaskType(str, Enum):
    """Kinds of owed work."""

    REPLY = "reply"
    QUOTE = "quote"
    QUALIFICATION = "qualification"
    RENEWAL_OUTREACH = "renewal_outreach"
    EXPIRY_FOLLOWUP = "expiry_followup"
    CONFIRM_EXPIRY = "confirm_expiry"
    CONSULTATION = "consultation"
    TEMPLATE_FOLLOWUP = "template_followup"


class TaskStatus(str, Enum):
    OPEN = "open"
    DONE = "done"
    CANCELLED = "cancelled"


class NotificationType(str, Enum):
    EXPIRY_HINT = "expiry_hint"
    ESCALATION = "escalation"
    REPLY_FAILED = "reply_failed"
