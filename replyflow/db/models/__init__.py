"""SQLAlchemy ORM models."""

from replyflow.db.models.contacts import Contact
from replyflow.db.models.conversations import Conversation, InboundDedupRecord, Message
from replyflow.db.models.jobs import OutboundJob, OutboundMessageLog
from replyflow.db.models.leads import Lead
from replyflow.db.models.renewals import AutomationRunLog, ExpiryItem
from replyflow.db.models.tasks import Notification, Task

__all__ = [
    "AutomationRunLog",
    "Contact",
    "Conversation",
    "ExpiryItem",
    "InboundDedupRecord",
    "Lead",
    "Message",
    "Notification",
    "OutboundJob",
    "OutboundMessageLog",
    "Task",
]
