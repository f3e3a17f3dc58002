"""Enum definitions for application constants."""

from replyflow.db.enums.channels import Channel, ConversationStatus, DedupKeyKind
from replyflow.db.enums.defaults import (
    DEFAULT_CONVERSATION_STATUS,
    DEFAULT_JOB_KIND,
    DEFAULT_JOB_STATUS,
    DEFAULT_LEAD_STAGE,
    DEFAULT_RENEWAL_STATUS,
    DEFAULT_TASK_STATUS,
)
from replyflow.db.enums.jobs import (
    CLAIMABLE_JOB_STATUSES,
    LEASED_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    OutboundJobKind,
    OutboundJobStatus,
    OutboundLogStatus,
)
from replyflow.db.enums.leads import (
    BUSINESS_SETUP_SERVICES,
    CLOSED_LEAD_STAGES,
    VISA_SERVICES,
    LeadStage,
    ServiceType,
)
from replyflow.db.enums.messages import MessageDirection, MessageStatus, MessageType
from replyflow.db.enums.renewals import (
    ACTIVE_RENEWAL_STATUSES,
    AutomationRunStatus,
    ExpiryItemType,
    RenewalSkipReason,
    RenewalStatus,
)
from replyflow.db.enums.tasks import NotificationType, TaskStatus, TaskType

__all__ = [
    "ACTIVE_RENEWAL_STATUSES",
    "AutomationRunStatus",
    "BUSINESS_SETUP_SERVICES",
    "CLAIMABLE_JOB_STATUSES",
    "CLOSED_LEAD_STAGES",
    "Channel",
    "ConversationStatus",
    "DEFAULT_CONVERSATION_STATUS",
    "DEFAULT_JOB_KIND",
    "DEFAULT_JOB_STATUS",
    "DEFAULT_LEAD_STAGE",
    "DEFAULT_RENEWAL_STATUS",
    "DEFAULT_TASK_STATUS",
    "DedupKeyKind",
    "ExpiryItemType",
    "LEASED_JOB_STATUSES",
    "LeadStage",
    "MessageDirection",
    "MessageStatus",
    "MessageType",
    "NotificationType",
    "OutboundJobKind",
    "OutboundJobStatus",
    "OutboundLogStatus",
    "RenewalSkipReason",
    "RenewalStatus",
    "ServiceType",
    "TERMINAL_JOB_STATUSES",
    "TaskStatus",
    "TaskType",
    "VISA_SERVICES",
]
