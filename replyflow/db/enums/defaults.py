"""Centralized defaults for enums."""

from replyflow.db.enums.channels import ConversationStatus
from replyflow.db.enums.jobs import OutboundJobKind, OutboundJobStatus
from replyflow.db.enums.leads import LeadStage
from replyflow.db.enums.renewals import RenewalStatus
from replyflow.db.enums.tasks import TaskStatus


DEFAULT_LEAD_STAGE: LeadStage = LeadStage.NEW
DEFAULT_CONVERSATION_STATUS: ConversationStatus = ConversationStatus.OPEN
DEFAULT_TASK_STATUS: TaskStatus = TaskStatus.OPEN
DEFAULT_JOB_STATUS: OutboundJobStatus = OutboundJobStatus.PENDING
DEFAULT_JOB_KIND: OutboundJobKind = OutboundJobKind.AUTO_REPLY
DEFAULT_RENEWAL_STATUS: RenewalStatus = RenewalStatus.PENDING
