"""Outbound job enums."""

from enum import Enum


class OutboundJobKind(str, Enum):
    """What an outbound job sends."""

    AUTO_REPLY = "auto_reply"  # Free-form, generated reply
    TEMPLATE = "template"  # Pre-approved template (valid outside the session window)


class OutboundJobStatus(str, Enum):
    """Status of outbound jobs."""

    PENDING = "pending"
    GENERATING = "generating"
    READY_TO_SEND = "ready_to_send"
    SENT = "sent"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = frozenset({OutboundJobStatus.SENT, OutboundJobStatus.FAILED})

CLAIMABLE_JOB_STATUSES = (OutboundJobStatus.PENDING, OutboundJobStatus.READY_TO_SEND)

# Jobs that hold a lease while in these states
LEASED_JOB_STATUSES = (OutboundJobStatus.GENERATING, OutboundJobStatus.READY_TO_SEND)


class OutboundLogStatus(str, Enum):
    """Status of an at-most-once send ledger row."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
