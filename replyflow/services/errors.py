"""Typed errors raised by pipeline collaborators."""


class InvalidJobTransition(Exception):
    """An outbound job was asked to move along an edge its state machine forbids."""

    def __init__(self, job_id, from_status: str, to_status: str):
        super().__init__(f"Job {job_id}: illegal transition {from_status} -> {to_status}")
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status


class ChannelError(Exception):
    """Base class for messaging channel provider failures."""


class ChannelTransientError(ChannelError):
    """Timeouts, throttling, 5xx: safe to retry."""


class ChannelPermanentError(ChannelError):
    """The provider rejected the request; retrying will not help."""


class SessionWindowClosedError(ChannelPermanentError):
    """Free-form text is not allowed; a template message is required."""


class RequiresTemplateError(Exception):
    """A free-form reply was owed outside the channel's session window."""

    reason = "requires_template"


class ReplyGenerationError(Exception):
    """The reply generator produced nothing usable."""
