"""Channel and conversation enums."""

from enum import Enum


class Channel(str, Enum):
    """Inbound/outbound messaging channels."""

    WHATSAPP = "whatsapp"
    EMAIL = "email"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    WEBCHAT = "webchat"


class ConversationStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class DedupKeyKind(str, Enum):
    """How an inbound dedup key was derived."""

    PROVIDER = "provider"
    FALLBACK = "fallback"
