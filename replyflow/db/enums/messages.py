"""Message enums."""

from enum import Enum


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageType(str, Enum):
    TEXT = "text"
    TEMPLATE = "template"


class MessageStatus(str, Enum):
    RECEIVED = "received"
    SENT = "sent"
