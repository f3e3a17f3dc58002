"""Normalization helpers for contact identity fields."""

import re
from typing import Optional

from replyflow.core.config import settings


def normalize_phone(phone: Optional[str], default_country_code: str | None = None) -> Optional[str]:
    """
    Normalize phone to E.164 format (+971501234567).

    Accepts:
    - Already E.164: +971501234567 → +971501234567
    - International prefix: 00971501234567 → +971501234567
    - Local with trunk zero: 0501234567 → +971501234567
    - Bare international digits (WhatsApp wa_id): 971501234567 → +971501234567

    Args:
        phone: Raw phone input
        default_country_code: Country code for local numbers (defaults to settings)

    Returns:
        E.164 formatted phone or None if empty

    Raises:
        ValueError: If phone cannot be parsed into 8-15 digits
    """
    if not phone:
        return None

    country_code = default_country_code or settings.DEFAULT_COUNTRY_CODE
    cleaned = phone.strip()
    if not cleaned:
        return None

    if cleaned.startswith("+"):
        digits = re.sub(r"\D", "", cleaned[1:])
    else:
        digits = re.sub(r"\D", "", cleaned)
        if digits.startswith("00"):
            digits = digits[2:]
        elif digits.startswith("0"):
            digits = f"{country_code}{digits[1:]}"

    if not 8 <= len(digits) <= 15 or digits.startswith("0"):
        raise ValueError(f"Invalid phone number '{phone}'")

    return f"+{digits}"


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and strip an email address; None if empty or not an address."""
    if not email:
        return None
    cleaned = email.strip().lower()
    if not cleaned or "@" not in cleaned:
        return None
    return cleaned


def normalize_name(name: Optional[str]) -> Optional[str]:
    """Collapse whitespace in a display name."""
    if not name:
        return None
    collapsed = " ".join(name.split())
    return collapsed or None


def normalize_channel(channel: str) -> str:
    """Channels are stored lowercase so one thread per contact per channel holds."""
    return channel.strip().lower()


def normalize_message_text(text: Optional[str]) -> str:
    """Lowercase, whitespace-collapsed text used for fallback dedup keys."""
    if not text:
        return ""
    return " ".join(text.lower().split())
