"""Structured logging helpers (PII-safe)."""

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_log_context(
    *,
    job_id: Any = None,
    conversation_id: Any = None,
    lead_id: Any = None,
    channel: str | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict.

    Only identifiers are included; phone numbers and message bodies never are.
    """
    context: dict[str, Any] = {}
    if job_id:
        context["job_id"] = str(job_id)
    if conversation_id:
        context["conversation_id"] = str(conversation_id)
    if lead_id:
        context["lead_id"] = str(lead_id)
    if channel:
        context["channel"] = channel
    if request_id:
        context["request_id"] = request_id
    return context


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure root logging for worker, CLI and API processes."""
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
