"""Inbound event deduplication.

A dedup row is inserted per physical inbound event; a unique violation on
(channel, dedup_key) means the event was already seen. The insert shares the
caller's transaction, so a crash before commit leaves no record and a replay is
processed fully.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from replyflow.core.constants import FALLBACK_DEDUP_WINDOW_SECONDS
from replyflow.db.enums import DedupKeyKind
from replyflow.db.models import InboundDedupRecord
from replyflow.db.types import as_utc
from replyflow.services.idempotency import hash_key, try_insert
from replyflow.utils.normalization import normalize_channel, normalize_message_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DedupResult:
    channel: str
    dedup_key: str
    key_kind: DedupKeyKind
    is_duplicate: bool


def build_fallback_key(sender: str, body: str | None, received_at: datetime) -> str:
    """
    Composite key for providers that omit message ids.

    Identical bodies from the same sender inside one 5-second bucket collapse
    into a single event.
    """
    bucket = int(as_utc(received_at).timestamp()) // FALLBACK_DEDUP_WINDOW_SECONDS
    return "fallback:" + hash_key(sender, normalize_message_text(body), bucket)


def build_dedup_key(
    provider_message_id: str | None,
    *,
    sender: str,
    body: str | None,
    received_at: datetime,
) -> tuple[str, DedupKeyKind]:
    if provider_message_id and provider_message_id.strip():
        return provider_message_id.strip(), DedupKeyKind.PROVIDER
    return build_fallback_key(sender, body, received_at), DedupKeyKind.FALLBACK


def check_and_record(
    db: Session,
    channel: str,
    provider_message_id: str | None,
    *,
    sender: str,
    body: str | None,
    received_at: datetime,
) -> DedupResult:
    """Record an inbound event; ``is_duplicate`` is True if it was already recorded."""
    channel = normalize_channel(channel)
    dedup_key, key_kind = build_dedup_key(
        provider_message_id, sender=sender, body=body, received_at=received_at
    )

    result = try_insert(
        db,
        InboundDedupRecord(channel=channel, dedup_key=dedup_key, key_kind=key_kind.value),
    )
    if result.already_exists:
        logger.info("Duplicate inbound event channel=%s key_kind=%s", channel, key_kind.value)

    return DedupResult(
        channel=channel,
        dedup_key=dedup_key,
        key_kind=key_kind,
        is_duplicate=result.already_exists,
    )
