"""Tests for inbound dedup and the shared insert-or-conflict primitive."""

from datetime import timedelta

from replyflow.db.enums import DedupKeyKind, TaskType
from replyflow.db.models import InboundDedupRecord, Task
from replyflow.services import dedup_service
from replyflow.services.idempotency import hash_key, try_insert


def test_first_event_is_recorded_and_replay_is_duplicate(db, now):
    first = dedup_service.check_and_record(
        db, "whatsapp", "wamid.1", sender="+971501234567", body="hi", received_at=now
    )
    second = dedup_service.check_and_record(
        db, "WhatsApp", "wamid.1", sender="+971501234567", body="hi", received_at=now
    )

    assert first.is_duplicate is False
    assert first.key_kind == DedupKeyKind.PROVIDER
    assert second.is_duplicate is True
    assert db.query(InboundDedupRecord).count() == 1


def test_same_provider_id_on_different_channels_is_not_duplicate(db, now):
    dedup_service.check_and_record(db, "whatsapp", "id-1", sender="a", body="x", received_at=now)
    other = dedup_service.check_and_record(db, "email", "id-1", sender="a", body="x", received_at=now)

    assert other.is_duplicate is False


def test_fallback_key_collapses_identical_bodies_in_same_bucket(db, now):
    bucket_start = now.replace(second=0, microsecond=0)
    first = dedup_service.check_and_record(
        db, "webchat", None, sender="user@example.com", body="Hello  World", received_at=bucket_start
    )
    second = dedup_service.check_and_record(
        db,
        "webchat",
        "  ",
        sender="user@example.com",
        body="hello world",
        received_at=bucket_start + timedelta(seconds=3),
    )

    assert first.key_kind == DedupKeyKind.FALLBACK
    assert first.dedup_key.startswith("fallback:")
    assert second.is_duplicate is True


def test_fallback_key_differs_across_buckets_and_senders(now):
    base = now.replace(second=0, microsecond=0)
    key = dedup_service.build_fallback_key("a", "hi", base)

    assert dedup_service.build_fallback_key("a", "hi", base + timedelta(seconds=6)) != key
    assert dedup_service.build_fallback_key("b", "hi", base) != key
    assert dedup_service.build_fallback_key("a", "bye", base) != key


def test_dedup_record_rolls_back_with_the_transaction(db, now):
    dedup_service.check_and_record(db, "whatsapp", "wamid.crash", sender="a", body="x", received_at=now)
    db.rollback()

    replay = dedup_service.check_and_record(
        db, "whatsapp", "wamid.crash", sender="a", body="x", received_at=now
    )

    assert replay.is_duplicate is False


def test_try_insert_keeps_the_outer_transaction_alive(db):
    first = try_insert(db, Task(idempotency_key="k-1", title="One", task_type=TaskType.REPLY.value))
    conflict = try_insert(db, Task(idempotency_key="k-1", title="Two", task_type=TaskType.REPLY.value))
    other = try_insert(db, Task(idempotency_key="k-2", title="Three", task_type=TaskType.REPLY.value))

    assert first.inserted
    assert conflict.already_exists
    assert conflict.row is None
    assert other.inserted
    assert {t.title for t in db.query(Task).all()} == {"One", "Three"}


def test_hash_key_is_deterministic():
    assert hash_key("a", 1, None) == hash_key("a", 1, None)
    assert hash_key("a", "b") != hash_key("b", "a")
    assert len(hash_key("x")) == 64
