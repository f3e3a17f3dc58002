"""Tests for the /internal endpoints."""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from replyflow.core.config import settings
from replyflow.db.enums import OutboundJobStatus
from replyflow.db.models import ExpiryItem, OutboundJob
from replyflow.db.types import utc_now
from replyflow.main import app
from replyflow.services import outbound_job_service
from replyflow.services.reply_service import ACKNOWLEDGEMENT_REPLY

INBOUND = {
    "provider_message_id": "wamid.router-1",
    "from_phone": "+971501112233",
    "text": "Do you do freezone company setup?",
}


# =============================================================================
# Auth
# =============================================================================


@pytest.mark.asyncio
async def test_missing_secret_is_rejected(client):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as anonymous:
        response = await anonymous.post("/internal/inbound/whatsapp", json=INBOUND)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_wrong_secret_is_forbidden(client):
    response = await client.post(
        "/internal/inbound/whatsapp",
        json=INBOUND,
        headers={"X-Internal-Secret": "nope"},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unconfigured_secret_returns_501(client, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "")

    response = await client.post("/internal/inbound/whatsapp", json=INBOUND)

    assert response.status_code == 501


# =============================================================================
# Inbound
# =============================================================================


@pytest.mark.asyncio
async def test_inbound_endpoint_processes_then_dedups(client):
    first = await client.post("/internal/inbound/whatsapp", json=INBOUND)
    second = await client.post("/internal/inbound/whatsapp", json=INBOUND)

    assert first.status_code == 200
    body = first.json()
    assert body["status"] == "processed"
    assert body["job_id"] is not None
    assert any(key.startswith("quote:") for key in body["tasks_created"])

    assert second.status_code == 200
    assert second.json()["status"] == "duplicate"
    assert second.json()["message_id"] == body["message_id"]


@pytest.mark.asyncio
async def test_inbound_endpoint_reports_rejections(client):
    response = await client.post(
        "/internal/inbound/whatsapp", json={"text": "hello", "from_phone": "abc"}
    )

    assert response.status_code == 200
    assert response.json() == {
        "status": "rejected",
        "conversation_id": None,
        "lead_id": None,
        "message_id": None,
        "tasks_created": [],
        "job_id": None,
        "skip_reason": "invalid_phone",
    }


# =============================================================================
# Scheduled
# =============================================================================


@pytest.mark.asyncio
async def test_outbound_jobs_endpoint_sends_acknowledgement_without_ai(
    client, db, conversation, inbound_message, monkeypatch
):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    monkeypatch.setattr(settings, "WHATSAPP_ACCESS_TOKEN", "")
    current = utc_now()
    conversation.last_inbound_at = current
    job_id = outbound_job_service.enqueue_reply(
        db, conversation.id, inbound_message.id, run_at=current - timedelta(seconds=1)
    )
    db.commit()

    response = await client.post("/internal/scheduled/outbound-jobs", params={"max_jobs": 5})

    assert response.status_code == 200
    assert response.json()["processed"] == [str(job_id)]
    job = db.get(OutboundJob, job_id)
    assert job.status == OutboundJobStatus.SENT.value
    assert job.content == ACKNOWLEDGEMENT_REPLY


@pytest.mark.asyncio
async def test_outbound_jobs_endpoint_with_empty_queue(client):
    response = await client.post("/internal/scheduled/outbound-jobs")

    assert response.status_code == 200
    assert response.json() == {"processed": [], "failed": [], "retried": [], "skipped": []}


@pytest.mark.asyncio
async def test_renewals_endpoint_defaults_to_dry_run(client, db, contact):
    item = ExpiryItem(
        contact_id=contact.id,
        item_type="visa_expiry",
        expiry_date=utc_now().date() + timedelta(days=20),
    )
    db.add(item)
    db.flush()

    response = await client.post("/internal/scheduled/renewals", json={})

    assert response.status_code == 200
    [candidate] = [c for c in response.json() if c["expiry_item_id"] == str(item.id)]
    assert candidate["stage"] == "T-30"
    assert candidate["template_name"] == "visa_30"
    assert candidate["job_id"] is None
    assert db.query(OutboundJob).count() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("window_days", [0, 400])
async def test_renewals_endpoint_validates_window(client, window_days):
    response = await client.post(
        "/internal/scheduled/renewals", json={"window_days": window_days}
    )

    assert response.status_code == 422
