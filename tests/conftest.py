"""
Test configuration and fixtures.

Provides:
- Database session with savepoint (rollback after each test)
- HTTPX AsyncClient with the internal secret header
- Stub channel and AI providers
"""
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from replyflow.core.config import settings  # noqa: E402
from replyflow.core.deps import get_db  # noqa: E402
from replyflow.db.base import Base  # noqa: E402
from replyflow.db.enums import Channel, MessageDirection, MessageStatus, MessageType  # noqa: E402
from replyflow.db.models import Contact, Conversation, Lead, Message  # noqa: E402
from replyflow.db.session import SessionLocal, engine  # noqa: E402
from replyflow.main import app  # noqa: E402
from replyflow.services.ai_provider import AIProvider, ChatResponse  # noqa: E402
from replyflow.services.channel_provider import ChannelProvider, SendReceipt  # noqa: E402

INTERNAL_SECRET = "test-internal-secret"

# Tuesday 10:00 in Dubai
NOW = datetime(2026, 3, 10, 6, 0, tzinfo=timezone.utc)


# =============================================================================
# Database Fixtures (Savepoint pattern)
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def create_schema() -> Generator[None, None, None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Creates a database session inside an outer transaction.

    App code may commit() and rollback(); both act on a SAVEPOINT so the
    outer transaction can undo everything at the end of the test.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = SessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def now() -> datetime:
    return NOW


# =============================================================================
# Entity Fixtures
# =============================================================================


@pytest.fixture
def contact(db) -> Contact:
    contact = Contact(
        id=uuid.uuid4(),
        full_name="Ahmed Khan",
        phone="+971501234567",
        phone_normalized="+971501234567",
        wa_id="971501234567",
        source="whatsapp",
    )
    db.add(contact)
    db.flush()
    return contact


@pytest.fixture
def lead(db, contact, now) -> Lead:
    lead = Lead(contact_id=contact.id, last_touched_at=now, data_json={})
    db.add(lead)
    db.flush()
    return lead


@pytest.fixture
def conversation(db, contact, lead, now) -> Conversation:
    conversation = Conversation(
        contact_id=contact.id,
        channel=Channel.WHATSAPP.value,
        lead_id=lead.id,
        last_inbound_at=now - timedelta(minutes=5),
        last_message_at=now - timedelta(minutes=5),
    )
    db.add(conversation)
    db.flush()
    return conversation


@pytest.fixture
def inbound_message(db, conversation, lead, now) -> Message:
    message = Message(
        conversation_id=conversation.id,
        lead_id=lead.id,
        contact_id=conversation.contact_id,
        direction=MessageDirection.INBOUND.value,
        channel=conversation.channel,
        message_type=MessageType.TEXT.value,
        status=MessageStatus.RECEIVED.value,
        body="Hi, I need help with my visa",
        provider_message_id=f"wamid.{uuid.uuid4().hex}",
        created_at=now - timedelta(minutes=5),
    )
    db.add(message)
    db.commit()
    return message


# =============================================================================
# Provider Stubs
# =============================================================================


class StubChannelProvider(ChannelProvider):
    """Records sends; ``error`` is raised instead when set."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.sent: list[dict] = []

    async def send_text(self, to, body):
        return self._record({"to": to, "body": body})

    async def send_template(self, to, template_name, params, language=None):
        return self._record({"to": to, "template": template_name, "params": list(params)})

    def _record(self, payload: dict) -> SendReceipt:
        if self.error is not None:
            raise self.error
        self.sent.append(payload)
        return SendReceipt(provider_message_id=f"wamid.out-{len(self.sent)}")


class StubAIProvider(AIProvider):
    def __init__(self, content: str = "Thanks for reaching out. Which visa do you need?"):
        self.content = content
        self.calls: list[list] = []

    async def chat(self, messages, model=None, temperature=0.4, max_tokens=400):
        self.calls.append(list(messages))
        return ChatResponse(content=self.content, model="stub-model", prompt_tokens=3, completion_tokens=5)


@pytest.fixture
def channel_provider() -> StubChannelProvider:
    return StubChannelProvider()


@pytest.fixture
def ai_provider() -> StubAIProvider:
    return StubAIProvider()


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest.fixture
async def client(db, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """Client for /internal endpoints with the secret header set."""
    monkeypatch.setattr(settings, "INTERNAL_SECRET", INTERNAL_SECRET)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Internal-Secret": INTERNAL_SECRET},
    ) as c:
        yield c

    app.dependency_overrides.clear()
