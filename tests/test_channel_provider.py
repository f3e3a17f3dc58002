"""Tests for WhatsApp Cloud API error mapping."""

import json

import httpx
import pytest

from replyflow.services.channel_provider import WhatsAppCloudProvider
from replyflow.services.errors import (
    ChannelPermanentError,
    ChannelTransientError,
    SessionWindowClosedError,
)


def _provider(handler) -> WhatsAppCloudProvider:
    return WhatsAppCloudProvider(
        access_token="token",
        phone_number_id="12345",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_send_text_posts_message_and_returns_id():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"messages": [{"id": "wamid.abc"}]})

    receipt = await _provider(handler).send_text("+971501234567", "Hello")

    assert receipt.provider_message_id == "wamid.abc"
    assert captured["url"].endswith("/12345/messages")
    assert captured["auth"] == "Bearer token"
    assert captured["body"]["to"] == "971501234567"
    assert captured["body"]["text"]["body"] == "Hello"


@pytest.mark.asyncio
async def test_send_template_includes_parameters():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"messages": [{"id": "wamid.tpl"}]})

    await _provider(handler).send_template("+971501234567", "visa_30", ["Ahmed", 30])

    template = captured["body"]["template"]
    assert template["name"] == "visa_30"
    assert template["components"][0]["parameters"] == [
        {"type": "text", "text": "Ahmed"},
        {"type": "text", "text": "30"},
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, code, error",
    [
        (400, 131047, SessionWindowClosedError),
        (429, 130429, ChannelTransientError),
        (503, None, ChannelTransientError),
        (400, 131026, ChannelPermanentError),
    ],
)
async def test_error_responses_are_classified(status, code, error):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": {"code": code, "message": "failed"}})

    with pytest.raises(error):
        await _provider(handler).send_text("+971501234567", "Hello")


@pytest.mark.asyncio
async def test_transport_errors_are_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ChannelTransientError):
        await _provider(handler).send_text("+971501234567", "Hello")
