import json
from types import SimpleNamespace

import httpx
import pytest

from app.integrations.notification_client import NotificationClient


def make_card(**overrides):
    fields = dict(
        tenant_id="tenant-a",
        code="GC-ABCD-EFGH-JKLM",
        original_value=5000,
        current_balance=3000,
        expires_at=None,
        purchased_for_email="friend@example.com",
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.mark.asyncio
async def test_issued_event_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    client = NotificationClient(webhook_url="http://notify.test/hook", transport=httpx.MockTransport(handler))
    assert await client.gift_card_issued(make_card()) is True

    assert seen == [
        {
            "event": "gift_card_issued",
            "tenant_id": "tenant-a",
            "code": "GC-ABCD-EFGH-JKLM",
            "original_value": 5000,
            "expires_at": None,
            "recipient_email": "friend@example.com",
        }
    ]


@pytest.mark.asyncio
async def test_redeemed_event_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200)

    client = NotificationClient(webhook_url="http://notify.test/hook", transport=httpx.MockTransport(handler))
    await client.gift_card_redeemed(make_card(), 2000)

    assert seen[0]["event"] == "gift_card_redeemed"
    assert seen[0]["amount"] == 2000
    assert seen[0]["new_balance"] == 3000


@pytest.mark.asyncio
async def test_failure_is_swallowed_and_reported():
    client = NotificationClient(
        webhook_url="http://notify.test/hook",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    assert await client.gift_card_issued(make_card()) is False


@pytest.mark.asyncio
async def test_disabled_without_webhook_url():
    def handler(request):
        raise AssertionError("should not be called")

    client = NotificationClient(webhook_url="", transport=httpx.MockTransport(handler))
    assert client.enabled is False
    assert await client.gift_card_issued(make_card()) is False
