from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import settings
from app.models.gift_card import GiftCard

logger = logging.getLogger(__name__)


class NotificationClient:
    """
    Tells the notification collaborator (email / PDF delivery) about a card.
    Only public card fields leave this service, never ledger internals.
    Delivery happens after the ledger commit, so a failure here is logged
    and never undoes an issuance or redemption.
    """

    def __init__(self, webhook_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.webhook_url = settings.NOTIFY_WEBHOOK_URL if webhook_url is None else webhook_url
        self.timeout = settings.NOTIFY_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def gift_card_issued(self, card: GiftCard) -> bool:
        return await self._send(
            {
                "event": "gift_card_issued",
                "tenant_id": card.tenant_id,
                "code": card.code,
                "original_value": int(card.original_value),
                "expires_at": card.expires_at.isoformat() if card.expires_at else None,
                "recipient_email": card.purchased_for_email,
            }
        )

    async def gift_card_redeemed(self, card: GiftCard, amount: int) -> bool:
        return await self._send(
            {
                "event": "gift_card_redeemed",
                "tenant_id": card.tenant_id,
                "code": card.code,
                "amount": int(amount),
                "new_balance": int(card.current_balance),
            }
        )

    async def _send(self, payload: dict[str, Any]) -> bool:
        if not self.enabled:
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.post(self.webhook_url, json=payload)
                r.raise_for_status()
        except httpx.HTTPError:
            logger.warning(
                "notification %s for gift card %s failed", payload["event"], payload["code"], exc_info=True
            )
            return False

        return True


def get_notification_client() -> NotificationClient:
    return NotificationClient()
