from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.gift_card import GiftCard
from app.services.errors import InvalidValue
from app.services.gift_card_settings import get_gift_card_settings, validate_purchase_amount
from app.services.issuance import issue_gift_card
from app.services.ledger import find_card_by_idempotency_key

logger = logging.getLogger(__name__)


async def complete_gift_card_purchase(
    db: AsyncSession,
    *,
    tenant_id: str,
    session_id: str,
    amount: int,
    recipient_email: str | None = None,
    purchased_by_email: str | None = None,
    purchased_by_name: str | None = None,
) -> GiftCard:
    """
    Called by the payment collaborator once a checkout session is paid.

    The payment session id is the idempotency key: webhook retries and the
    manual "process session" path may both arrive, only one card exists.
    A replay returns the existing card even if the tenant's amount rules
    changed since the purchase.
    """
    session_key = (session_id or "").strip()
    if not session_key:
        raise InvalidValue("session_id is required.")

    existing = await find_card_by_idempotency_key(db, tenant_id=tenant_id, key=session_key)
    if existing is not None:
        logger.info("payment session %s already fulfilled with gift card %s", session_key, existing.code)
        return existing

    cfg = await get_gift_card_settings(db, tenant_id)
    value = validate_purchase_amount(cfg, amount)

    return await issue_gift_card(
        db,
        tenant_id=tenant_id,
        value=value,
        recipient_email=recipient_email,
        idempotency_key=session_key,
        purchased_by_email=purchased_by_email,
        purchased_by_name=purchased_by_name,
        source="purchase",
        actor="payment",
    )
