from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import Actor, require_staff
from app.core.http_errors import gift_card_http_error
from app.integrations.notification_client import NotificationClient, get_notification_client
from app.schemas.gift_cards import GiftCardOut, RedeemIn, RedeemOut
from app.services.errors import GiftCardError
from app.services.expiration import effective_status
from app.services.ledger import find_card_by_code
from app.services.redemption import redeem_gift_card

router = APIRouter(prefix="/pos/gift-cards", tags=["POS - Gift Cards"])


@router.get("/{code}", response_model=GiftCardOut)
async def pos_lookup_gift_card(
    code: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_staff),
) -> GiftCardOut:
    try:
        card = await find_card_by_code(db, tenant_id=actor.tenant_id, code=code)
    except GiftCardError as e:
        raise gift_card_http_error(e) from e
    return GiftCardOut.from_card(card)


@router.post("/redeem", response_model=RedeemOut)
async def pos_redeem_gift_card(
    payload: RedeemIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_staff),
    notifier: NotificationClient = Depends(get_notification_client),
) -> RedeemOut:
    try:
        result = await redeem_gift_card(
            db,
            tenant_id=actor.tenant_id,
            code=payload.code,
            amount=payload.amount,
            description=payload.description or "POS redemption",
            actor=actor.user_id,
        )
    except GiftCardError as e:
        raise gift_card_http_error(e) from e

    background.add_task(notifier.gift_card_redeemed, result.card, payload.amount)

    return RedeemOut(
        code=result.card.code,
        amount=payload.amount,
        new_balance=result.new_balance,
        status=effective_status(result.card),
        transaction_id=result.transaction_id,
    )
