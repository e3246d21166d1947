from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import require_service_key
from app.core.http_errors import gift_card_http_error
from app.integrations.notification_client import NotificationClient, get_notification_client
from app.schemas.gift_cards import GiftCardOut, PurchaseCompleteIn
from app.services.errors import GiftCardError
from app.services.purchases import complete_gift_card_purchase

router = APIRouter(prefix="/purchases", tags=["Purchases"])


@router.post("/gift-cards/complete", response_model=GiftCardOut, dependencies=[Depends(require_service_key)])
async def complete_purchase(
    payload: PurchaseCompleteIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationClient = Depends(get_notification_client),
) -> GiftCardOut:
    try:
        card = await complete_gift_card_purchase(
            db,
            tenant_id=payload.tenant_id,
            session_id=payload.session_id,
            amount=payload.amount,
            recipient_email=payload.recipient_email,
            purchased_by_email=payload.purchased_by_email,
            purchased_by_name=payload.purchased_by_name,
        )
    except GiftCardError as e:
        raise gift_card_http_error(e) from e

    # replays notify again; the collaborator dedupes on code
    background.add_task(notifier.gift_card_issued, card)
    return GiftCardOut.from_card(card)
