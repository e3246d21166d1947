from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import Actor, require_admin
from app.core.http_errors import gift_card_http_error
from app.integrations.notification_client import NotificationClient, get_notification_client
from app.schemas.gift_card_imports import ImportBatchIn, ImportBatchOut, ImportFailureOut, ImportRowIn
from app.schemas.gift_cards import GiftCardOut
from app.services.errors import GiftCardError
from app.services.imports import ImportRow, import_gift_cards

router = APIRouter(prefix="/admin/gift-cards/import", tags=["Admin - Gift Card Import"])


@router.post("", response_model=ImportBatchOut)
async def admin_import_gift_cards(
    payload: ImportBatchIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
    notifier: NotificationClient = Depends(get_notification_client),
) -> ImportBatchOut:
    rows = [
        ImportRow(
            value=r.value,
            code=r.code,
            recipient_email=r.recipient_email,
            expires_at=r.expires_at,
        )
        for r in payload.rows
    ]

    try:
        outcome = await import_gift_cards(db, tenant_id=actor.tenant_id, rows=rows, actor=actor.user_id)
    except GiftCardError as e:
        raise gift_card_http_error(e) from e

    for card in outcome.succeeded:
        if card.purchased_for_email:
            background.add_task(notifier.gift_card_issued, card)

    return ImportBatchOut(
        succeeded=[GiftCardOut.from_card(c) for c in outcome.succeeded],
        failed=[
            ImportFailureOut(
                index=f.index,
                row=payload.rows[f.index],
                error=f.error,
                message=f.message,
            )
            for f in outcome.failed
        ],
    )
