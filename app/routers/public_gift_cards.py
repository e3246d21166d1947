from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.http_errors import gift_card_http_error
from app.schemas.gift_card_settings import PublicGiftCardOptionsOut
from app.schemas.gift_cards import QuoteIn, QuoteOut
from app.services.errors import GiftCardError
from app.services.gift_card_settings import get_gift_card_settings
from app.services.redemption import quote_gift_card

# Self-service booking checkout. Tenant resolution (custom domain / slug) is
# done upstream; it arrives here as the path segment.
router = APIRouter(prefix="/public/{tenant_id}", tags=["Public - Gift Cards"])


@router.get("/gift-card-settings", response_model=PublicGiftCardOptionsOut)
async def public_gift_card_options(
    tenant_id: str,
    db: AsyncSession = Depends(get_db),
) -> PublicGiftCardOptionsOut:
    cfg = await get_gift_card_settings(db, tenant_id)
    return PublicGiftCardOptionsOut(
        enabled=cfg.enabled,
        preset_amounts_cents=list(cfg.preset_amounts_cents or []),
        allow_custom_amount=cfg.allow_custom_amount,
        min_custom_amount_cents=cfg.min_custom_amount_cents,
        max_custom_amount_cents=cfg.max_custom_amount_cents,
        expiry_days=cfg.expiry_days,
    )


@router.post("/gift-cards/quote", response_model=QuoteOut)
async def public_quote_gift_card(
    tenant_id: str,
    payload: QuoteIn,
    db: AsyncSession = Depends(get_db),
) -> QuoteOut:
    try:
        quote = await quote_gift_card(db, tenant_id=tenant_id, code=payload.code, amount_due=payload.amount_due)
    except GiftCardError as e:
        raise gift_card_http_error(e) from e

    return QuoteOut(
        code=quote.card.code,
        current_balance=int(quote.card.current_balance),
        applicable_amount=quote.applicable_amount,
        remaining_due=quote.remaining_due,
        expires_at=quote.card.expires_at,
    )
