from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import Actor, require_admin
from app.core.http_errors import gift_card_http_error
from app.schemas.gift_card_settings import GiftCardSettingsIn, GiftCardSettingsOut
from app.services.errors import GiftCardError
from app.services.gift_card_settings import get_gift_card_settings, update_gift_card_settings

router = APIRouter(prefix="/admin/gift-card-settings", tags=["Admin - Gift Card Settings"])


@router.get("", response_model=GiftCardSettingsOut)
async def admin_get_gift_card_settings(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> GiftCardSettingsOut:
    cfg = await get_gift_card_settings(db, actor.tenant_id)
    return GiftCardSettingsOut.model_validate(cfg)


@router.put("", response_model=GiftCardSettingsOut)
async def admin_update_gift_card_settings(
    payload: GiftCardSettingsIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> GiftCardSettingsOut:
    # expiry_days may be explicitly cleared with null; other fields ignore null
    changes = payload.model_dump(exclude_unset=True)
    changes = {k: v for k, v in changes.items() if v is not None or k == "expiry_days"}

    try:
        cfg = await update_gift_card_settings(db, tenant_id=actor.tenant_id, changes=changes)
    except GiftCardError as e:
        raise gift_card_http_error(e) from e
    return GiftCardSettingsOut.model_validate(cfg)
