from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import Actor, require_admin
from app.core.http_errors import gift_card_http_error
from app.integrations.notification_client import NotificationClient, get_notification_client
from app.schemas.gift_cards import (
    GiftCardAdjustIn,
    GiftCardAuditOut,
    GiftCardCreateIn,
    GiftCardDetailsIn,
    GiftCardListOut,
    GiftCardOut,
    GiftCardTransactionListOut,
    GiftCardTransactionOut,
    GiftCardVoidIn,
    LedgerEntryOut,
)
from app.services.errors import GiftCardError
from app.services.issuance import issue_gift_card, update_gift_card_details
from app.services.ledger import (
    adjust_balance,
    get_card,
    list_cards,
    list_entries,
    verify_card_ledger,
    void_card,
)

router = APIRouter(prefix="/admin/gift-cards", tags=["Admin - Gift Cards"])


@router.get("", response_model=GiftCardListOut)
async def admin_list_gift_cards(
    status_filter: str | None = Query(default=None, alias="status"),
    q: str | None = Query(default=None, max_length=100),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> GiftCardListOut:
    try:
        cards, total = await list_cards(
            db, tenant_id=actor.tenant_id, status=status_filter, q=q, offset=offset, limit=limit
        )
    except GiftCardError as e:
        raise gift_card_http_error(e) from e

    return GiftCardListOut(
        items=[GiftCardOut.from_card(c) for c in cards],
        offset=offset,
        limit=limit,
        total=total,
    )


@router.post("", response_model=GiftCardOut, status_code=status.HTTP_201_CREATED)
async def admin_create_gift_card(
    payload: GiftCardCreateIn,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
    notifier: NotificationClient = Depends(get_notification_client),
) -> GiftCardOut:
    if payload.expires_at is not None and payload.never_expires:
        raise HTTPException(status_code=400, detail="Use either expires_at or never_expires, not both")

    try:
        card = await issue_gift_card(
            db,
            tenant_id=actor.tenant_id,
            value=payload.value,
            recipient_email=payload.recipient_email,
            expires_at=payload.expires_at,
            never_expires=payload.never_expires,
            requested_code=payload.code,
            purchased_by_email=payload.purchased_by_email,
            purchased_by_name=payload.purchased_by_name,
            source="manual",
            actor=actor.user_id,
        )
    except GiftCardError as e:
        raise gift_card_http_error(e) from e

    if card.purchased_for_email:
        background.add_task(notifier.gift_card_issued, card)
    return GiftCardOut.from_card(card)


@router.get("/{gift_card_id}", response_model=GiftCardOut)
async def admin_get_gift_card(
    gift_card_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> GiftCardOut:
    try:
        card = await get_card(db, tenant_id=actor.tenant_id, gift_card_id=gift_card_id)
    except GiftCardError as e:
        raise gift_card_http_error(e) from e
    return GiftCardOut.from_card(card)


@router.patch("/{gift_card_id}", response_model=GiftCardOut)
async def admin_update_gift_card_details(
    gift_card_id: UUID,
    payload: GiftCardDetailsIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> GiftCardOut:
    try:
        card = await update_gift_card_details(
            db,
            tenant_id=actor.tenant_id,
            gift_card_id=gift_card_id,
            changes=payload.model_dump(exclude_unset=True),
        )
    except GiftCardError as e:
        raise gift_card_http_error(e) from e
    return GiftCardOut.from_card(card)


@router.get("/{gift_card_id}/transactions", response_model=GiftCardTransactionListOut)
async def admin_list_gift_card_transactions(
    gift_card_id: UUID,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> GiftCardTransactionListOut:
    try:
        entries = await list_entries(
            db, tenant_id=actor.tenant_id, gift_card_id=gift_card_id, offset=offset, limit=limit
        )
    except GiftCardError as e:
        raise gift_card_http_error(e) from e

    return GiftCardTransactionListOut(
        gift_card_id=gift_card_id,
        items=[GiftCardTransactionOut.model_validate(entry) for entry in entries],
        offset=offset,
        limit=limit,
    )


@router.get("/{gift_card_id}/audit", response_model=GiftCardAuditOut)
async def admin_audit_gift_card(
    gift_card_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> GiftCardAuditOut:
    try:
        check = await verify_card_ledger(db, tenant_id=actor.tenant_id, gift_card_id=gift_card_id)
    except GiftCardError as e:
        raise gift_card_http_error(e) from e

    return GiftCardAuditOut(
        gift_card_id=check.gift_card_id,
        original_value=check.original_value,
        current_balance=check.current_balance,
        ledger_total=check.ledger_total,
        entry_count=check.entry_count,
        mismatched_sequences=check.mismatched_sequences,
        is_consistent=check.is_consistent,
    )


@router.post("/{gift_card_id}/void", response_model=LedgerEntryOut)
async def admin_void_gift_card(
    gift_card_id: UUID,
    payload: GiftCardVoidIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> LedgerEntryOut:
    try:
        result = await void_card(
            db,
            tenant_id=actor.tenant_id,
            gift_card_id=gift_card_id,
            reason=payload.reason,
            actor=actor.user_id,
        )
    except GiftCardError as e:
        raise gift_card_http_error(e) from e

    return LedgerEntryOut(
        card=GiftCardOut.from_card(result.card),
        transaction=GiftCardTransactionOut.model_validate(result.entry),
    )


@router.post("/{gift_card_id}/adjust", response_model=LedgerEntryOut)
async def admin_adjust_gift_card(
    gift_card_id: UUID,
    payload: GiftCardAdjustIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> LedgerEntryOut:
    try:
        result = await adjust_balance(
            db,
            tenant_id=actor.tenant_id,
            gift_card_id=gift_card_id,
            amount=payload.amount,
            description=payload.description,
            actor=actor.user_id,
        )
    except GiftCardError as e:
        raise gift_card_http_error(e) from e

    return LedgerEntryOut(
        card=GiftCardOut.from_card(result.card),
        transaction=GiftCardTransactionOut.model_validate(result.entry),
    )
