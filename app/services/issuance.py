from __future__ import annotations

import logging
from datetime import datetime
from typing import Collection
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.gift_card import CARD_SOURCES, GiftCard
from app.services.codes import code_exists, generate_code, validate_requested_code
from app.services.errors import DuplicateCode, GenerationExhausted, InvalidValue, StorageFailure
from app.services.expiration import compute_expiry, now_utc, validate_expiry
from app.services.gift_card_settings import get_gift_card_settings
from app.services.ledger import find_card_by_idempotency_key, get_card, record_issue, run_atomic
from app.services.money import to_cents

logger = logging.getLogger(__name__)

DETAIL_FIELDS = ("purchased_by_email", "purchased_by_name", "purchased_for_email")

MAX_TEXT_LENGTH = 320


def _clean_text(value: str | None) -> str | None:
    v = (value or "").strip()
    if not v:
        return None
    if len(v) > MAX_TEXT_LENGTH:
        raise InvalidValue(f"Value too long (max {MAX_TEXT_LENGTH} characters).")
    return v


def _default_description(source: str, purchased_by_name: str | None) -> str:
    if source == "purchase":
        return f"Purchased by {purchased_by_name}" if purchased_by_name else "Gift card purchased"
    if source == "import":
        return "Imported"
    return "Issued manually"


async def issue_gift_card(
    db: AsyncSession,
    *,
    tenant_id: str,
    value: int,
    recipient_email: str | None = None,
    expires_at: datetime | None = None,
    never_expires: bool = False,
    requested_code: str | None = None,
    idempotency_key: str | None = None,
    purchased_by_email: str | None = None,
    purchased_by_name: str | None = None,
    source: str = "manual",
    actor: str | None = None,
    description: str | None = None,
    reserved_codes: Collection[str] = (),
    now: datetime | None = None,
) -> GiftCard:
    """
    Create a card and its `issue` entry as one commit.

    - requested_code: must be unused for the tenant (DuplicateCode), else a code is generated
    - expires_at: explicit override; otherwise the tenant's expiry_days applies
      (never_expires=True skips it)
    - idempotency_key: a second call with the same key returns the first card

    Email/PDF delivery is the caller's job after this returns.
    """
    amount = to_cents(value, field="value")
    if source not in CARD_SOURCES:
        raise InvalidValue(f"Unknown gift card source: {source}")

    current = now or now_utc()
    key = _clean_text(idempotency_key)

    if key:
        existing = await find_card_by_idempotency_key(db, tenant_id=tenant_id, key=key)
        if existing is not None:
            logger.info("idempotent replay for gift card %s tenant=%s", existing.code, tenant_id)
            return existing

    if expires_at is not None:
        expiry = validate_expiry(expires_at, current)
    elif never_expires:
        expiry = None
    else:
        cfg = await get_gift_card_settings(db, tenant_id)
        expiry = compute_expiry(current, cfg.expiry_days)

    code = validate_requested_code(requested_code) if requested_code else None
    if code is not None and await code_exists(db, tenant_id=tenant_id, code=code):
        raise DuplicateCode(f"Gift card code {code} already exists.")

    recipient = _clean_text(recipient_email)
    buyer_email = _clean_text(purchased_by_email)
    buyer_name = _clean_text(purchased_by_name)
    entry_description = description or _default_description(source, buyer_name)

    attempts_left = settings.GIFT_CARD_CODE_MAX_ATTEMPTS

    while True:
        candidate = code
        if candidate is None:
            candidate = await generate_code(
                db, tenant_id=tenant_id, reserved=reserved_codes, max_attempts=attempts_left
            )

        card = GiftCard(
            tenant_id=tenant_id,
            code=candidate,
            original_value=amount,
            current_balance=amount,
            status="active",
            source=source,
            expires_at=expiry,
            purchased_at=current,
            purchased_for_email=recipient,
            purchased_by_email=buyer_email,
            purchased_by_name=buyer_name,
            idempotency_key=key,
        )

        try:
            result = await record_issue(db, card=card, description=entry_description, actor=actor)

        except IntegrityError as e:
            # a concurrent webhook / reconciliation created the same purchase first
            if key:
                existing = await find_card_by_idempotency_key(db, tenant_id=tenant_id, key=key)
                if existing is not None:
                    logger.info("idempotent race resolved for gift card %s tenant=%s", existing.code, tenant_id)
                    return existing

            if code is not None:
                raise DuplicateCode(f"Gift card code {code} already exists.") from e

            if await code_exists(db, tenant_id=tenant_id, code=candidate):
                attempts_left -= 1
                if attempts_left <= 0:
                    logger.error("gift card code generation exhausted at commit tenant=%s", tenant_id)
                    raise GenerationExhausted() from e
                continue

            logger.error("gift card issue failed tenant=%s: %s", tenant_id, e.__class__.__name__)
            raise StorageFailure() from e

        logger.info(
            "issued gift card %s tenant=%s value=%s source=%s",
            result.card.code,
            tenant_id,
            amount,
            source,
        )
        return result.card


async def update_gift_card_details(
    db: AsyncSession,
    *,
    tenant_id: str,
    gift_card_id: UUID,
    changes: dict[str, str | None],
) -> GiftCard:
    """Edit purchaser/recipient metadata. Never touches the balance or the ledger."""
    unknown = set(changes) - set(DETAIL_FIELDS)
    if unknown:
        raise InvalidValue(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    cleaned = {name: _clean_text(value) for name, value in changes.items()}

    async def _op() -> GiftCard:
        card = await get_card(db, tenant_id=tenant_id, gift_card_id=gift_card_id)
        for name, value in cleaned.items():
            setattr(card, name, value)
        await db.flush()
        return card

    return await run_atomic(db, _op, label="details")
