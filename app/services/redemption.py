from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.gift_card import GiftCard, GiftCardTransaction
from app.services.errors import CardExpired, CardVoided, InsufficientBalance, ZeroBalance
from app.services.expiration import effective_status, now_utc
from app.services.ledger import apply_entry, find_card_by_code
from app.services.money import to_cents

logger = logging.getLogger(__name__)


@dataclass
class RedemptionResult:
    card: GiftCard
    entry: GiftCardTransaction

    @property
    def new_balance(self) -> int:
        return int(self.card.current_balance)

    @property
    def transaction_id(self) -> UUID:
        return self.entry.id


@dataclass
class GiftCardQuote:
    card: GiftCard
    applicable_amount: int
    remaining_due: int


def ensure_redeemable(card: GiftCard, now: datetime) -> None:
    """User-facing checks, in the order the customer should hear about them."""
    status = effective_status(card, now)
    if status == "voided":
        raise CardVoided()
    if status == "expired":
        raise CardExpired()
    if card.current_balance <= 0:
        raise ZeroBalance()


async def redeem_gift_card(
    db: AsyncSession,
    *,
    tenant_id: str,
    code: str,
    amount: int,
    description: str | None = None,
    actor: str | None = None,
    now: datetime | None = None,
) -> RedemptionResult:
    """
    Debit `amount` cents from the card with `code`.

    The checks here only produce fast, friendly errors; the ledger repeats
    them under the row lock, which is what makes concurrent redemptions safe.
    """
    value = to_cents(amount, field="amount")
    current = now or now_utc()

    card = await find_card_by_code(db, tenant_id=tenant_id, code=code)
    ensure_redeemable(card, current)
    if value > card.current_balance:
        raise InsufficientBalance(
            f"Insufficient balance: requested {value}, available {card.current_balance}."
        )

    result = await apply_entry(
        db,
        tenant_id=tenant_id,
        gift_card_id=card.id,
        amount=-value,
        kind="redeem",
        description=description or "Redeemed",
        actor=actor,
        now=current,
    )
    return RedemptionResult(card=result.card, entry=result.entry)


async def quote_gift_card(
    db: AsyncSession,
    *,
    tenant_id: str,
    code: str,
    amount_due: int,
    now: datetime | None = None,
) -> GiftCardQuote:
    """How much of `amount_due` this card would cover at checkout. Read-only."""
    due = to_cents(amount_due, field="amount_due", allow_zero=True)
    current = now or now_utc()

    card = await find_card_by_code(db, tenant_id=tenant_id, code=code)
    ensure_redeemable(card, current)

    applicable = min(int(card.current_balance), int(due))
    return GiftCardQuote(card=card, applicable_amount=applicable, remaining_due=int(due) - applicable)
