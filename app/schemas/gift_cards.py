from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.gift_card import GiftCard
from app.services.expiration import effective_status
from app.services.money import MAX_CENTS


class GiftCardOut(BaseModel):
    id: UUID
    code: str
    original_value: int
    current_balance: int
    # effective status (lazy expiry applied), not the stored column
    status: str
    source: str

    expires_at: Optional[datetime] = None
    purchased_at: datetime
    purchased_for_email: Optional[str] = None
    purchased_by_email: Optional[str] = None
    purchased_by_name: Optional[str] = None
    voided_at: Optional[datetime] = None

    @classmethod
    def from_card(cls, card: GiftCard, now: datetime | None = None) -> "GiftCardOut":
        return cls(
            id=card.id,
            code=card.code,
            original_value=int(card.original_value),
            current_balance=int(card.current_balance),
            status=effective_status(card, now),
            source=card.source,
            expires_at=card.expires_at,
            purchased_at=card.purchased_at,
            purchased_for_email=card.purchased_for_email,
            purchased_by_email=card.purchased_by_email,
            purchased_by_name=card.purchased_by_name,
            voided_at=card.voided_at,
        )


class GiftCardListOut(BaseModel):
    items: list[GiftCardOut]
    offset: int
    limit: int
    total: int


class GiftCardTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sequence: int
    kind: str
    amount: int
    balance_after: int
    description: Optional[str] = None
    actor: Optional[str] = None
    created_at: datetime


class GiftCardTransactionListOut(BaseModel):
    gift_card_id: UUID
    items: list[GiftCardTransactionOut]
    offset: int
    limit: int


class GiftCardAuditOut(BaseModel):
    gift_card_id: UUID
    original_value: int
    current_balance: int
    ledger_total: int
    entry_count: int
    mismatched_sequences: list[int] = Field(default_factory=list)
    is_consistent: bool


# -------------------------
# Admin payloads
# -------------------------

class GiftCardCreateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    value: int = Field(..., strict=True, ge=1, le=MAX_CENTS)
    code: Optional[str] = Field(default=None, max_length=64)
    recipient_email: Optional[str] = Field(default=None, max_length=320)
    purchased_by_email: Optional[str] = Field(default=None, max_length=320)
    purchased_by_name: Optional[str] = Field(default=None, max_length=255)
    expires_at: Optional[datetime] = None
    never_expires: bool = False


class GiftCardDetailsIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    purchased_by_email: Optional[str] = Field(default=None, max_length=320)
    purchased_by_name: Optional[str] = Field(default=None, max_length=255)
    purchased_for_email: Optional[str] = Field(default=None, max_length=320)


class GiftCardVoidIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class GiftCardAdjustIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: int = Field(..., strict=True, ge=-MAX_CENTS, le=MAX_CENTS)  # allow negative
    description: Optional[str] = Field(default=None, max_length=500)


class LedgerEntryOut(BaseModel):
    card: GiftCardOut
    transaction: GiftCardTransactionOut


# -------------------------
# POS / checkout payloads
# -------------------------

class RedeemIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(..., min_length=1, max_length=64)
    amount: int = Field(..., strict=True, ge=1, le=MAX_CENTS)
    description: Optional[str] = Field(default=None, max_length=500)


class RedeemOut(BaseModel):
    code: str
    amount: int
    new_balance: int
    status: str
    transaction_id: UUID


class QuoteIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    amount_due: int = Field(..., strict=True, ge=0, le=MAX_CENTS)


class QuoteOut(BaseModel):
    code: str
    current_balance: int
    applicable_amount: int
    remaining_due: int
    expires_at: Optional[datetime] = None


# -------------------------
# Payment collaborator
# -------------------------

class PurchaseCompleteIn(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1, max_length=255)
    amount: int = Field(..., strict=True, ge=1, le=MAX_CENTS)
    recipient_email: Optional[str] = Field(default=None, max_length=320)
    purchased_by_email: Optional[str] = Field(default=None, max_length=320)
    purchased_by_name: Optional[str] = Field(default=None, max_length=255)
