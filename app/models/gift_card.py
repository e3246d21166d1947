from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.db import Base

CARD_STATUSES = ("active", "fully_redeemed", "expired", "voided")
ENTRY_KINDS = ("issue", "redeem", "adjustment", "void")
CARD_SOURCES = ("purchase", "manual", "import")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class GiftCard(Base):
    __tablename__ = "gift_cards"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_gift_cards_tenant_code"),
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_gift_cards_tenant_idempotency_key"),
        CheckConstraint("original_value > 0", name="gift_cards_original_value_chk"),
        CheckConstraint(
            "current_balance >= 0 AND current_balance <= original_value",
            name="gift_cards_balance_range_chk",
        ),
        CheckConstraint(
            "status IN ('active','fully_redeemed','expired','voided')",
            name="gift_cards_status_chk",
        ),
        CheckConstraint("source IN ('purchase','manual','import')", name="gift_cards_source_chk"),
    )

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    # stored normalized (upper-case); lookups normalize their input
    code: Mapped[str] = mapped_column(Text, nullable=False)

    original_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    current_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # "expired" is never written by the service, see services/expiration.py
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")
    source: Mapped[str] = mapped_column(Text, nullable=False, default="manual")

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    purchased_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now_utc)

    purchased_for_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    purchased_by_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    purchased_by_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    # payment session id for purchases; replays return the existing card
    idempotency_key: Mapped[str | None] = mapped_column(Text, nullable=True)

    # bumped by the same UPDATE that moves the balance; becomes the entry sequence
    entry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, onupdate=_now_utc
    )

    transactions = relationship(
        "GiftCardTransaction",
        back_populates="gift_card",
        order_by="GiftCardTransaction.sequence",
        lazy="raise",
    )


class GiftCardTransaction(Base):
    """Append-only ledger entry. Rows are never updated or deleted."""

    __tablename__ = "gift_card_transactions"
    __table_args__ = (
        UniqueConstraint("gift_card_id", "sequence", name="uq_gift_card_transactions_card_sequence"),
        CheckConstraint(
            "kind IN ('issue','redeem','adjustment','void')",
            name="gift_card_transactions_kind_chk",
        ),
    )

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    gift_card_id: Mapped[PyUUID] = mapped_column(
        Uuid,
        ForeignKey("gift_cards.id", ondelete="RESTRICT"),
        nullable=False,
    )
    tenant_id: Mapped[str] = mapped_column(Text, nullable=False)

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # signed: + for issue/refund adjustments, - for redemptions
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    kind: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now_utc)

    gift_card = relationship("GiftCard", back_populates="transactions", lazy="raise")


Index("ix_gift_card_transactions_card_sequence", GiftCardTransaction.gift_card_id, GiftCardTransaction.sequence.desc())
Index("ix_gift_card_transactions_tenant_created", GiftCardTransaction.tenant_id, GiftCardTransaction.created_at.desc())
