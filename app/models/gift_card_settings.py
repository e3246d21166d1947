from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db import Base
from app.models.gift_card import _now_utc

DEFAULT_PRESET_AMOUNTS_CENTS = [2500, 5000, 10000]
DEFAULT_MIN_CUSTOM_AMOUNT_CENTS = 1000
DEFAULT_MAX_CUSTOM_AMOUNT_CENTS = 50000


class GiftCardSettings(Base):
    """Per-tenant gift card options (one row per tenant)."""

    __tablename__ = "gift_card_settings"

    tenant_id: Mapped[str] = mapped_column(Text, primary_key=True)

    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    preset_amounts_cents: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=lambda: list(DEFAULT_PRESET_AMOUNTS_CENTS),
    )
    allow_custom_amount: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    min_custom_amount_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=DEFAULT_MIN_CUSTOM_AMOUNT_CENTS
    )
    max_custom_amount_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=DEFAULT_MAX_CUSTOM_AMOUNT_CENTS
    )

    # None: cards never expire
    expiry_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, onupdate=_now_utc
    )
