from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.services.money import MAX_CENTS


class GiftCardSettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    enabled: bool
    preset_amounts_cents: list[int]
    allow_custom_amount: bool
    min_custom_amount_cents: int
    max_custom_amount_cents: int
    expiry_days: Optional[int] = None
    updated_at: Optional[datetime] = None


class GiftCardSettingsIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: Optional[bool] = None
    preset_amounts_cents: Optional[list[int]] = Field(default=None, max_length=20)
    allow_custom_amount: Optional[bool] = None
    min_custom_amount_cents: Optional[int] = Field(default=None, strict=True, ge=1, le=MAX_CENTS)
    max_custom_amount_cents: Optional[int] = Field(default=None, strict=True, ge=1, le=MAX_CENTS)
    expiry_days: Optional[int] = Field(default=None, strict=True, ge=0)


class PublicGiftCardOptionsOut(BaseModel):
    enabled: bool
    preset_amounts_cents: list[int]
    allow_custom_amount: bool
    min_custom_amount_cents: int
    max_custom_amount_cents: int
    expiry_days: Optional[int] = None
