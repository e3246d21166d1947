from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.gift_card_settings import (
    DEFAULT_MAX_CUSTOM_AMOUNT_CENTS,
    DEFAULT_MIN_CUSTOM_AMOUNT_CENTS,
    DEFAULT_PRESET_AMOUNTS_CENTS,
    GiftCardSettings,
)
from app.services.errors import GiftCardsDisabled, InvalidValue
from app.services.ledger import run_atomic
from app.services.money import Cents, to_cents

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "enabled",
    "preset_amounts_cents",
    "allow_custom_amount",
    "min_custom_amount_cents",
    "max_custom_amount_cents",
    "expiry_days",
)


def _defaults(tenant_id: str) -> GiftCardSettings:
    return GiftCardSettings(
        tenant_id=tenant_id,
        enabled=False,
        preset_amounts_cents=list(DEFAULT_PRESET_AMOUNTS_CENTS),
        allow_custom_amount=True,
        min_custom_amount_cents=DEFAULT_MIN_CUSTOM_AMOUNT_CENTS,
        max_custom_amount_cents=DEFAULT_MAX_CUSTOM_AMOUNT_CENTS,
        expiry_days=None,
    )


async def get_gift_card_settings(db: AsyncSession, tenant_id: str) -> GiftCardSettings:
    """Stored settings for the tenant, or unsaved defaults. Never writes."""
    row = await db.get(GiftCardSettings, tenant_id)
    return row if row is not None else _defaults(tenant_id)


def _validated(values: dict[str, Any]) -> dict[str, Any]:
    presets = values["preset_amounts_cents"] or []
    values["preset_amounts_cents"] = sorted(
        {int(to_cents(p, field="preset_amounts_cents")) for p in presets}
    )
    values["min_custom_amount_cents"] = to_cents(values["min_custom_amount_cents"], field="min_custom_amount_cents")
    values["max_custom_amount_cents"] = to_cents(values["max_custom_amount_cents"], field="max_custom_amount_cents")
    if values["min_custom_amount_cents"] > values["max_custom_amount_cents"]:
        raise InvalidValue("min_custom_amount_cents must not exceed max_custom_amount_cents.")

    expiry_days = values["expiry_days"]
    if expiry_days is not None and (isinstance(expiry_days, bool) or not isinstance(expiry_days, int) or expiry_days < 0):
        raise InvalidValue("expiry_days must be empty or a whole number >= 0.")

    if values["enabled"] and not values["preset_amounts_cents"] and not values["allow_custom_amount"]:
        raise InvalidValue("Enable at least one preset amount or custom amounts.")
    return values


async def update_gift_card_settings(
    db: AsyncSession,
    *,
    tenant_id: str,
    changes: dict[str, Any],
) -> GiftCardSettings:
    unknown = set(changes) - set(SETTINGS_FIELDS)
    if unknown:
        raise InvalidValue(f"Unknown settings: {', '.join(sorted(unknown))}")

    async def _op() -> GiftCardSettings:
        row = await db.get(GiftCardSettings, tenant_id, populate_existing=True)
        base = row if row is not None else _defaults(tenant_id)

        values = {name: getattr(base, name) for name in SETTINGS_FIELDS}
        values.update(changes)
        values = _validated(values)

        if row is None:
            row = GiftCardSettings(tenant_id=tenant_id, **values)
            db.add(row)
        else:
            for name, value in values.items():
                setattr(row, name, value)

        await db.flush()
        return row

    row = await run_atomic(db, _op, label="settings")
    logger.info("gift card settings updated tenant=%s fields=%s", tenant_id, sorted(changes))
    return row


def validate_purchase_amount(cfg: GiftCardSettings, amount: object) -> Cents:
    if not cfg.enabled:
        raise GiftCardsDisabled()

    value = to_cents(amount, field="amount")
    if value in (cfg.preset_amounts_cents or []):
        return value

    if not cfg.allow_custom_amount:
        raise InvalidValue("Please choose one of the offered gift card amounts.")
    if value < cfg.min_custom_amount_cents:
        raise InvalidValue(f"Minimum gift card amount is {cfg.min_custom_amount_cents} cents.")
    if value > cfg.max_custom_amount_cents:
        raise InvalidValue(f"Maximum gift card amount is {cfg.max_custom_amount_cents} cents.")
    return value
