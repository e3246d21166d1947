from __future__ import annotations

import logging
import re
import secrets
from typing import Collection

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.gift_card import GiftCard
from app.services.errors import GenerationExhausted, InvalidValue

logger = logging.getLogger(__name__)

# no 0/O or 1/I
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_GROUPS = 3
CODE_GROUP_SIZE = 4

_REQUESTED_CODE_RE = re.compile(r"^[A-Z0-9-]{4,64}$")


def normalize_code(raw: str | None) -> str:
    return (raw or "").strip().upper()


def validate_requested_code(raw: str | None) -> str:
    code = normalize_code(raw)
    if not _REQUESTED_CODE_RE.match(code):
        raise InvalidValue("Gift card code must be 4-64 characters of A-Z, 0-9 or '-'.")
    return code


def _draw_code(prefix: str) -> str:
    groups = [
        "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_GROUP_SIZE))
        for _ in range(CODE_GROUPS)
    ]
    return "-".join([prefix, *groups]) if prefix else "-".join(groups)


async def code_exists(db: AsyncSession, *, tenant_id: str, code: str) -> bool:
    res = await db.execute(
        select(GiftCard.id).where(GiftCard.tenant_id == tenant_id, GiftCard.code == code)
    )
    return res.scalar_one_or_none() is not None


async def generate_code(
    db: AsyncSession,
    *,
    tenant_id: str,
    reserved: Collection[str] = (),
    max_attempts: int | None = None,
) -> str:
    """
    Draw a code that is unused for this tenant and not in `reserved`.
    Nothing is reserved in storage: the (tenant_id, code) unique constraint
    settles a race with a concurrent issuance at commit time.
    """
    attempts = max_attempts if max_attempts is not None else settings.GIFT_CARD_CODE_MAX_ATTEMPTS
    prefix = normalize_code(settings.GIFT_CARD_CODE_PREFIX)

    for _ in range(attempts):
        candidate = _draw_code(prefix)
        if candidate in reserved:
            continue
        if await code_exists(db, tenant_id=tenant_id, code=candidate):
            continue
        return candidate

    logger.error("gift card code generation exhausted tenant=%s attempts=%s", tenant_id, attempts)
    raise GenerationExhausted(f"No unique gift card code after {attempts} attempts.")
