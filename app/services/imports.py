from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.gift_card import GiftCard
from app.services.codes import validate_requested_code
from app.services.errors import DuplicateCode, GiftCardError, InvalidValue, StorageFailure
from app.services.expiration import now_utc
from app.services.issuance import issue_gift_card

logger = logging.getLogger(__name__)


@dataclass
class ImportRow:
    value: int
    code: str | None = None
    recipient_email: str | None = None
    expires_at: datetime | None = None


@dataclass
class ImportFailure:
    index: int
    row: ImportRow
    error: str
    message: str


@dataclass
class ImportOutcome:
    succeeded: list[GiftCard] = field(default_factory=list)
    failed: list[ImportFailure] = field(default_factory=list)


def _fail(index: int, row: ImportRow, err: GiftCardError) -> ImportFailure:
    return ImportFailure(index=index, row=row, error=err.code, message=err.message)


def _claim_codes(rows: Sequence[ImportRow]) -> tuple[dict[int, str], dict[int, GiftCardError]]:
    """
    Validate requested codes across the whole batch before anything is issued.
    The first row to name a code keeps it; later rows naming it fail.
    """
    claimed: dict[str, int] = {}
    codes: dict[int, str] = {}
    errors: dict[int, GiftCardError] = {}

    for index, row in enumerate(rows):
        if not row.code or not row.code.strip():
            continue
        try:
            code = validate_requested_code(row.code)
        except InvalidValue as e:
            errors[index] = e
            continue

        first = claimed.get(code)
        if first is not None:
            errors[index] = DuplicateCode(f"Code {code} is also used by row {first + 1} of this import.")
            continue

        claimed[code] = index
        codes[index] = code

    return codes, errors


async def import_gift_cards(
    db: AsyncSession,
    *,
    tenant_id: str,
    rows: Sequence[ImportRow],
    actor: str | None = None,
    now: datetime | None = None,
) -> ImportOutcome:
    """
    Issue one card per row. Partial success is the normal outcome: a bad row
    is reported and skipped, rows already issued stay issued.
    StorageFailure is not a row problem and aborts the batch.
    """
    if len(rows) > settings.IMPORT_MAX_ROWS:
        raise InvalidValue(f"Too many rows: {len(rows)} (max {settings.IMPORT_MAX_ROWS}).")

    current = now or now_utc()
    codes, errors = _claim_codes(rows)
    reserved = frozenset(codes.values())

    outcome = ImportOutcome()

    for index, row in enumerate(rows):
        pre_error = errors.get(index)
        if pre_error is not None:
            outcome.failed.append(_fail(index, row, pre_error))
            continue

        try:
            card = await issue_gift_card(
                db,
                tenant_id=tenant_id,
                value=row.value,
                recipient_email=row.recipient_email,
                expires_at=row.expires_at,
                requested_code=codes.get(index),
                source="import",
                actor=actor,
                reserved_codes=reserved,
                now=current,
            )
        except StorageFailure:
            logger.error(
                "gift card import aborted tenant=%s at row=%s (issued=%s)",
                tenant_id,
                index + 1,
                len(outcome.succeeded),
            )
            raise
        except GiftCardError as e:
            outcome.failed.append(_fail(index, row, e))
            continue

        outcome.succeeded.append(card)

    logger.info(
        "gift card import tenant=%s rows=%s succeeded=%s failed=%s",
        tenant_id,
        len(rows),
        len(outcome.succeeded),
        len(outcome.failed),
    )
    return outcome
