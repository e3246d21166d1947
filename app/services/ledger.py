from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, TypeVar
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.gift_card import GiftCard, GiftCardTransaction
from app.services.codes import normalize_code
from app.services.errors import (
    CardExpired,
    CardVoided,
    GiftCardError,
    InsufficientBalance,
    InvalidValue,
    NotFound,
    StorageConflict,
    StorageFailure,
    TenantMismatch,
)
from app.services.expiration import is_expired, now_utc
from app.services.money import to_cents

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
_CONFLICT_MESSAGES = ("database is locked", "could not serialize", "deadlock detected")


@dataclass
class LedgerResult:
    card: GiftCard
    entry: GiftCardTransaction


@dataclass
class LedgerCheck:
    gift_card_id: UUID
    original_value: int
    current_balance: int
    ledger_total: int
    entry_count: int
    mismatched_sequences: list[int] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return (
            self.ledger_total == self.current_balance
            and 0 <= self.current_balance <= self.original_value
            and not self.mismatched_sequences
        )


# -------------------------
# Transaction discipline
# -------------------------

def is_transient_conflict(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, IntegrityError) or not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _CONFLICT_SQLSTATES:
        return True
    text = str(orig).lower()
    return any(m in text for m in _CONFLICT_MESSAGES)


async def run_atomic(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    label: str = "ledger",
    retry_integrity_errors: bool = True,
    retries: int | None = None,
) -> T:
    """
    Run `operation` and commit, as one transaction per attempt.

    Domain errors roll back and propagate unchanged. Transient conflicts
    (lock timeouts, serialization failures) are retried in a new transaction
    up to LEDGER_CONFLICT_RETRIES times, then surface as StorageConflict.
    Anything else from the database becomes StorageFailure.

    With retry_integrity_errors=False an IntegrityError is re-raised as-is so
    the caller can tell which constraint fired (issuance needs this).
    """
    max_retries = settings.LEDGER_CONFLICT_RETRIES if retries is None else retries
    attempt = 0

    while True:
        try:
            result = await operation()
            await db.commit()
            return result

        except GiftCardError:
            await db.rollback()
            raise

        except IntegrityError as e:
            await db.rollback()
            if not retry_integrity_errors:
                raise
            if attempt < max_retries:
                attempt += 1
                logger.warning("%s integrity conflict, retrying attempt=%s", label, attempt)
                continue
            raise StorageConflict() from e

        except SQLAlchemyError as e:
            await db.rollback()
            if is_transient_conflict(e):
                if attempt < max_retries:
                    attempt += 1
                    logger.warning("%s conflict, retrying attempt=%s: %s", label, attempt, e.__class__.__name__)
                    continue
                logger.warning("%s conflict persisted after %s retries", label, max_retries)
                raise StorageConflict() from e
            logger.error("%s storage failure: %s", label, e.__class__.__name__)
            raise StorageFailure() from e

        except Exception:
            await db.rollback()
            raise


# -------------------------
# Reads
# -------------------------

async def _load_card(
    db: AsyncSession,
    *,
    tenant_id: str,
    gift_card_id: UUID,
    lock: bool = False,
) -> GiftCard:
    stmt = select(GiftCard).where(GiftCard.id == gift_card_id).execution_options(populate_existing=True)
    if lock:
        stmt = stmt.with_for_update()

    res = await db.execute(stmt)
    card = res.scalar_one_or_none()

    if card is None:
        raise NotFound()
    if card.tenant_id != tenant_id:
        logger.warning("tenant mismatch on gift card %s (caller tenant=%s)", gift_card_id, tenant_id)
        raise TenantMismatch()
    return card


async def get_card(db: AsyncSession, *, tenant_id: str, gift_card_id: UUID) -> GiftCard:
    return await _load_card(db, tenant_id=tenant_id, gift_card_id=gift_card_id)


async def find_card_by_code(db: AsyncSession, *, tenant_id: str, code: str) -> GiftCard:
    clean = normalize_code(code)
    if not clean:
        raise NotFound()

    res = await db.execute(
        select(GiftCard)
        .where(GiftCard.tenant_id == tenant_id, GiftCard.code == clean)
        .execution_options(populate_existing=True)
    )
    card = res.scalar_one_or_none()
    if card is None:
        raise NotFound()
    return card


async def find_card_by_idempotency_key(db: AsyncSession, *, tenant_id: str, key: str) -> GiftCard | None:
    res = await db.execute(
        select(GiftCard).where(GiftCard.tenant_id == tenant_id, GiftCard.idempotency_key == key)
    )
    return res.scalar_one_or_none()


def _status_filter(status: str, now: datetime):
    not_expired = or_(GiftCard.expires_at.is_(None), GiftCard.expires_at > now)
    if status == "active":
        return and_(GiftCard.status == "active", not_expired)
    if status == "expired":
        return or_(
            GiftCard.status == "expired",
            and_(GiftCard.status == "active", GiftCard.expires_at.is_not(None), GiftCard.expires_at <= now),
        )
    if status in ("fully_redeemed", "voided"):
        return GiftCard.status == status
    raise InvalidValue(f"Unknown status filter: {status}")


async def list_cards(
    db: AsyncSession,
    *,
    tenant_id: str,
    status: str | None = None,
    q: str | None = None,
    offset: int = 0,
    limit: int = 50,
    now: datetime | None = None,
) -> tuple[list[GiftCard], int]:
    current = now or now_utc()
    stmt = select(GiftCard).where(GiftCard.tenant_id == tenant_id)

    if status:
        stmt = stmt.where(_status_filter(status, current))

    if q is not None and q.strip() != "":
        needle = q.strip()
        stmt = stmt.where(
            or_(
                GiftCard.code.contains(normalize_code(needle), autoescape=True),
                GiftCard.purchased_for_email.icontains(needle, autoescape=True),
                GiftCard.purchased_by_email.icontains(needle, autoescape=True),
            )
        )

    total_res = await db.execute(select(func.count()).select_from(stmt.subquery()))
    total = int(total_res.scalar_one())

    res = await db.execute(
        stmt.order_by(GiftCard.purchased_at.desc(), GiftCard.id).offset(offset).limit(limit)
    )
    return list(res.scalars().all()), total


async def list_entries(
    db: AsyncSession,
    *,
    tenant_id: str,
    gift_card_id: UUID,
    offset: int = 0,
    limit: int = 100,
) -> list[GiftCardTransaction]:
    await _load_card(db, tenant_id=tenant_id, gift_card_id=gift_card_id)

    res = await db.execute(
        select(GiftCardTransaction)
        .where(
            GiftCardTransaction.gift_card_id == gift_card_id,
            GiftCardTransaction.tenant_id == tenant_id,
        )
        .order_by(GiftCardTransaction.sequence.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(res.scalars().all())


async def verify_card_ledger(db: AsyncSession, *, tenant_id: str, gift_card_id: UUID) -> LedgerCheck:
    """Recompute the running sum of a card's entries and compare it to the stored balance."""
    card = await _load_card(db, tenant_id=tenant_id, gift_card_id=gift_card_id)

    res = await db.execute(
        select(GiftCardTransaction.sequence, GiftCardTransaction.amount, GiftCardTransaction.balance_after)
        .where(GiftCardTransaction.gift_card_id == gift_card_id)
        .order_by(GiftCardTransaction.sequence.asc())
    )

    running = 0
    count = 0
    mismatched: list[int] = []
    for sequence, amount, balance_after in res.all():
        running += int(amount)
        count += 1
        if running != int(balance_after) or sequence != count:
            mismatched.append(int(sequence))

    return LedgerCheck(
        gift_card_id=card.id,
        original_value=int(card.original_value),
        current_balance=int(card.current_balance),
        ledger_total=running,
        entry_count=count,
        mismatched_sequences=mismatched,
    )


# -------------------------
# Writes
# -------------------------

async def record_issue(
    db: AsyncSession,
    *,
    card: GiftCard,
    description: str | None,
    actor: str | None,
) -> LedgerResult:
    """
    Persist a new card together with its `issue` entry in one commit.
    IntegrityError (duplicate code / idempotency key) is re-raised raw for
    the issuance service to classify.
    """
    value = to_cents(card.original_value, field="value")

    async def _op() -> LedgerResult:
        card.current_balance = value
        card.status = "active"
        card.entry_count = 1
        db.add(card)
        await db.flush()

        entry = GiftCardTransaction(
            gift_card_id=card.id,
            tenant_id=card.tenant_id,
            sequence=1,
            amount=value,
            balance_after=value,
            kind="issue",
            description=description or "Gift card issued",
            actor=actor,
            created_at=card.purchased_at,
        )
        db.add(entry)
        await db.flush()
        return LedgerResult(card=card, entry=entry)

    return await run_atomic(db, _op, label="issue", retry_integrity_errors=False)


def _check_entry(card: GiftCard, *, amount: int, kind: str, now: datetime) -> None:
    if card.status == "voided":
        raise CardVoided()

    if kind == "redeem":
        if amount >= 0:
            raise InvalidValue("Redemption amount must be negative.")
        if is_expired(card, now):
            raise CardExpired()
        if card.current_balance + amount < 0:
            raise InsufficientBalance(
                f"Insufficient balance: requested {-amount}, available {card.current_balance}."
            )
    elif kind == "adjustment":
        if amount == 0:
            raise InvalidValue("Adjustment amount must not be 0.")
        new_balance = card.current_balance + amount
        if new_balance < 0 or new_balance > card.original_value:
            raise InvalidValue(
                f"Adjustment would move the balance to {new_balance}, outside 0..{card.original_value}."
            )
    elif kind == "void":
        if amount != 0:
            raise InvalidValue("Void entries carry no amount.")
    else:
        raise InvalidValue(f"Unsupported ledger entry kind: {kind}")


def _status_expr(kind: str, amount: int):
    # evaluated by the database against the row as it is at UPDATE time
    new_balance = GiftCard.current_balance + amount
    if kind == "void":
        return "voided"
    if kind == "redeem":
        return case((new_balance == 0, "fully_redeemed"), else_=GiftCard.status)
    return case(
        (and_(GiftCard.status == "fully_redeemed", new_balance > 0), "active"),
        else_=GiftCard.status,
    )


async def apply_entry(
    db: AsyncSession,
    *,
    tenant_id: str,
    gift_card_id: UUID,
    amount: int,
    kind: str,
    description: str | None,
    actor: str | None,
    now: datetime | None = None,
) -> LedgerResult:
    """
    The single write path for existing cards. Atomic: lock row, validate,
    conditional balance update, append entry, commit.

    The UPDATE re-checks the balance bounds and void status in its WHERE
    clause, so two concurrent debits cannot both land even where row locks
    are unavailable.
    """
    signed = to_cents(amount, field="amount", allow_zero=(kind == "void"), allow_negative=True)
    current = now or now_utc()

    async def _op() -> LedgerResult:
        card = await _load_card(db, tenant_id=tenant_id, gift_card_id=gift_card_id, lock=True)
        _check_entry(card, amount=signed, kind=kind, now=current)

        new_balance_expr = GiftCard.current_balance + signed
        values = {
            "current_balance": new_balance_expr,
            "entry_count": GiftCard.entry_count + 1,
            "status": _status_expr(kind, signed),
            "updated_at": current,
        }
        if kind == "void":
            values["voided_at"] = current

        res = await db.execute(
            update(GiftCard)
            .where(
                GiftCard.id == gift_card_id,
                GiftCard.tenant_id == tenant_id,
                GiftCard.status != "voided",
                new_balance_expr >= 0,
                new_balance_expr <= GiftCard.original_value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if res.rowcount != 1:
            fresh = await _load_card(db, tenant_id=tenant_id, gift_card_id=gift_card_id)
            if fresh.status == "voided":
                raise CardVoided()
            if kind == "adjustment":
                raise InvalidValue("Adjustment would move the balance out of range.")
            raise InsufficientBalance(
                f"Insufficient balance: requested {-signed}, available {fresh.current_balance}."
            )

        card = await _load_card(db, tenant_id=tenant_id, gift_card_id=gift_card_id)

        entry = GiftCardTransaction(
            gift_card_id=card.id,
            tenant_id=tenant_id,
            sequence=card.entry_count,
            amount=signed,
            balance_after=card.current_balance,
            kind=kind,
            description=description,
            actor=actor,
            created_at=current,
        )
        db.add(entry)
        await db.flush()
        return LedgerResult(card=card, entry=entry)

    result = await run_atomic(db, _op, label=kind)
    logger.info(
        "gift card %s: %s %s -> balance %s (seq %s)",
        result.card.code,
        kind,
        signed,
        result.card.current_balance,
        result.entry.sequence,
    )
    return result


async def void_card(
    db: AsyncSession,
    *,
    tenant_id: str,
    gift_card_id: UUID,
    reason: str | None,
    actor: str | None,
) -> LedgerResult:
    return await apply_entry(
        db,
        tenant_id=tenant_id,
        gift_card_id=gift_card_id,
        amount=0,
        kind="void",
        description=f"Voided: {reason}" if reason else "Voided",
        actor=actor,
    )


async def adjust_balance(
    db: AsyncSession,
    *,
    tenant_id: str,
    gift_card_id: UUID,
    amount: int,
    description: str | None,
    actor: str | None,
) -> LedgerResult:
    """Admin correction: positive amount credits (refund), negative debits."""
    return await apply_entry(
        db,
        tenant_id=tenant_id,
        gift_card_id=gift_card_id,
        amount=amount,
        kind="adjustment",
        description=description or "Manual adjustment",
        actor=actor,
    )
