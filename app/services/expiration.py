"""
Expiry rules. Pure functions: no storage access.

Cards are never swept to "expired" in storage. Every read and redeem path
asks `is_expired` / `effective_status`, so there is no sweeper to race a
concurrent redemption.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

from app.services.errors import InvalidValue


class _Expiring(Protocol):
    status: str
    expires_at: datetime | None


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we store is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_expiry(issued_at: datetime, expiry_days: int | None) -> datetime | None:
    if expiry_days is None or expiry_days == 0:
        return None
    if expiry_days < 0:
        raise InvalidValue("expiry_days must not be negative.")
    return as_utc(issued_at) + timedelta(days=expiry_days)


def validate_expiry(expires_at: datetime, now: datetime | None = None) -> datetime:
    current = as_utc(now or now_utc())
    value = as_utc(expires_at)
    if value <= current:
        raise InvalidValue("expires_at must be in the future.")
    return value


def is_expired(card: _Expiring, now: datetime | None = None) -> bool:
    if card.expires_at is None:
        return False
    return as_utc(now or now_utc()) >= as_utc(card.expires_at)


def effective_status(card: _Expiring, now: datetime | None = None) -> str:
    """The one place card status is derived. voided > fully_redeemed > expired > stored."""
    if card.status == "voided":
        return "voided"
    if card.status == "fully_redeemed":
        return "fully_redeemed"
    if card.status == "expired" or is_expired(card, now):
        return "expired"
    return card.status
