from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.services.errors import InvalidValue
from app.services.expiration import as_utc, compute_expiry, effective_status, is_expired, validate_expiry

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def card(status="active", expires_at=None):
    return SimpleNamespace(status=status, expires_at=expires_at)


def test_compute_expiry():
    assert compute_expiry(NOW, None) is None
    assert compute_expiry(NOW, 0) is None
    assert compute_expiry(NOW, 365) == NOW + timedelta(days=365)
    with pytest.raises(InvalidValue):
        compute_expiry(NOW, -1)


def test_validate_expiry_requires_future():
    assert validate_expiry(NOW + timedelta(seconds=1), NOW) == NOW + timedelta(seconds=1)
    with pytest.raises(InvalidValue):
        validate_expiry(NOW, NOW)
    with pytest.raises(InvalidValue):
        validate_expiry(NOW - timedelta(days=1), NOW)


def test_naive_datetimes_are_utc():
    naive = datetime(2025, 3, 1, 12, 0)
    assert as_utc(naive) == NOW


def test_expiry_boundary_is_inclusive():
    c = card(expires_at=NOW)
    assert is_expired(c, NOW)
    assert not is_expired(c, NOW - timedelta(microseconds=1))
    assert not is_expired(card(expires_at=None), NOW)


def test_effective_status_precedence():
    past = NOW - timedelta(days=1)
    assert effective_status(card("voided", past), NOW) == "voided"
    assert effective_status(card("fully_redeemed", past), NOW) == "fully_redeemed"
    assert effective_status(card("active", past), NOW) == "expired"
    assert effective_status(card("active", NOW + timedelta(days=1)), NOW) == "active"
    assert effective_status(card("active", None), NOW) == "active"
