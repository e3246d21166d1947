import pytest

from app.core.config import settings
from app.services import codes
from app.services.codes import CODE_ALPHABET, generate_code, normalize_code, validate_requested_code
from app.services.errors import GenerationExhausted, InvalidValue
from app.services.issuance import issue_gift_card
from tests.conftest import OTHER_TENANT, TENANT


def test_normalize_code_trims_and_uppercases():
    assert normalize_code("  gc-ab12 ") == "GC-AB12"
    assert normalize_code(None) == ""


def test_validate_requested_code():
    assert validate_requested_code("summer-2024") == "SUMMER-2024"
    for bad in ["", "abc", "has space", "emoji✓code", "x" * 65]:
        with pytest.raises(InvalidValue):
            validate_requested_code(bad)


def test_drawn_codes_use_readable_alphabet():
    code = codes._draw_code("GC")
    prefix, *groups = code.split("-")
    assert prefix == "GC"
    assert len(groups) == 3
    for group in groups:
        assert len(group) == 4
        assert set(group) <= set(CODE_ALPHABET)
    assert not set("01IO") & set(CODE_ALPHABET)


@pytest.mark.asyncio
async def test_generate_code_skips_reserved_and_existing(db, monkeypatch):
    existing = await issue_gift_card(db, tenant_id=TENANT, value=1000, requested_code="GC-AAAA-AAAA-AAAA")
    draws = iter(["GC-AAAA-AAAA-AAAA", "GC-BBBB-BBBB-BBBB", "GC-CCCC-CCCC-CCCC"])
    monkeypatch.setattr(codes, "_draw_code", lambda prefix: next(draws))

    code = await generate_code(db, tenant_id=TENANT, reserved={"GC-BBBB-BBBB-BBBB"})

    assert existing.code == "GC-AAAA-AAAA-AAAA"
    assert code == "GC-CCCC-CCCC-CCCC"


@pytest.mark.asyncio
async def test_same_code_is_free_in_another_tenant(db, monkeypatch):
    await issue_gift_card(db, tenant_id=TENANT, value=1000, requested_code="GC-AAAA-AAAA-AAAA")
    monkeypatch.setattr(codes, "_draw_code", lambda prefix: "GC-AAAA-AAAA-AAAA")

    assert await generate_code(db, tenant_id=OTHER_TENANT) == "GC-AAAA-AAAA-AAAA"


@pytest.mark.asyncio
async def test_generate_code_gives_up_after_max_attempts(db, monkeypatch):
    await issue_gift_card(db, tenant_id=TENANT, value=1000, requested_code="GC-AAAA-AAAA-AAAA")
    calls = []

    def always_taken(prefix):
        calls.append(prefix)
        return "GC-AAAA-AAAA-AAAA"

    monkeypatch.setattr(codes, "_draw_code", always_taken)

    with pytest.raises(GenerationExhausted):
        await generate_code(db, tenant_id=TENANT)
    assert len(calls) == settings.GIFT_CARD_CODE_MAX_ATTEMPTS
