import pytest

from tests.conftest import OTHER_TENANT, TENANT, auth_headers

SERVICE_HEADERS = {"X-Service-Key": "test-service-key"}


async def create_card(client, headers, **body):
    payload = {"value": 5000, **body}
    r = await client.post("/admin/gift-cards", json=payload, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_admin_routes_require_admin_token(client, staff_headers):
    r = await client.get("/admin/gift-cards")
    assert r.status_code == 401

    r = await client.get("/admin/gift-cards", headers=staff_headers)
    assert r.status_code == 403

    r = await client.get("/admin/gift-cards", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_issue_redeem_and_history_over_http(client, admin_headers, staff_headers, notifier):
    card = await create_card(client, admin_headers, recipient_email="friend@example.com")
    assert card["status"] == "active"
    assert card["current_balance"] == 5000

    r = await client.get(f"/pos/gift-cards/{card['code'].lower()}", headers=staff_headers)
    assert r.status_code == 200
    assert r.json()["id"] == card["id"]

    r = await client.post(
        "/pos/gift-cards/redeem",
        json={"code": card["code"], "amount": 2000},
        headers=staff_headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["new_balance"] == 3000
    assert r.json()["status"] == "active"

    r = await client.post(
        "/pos/gift-cards/redeem",
        json={"code": card["code"], "amount": 3001},
        headers=staff_headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "insufficient_balance"

    r = await client.get(f"/admin/gift-cards/{card['id']}/transactions", headers=admin_headers)
    assert r.status_code == 200
    items = r.json()["items"]
    assert [(i["kind"], i["amount"], i["balance_after"]) for i in items] == [
        ("redeem", -2000, 3000),
        ("issue", 5000, 5000),
    ]
    assert items[0]["actor"] == "clerk-1"

    r = await client.get(f"/admin/gift-cards/{card['id']}/audit", headers=admin_headers)
    assert r.json()["is_consistent"] is True

    assert [e["event"] for e in notifier.events] == ["gift_card_issued", "gift_card_redeemed"]


@pytest.mark.asyncio
async def test_fractional_or_string_amounts_are_rejected(client, admin_headers, staff_headers):
    card = await create_card(client, admin_headers)

    for amount in [10.5, "100", 0]:
        r = await client.post(
            "/pos/gift-cards/redeem",
            json={"code": card["code"], "amount": amount},
            headers=staff_headers,
        )
        assert r.status_code == 422

    r = await client.post("/admin/gift-cards", json={"value": 25.5}, headers=admin_headers)
    assert r.status_code == 422

    r = await client.post("/admin/gift-cards", json={"value": 10**20}, headers=admin_headers)
    assert r.status_code == 422

    r = await client.post(
        "/purchases/gift-cards/complete",
        json={"tenant_id": TENANT, "session_id": "cs_big", "amount": 10**20},
        headers=SERVICE_HEADERS,
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_other_tenant_sees_not_found(client, admin_headers):
    card = await create_card(client, admin_headers)
    other_admin = auth_headers("admin", tenant_id=OTHER_TENANT, user_id="intruder")

    r_other = await client.get(f"/admin/gift-cards/{card['id']}", headers=other_admin)
    r_missing = await client.get(
        "/admin/gift-cards/00000000-0000-0000-0000-000000000000", headers=admin_headers
    )
    assert r_other.status_code == 404
    assert r_other.json() == r_missing.json()

    r = await client.post(f"/admin/gift-cards/{card['id']}/void", json={"reason": "x"}, headers=other_admin)
    assert r.status_code == 404

    r = await client.get(f"/admin/gift-cards/{card['id']}", headers=admin_headers)
    assert r.json()["status"] == "active"


@pytest.mark.asyncio
async def test_duplicate_code_conflict(client, admin_headers):
    await create_card(client, admin_headers, code="SPRING-25")
    r = await client.post("/admin/gift-cards", json={"value": 1000, "code": "spring-25"}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "duplicate_code"


@pytest.mark.asyncio
async def test_void_and_adjust_over_http(client, admin_headers, staff_headers):
    card = await create_card(client, admin_headers)

    r = await client.post(f"/admin/gift-cards/{card['id']}/adjust", json={"amount": -1500}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["card"]["current_balance"] == 3500
    assert r.json()["transaction"]["kind"] == "adjustment"

    r = await client.post(f"/admin/gift-cards/{card['id']}/void", json={"reason": "lost"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["card"]["status"] == "voided"
    assert r.json()["transaction"]["amount"] == 0

    r = await client.post(
        "/pos/gift-cards/redeem",
        json={"code": card["code"], "amount": 100},
        headers=staff_headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "card_voided"

    r = await client.get("/admin/gift-cards", params={"status": "voided"}, headers=admin_headers)
    assert r.json()["total"] == 1


@pytest.mark.asyncio
async def test_patch_details(client, admin_headers):
    card = await create_card(client, admin_headers)

    r = await client.patch(
        f"/admin/gift-cards/{card['id']}",
        json={"purchased_by_name": "Robin"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["purchased_by_name"] == "Robin"
    assert r.json()["current_balance"] == 5000


@pytest.mark.asyncio
async def test_import_endpoint_reports_partial_failures(client, admin_headers):
    r = await client.post(
        "/admin/gift-cards/import",
        json={
            "rows": [
                {"code": "OLD-0001", "value": 2500},
                {"code": "OLD-0001", "value": 2500},
                {"value": "12.50"},
                {"value": 1000},
            ]
        },
        headers=admin_headers,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert len(body["succeeded"]) == 2
    assert [(f["index"], f["error"]) for f in body["failed"]] == [(1, "duplicate_code"), (2, "invalid_value")]


@pytest.mark.asyncio
async def test_settings_and_public_checkout(client, admin_headers):
    r = await client.get(f"/public/{TENANT}/gift-card-settings")
    assert r.json()["enabled"] is False

    r = await client.put(
        "/admin/gift-card-settings",
        json={"enabled": True, "preset_amounts_cents": [5000, 2500], "expiry_days": 365},
        headers=admin_headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["preset_amounts_cents"] == [2500, 5000]

    r = await client.get(f"/public/{TENANT}/gift-card-settings")
    assert r.json()["enabled"] is True
    assert r.json()["expiry_days"] == 365

    card = await create_card(client, admin_headers, value=3000)
    assert card["expires_at"] is not None

    r = await client.post(
        f"/public/{TENANT}/gift-cards/quote",
        json={"code": card["code"], "amount_due": 4500},
    )
    assert r.status_code == 200
    assert r.json()["applicable_amount"] == 3000
    assert r.json()["remaining_due"] == 1500

    r = await client.post(
        f"/public/{OTHER_TENANT}/gift-cards/quote",
        json={"code": card["code"], "amount_due": 4500},
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_purchase_completion_needs_service_key_and_is_idempotent(client, admin_headers, notifier):
    await client.put("/admin/gift-card-settings", json={"enabled": True}, headers=admin_headers)
    body = {"tenant_id": TENANT, "session_id": "cs_abc", "amount": 5000, "recipient_email": "r@example.com"}

    r = await client.post("/purchases/gift-cards/complete", json=body)
    assert r.status_code == 401

    r1 = await client.post("/purchases/gift-cards/complete", json=body, headers=SERVICE_HEADERS)
    r2 = await client.post("/purchases/gift-cards/complete", json=body, headers=SERVICE_HEADERS)
    assert r1.status_code == 200, r1.text
    assert r1.json()["id"] == r2.json()["id"]
    assert r1.json()["source"] == "purchase"

    r = await client.post(
        "/purchases/gift-cards/complete",
        json={**body, "session_id": "cs_def", "amount": 1},
        headers=SERVICE_HEADERS,
    )
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "invalid_value"

    r = await client.post(
        "/purchases/gift-cards/complete",
        json={**body, "tenant_id": OTHER_TENANT, "session_id": "cs_ghi"},
        headers=SERVICE_HEADERS,
    )
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "gift_cards_disabled"

    assert len(notifier.events) == 2
