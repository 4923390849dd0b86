import os

import pytest
from fastapi import HTTPException

from app.services.auth import Actor
from app.services.idempotency import get_or_reserve_idempotency, reserve_idempotency_key
from app.services.outbox_dispatcher import drain_outbox

LISTING_BODY = {
    "title": "iPhone 12 64Go",
    "description": "Téléphone débloqué, batterie à 89%, avec chargeur.",
    "price": "250000",
    "location": "Dakar, Plateau",
    "category": "electronique",
    "condition": "Occasion",
    "images": ["https://cdn.test.local/iphone-1.jpg"],
}


async def _create_and_approve(client, seed_users) -> str:
    r = await client.post("/v1/products", json=LISTING_BODY, headers=seed_users["seller"]["headers"])
    assert r.status_code == 201, r.text
    listing_id = r.json()["id"]

    r = await client.post(
        "/v1/admin/products/moderate",
        json={"product_id": listing_id, "action": "approve"},
        headers=seed_users["moderator"]["headers"],
    )
    assert r.status_code == 200, r.text
    return listing_id


@pytest.mark.asyncio
async def test_listing_lifecycle_over_http(client, seed_users):
    seller = seed_users["seller"]["headers"]

    r = await client.post("/v1/products", json=LISTING_BODY, headers=seller)
    assert r.status_code == 201, r.text
    created = r.json()
    assert created["status"] == "PENDING"
    assert created["renewal_count"] == 0

    # not public yet
    r = await client.get("/v1/products")
    assert r.status_code == 200
    assert r.json()["total"] == 0

    # plain users cannot moderate
    r = await client.post(
        "/v1/admin/products/moderate",
        json={"product_id": created["id"], "action": "approve"},
        headers=seller,
    )
    assert r.status_code == 403

    r = await client.get("/v1/admin/products/pending", headers=seed_users["moderator"]["headers"])
    assert [p["id"] for p in r.json()] == [created["id"]]

    r = await client.post(
        "/v1/admin/products/moderate",
        json={"product_id": created["id"], "action": "approve"},
        headers=seed_users["moderator"]["headers"],
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"product_id": created["id"], "status": "APPROVED"}

    # a second decision is refused
    r = await client.post(
        "/v1/admin/products/moderate",
        json={"product_id": created["id"], "action": "reject", "reason": "late"},
        headers=seed_users["admin"]["headers"],
    )
    assert r.status_code == 409
    assert r.json()["code"] == "already_moderated"

    r = await client.get("/v1/products")
    assert [p["id"] for p in r.json()["items"]] == [created["id"]]

    r = await client.get(f"/v1/products/{created['id']}")
    assert r.status_code == 200
    assert r.json()["title"] == LISTING_BODY["title"]

    r = await client.get("/v1/admin/stats", headers=seed_users["admin"]["headers"])
    assert r.json()["listings"]["APPROVED"] == 1


@pytest.mark.asyncio
async def test_create_listing_validation(client, seed_users):
    bad = dict(LISTING_BODY, description="short")
    r = await client.post("/v1/products", json=bad, headers=seed_users["seller"]["headers"])
    assert r.status_code == 422

    bad = dict(LISTING_BODY, images=[f"https://cdn.test.local/{i}.jpg" for i in range(11)])
    r = await client.post("/v1/products", json=bad, headers=seed_users["seller"]["headers"])
    assert r.status_code == 422

    r = await client.post("/v1/products", json=LISTING_BODY)
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_reject_requires_reason(client, seed_users):
    r = await client.post("/v1/products", json=LISTING_BODY, headers=seed_users["seller"]["headers"])
    listing_id = r.json()["id"]

    r = await client.post(
        "/v1/admin/products/moderate",
        json={"product_id": listing_id, "action": "reject"},
        headers=seed_users["moderator"]["headers"],
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_purchase_then_boost_until_broke(client, seed_users):
    listing_id = await _create_and_approve(client, seed_users)
    seller = seed_users["seller"]["headers"]

    r = await client.post("/v1/credits/purchase", json={"amount": 10, "payment_method": "stripe"}, headers=seller)
    assert r.status_code == 201, r.text
    assert r.json()["balance_after"] == 10

    r = await client.post("/v1/credits/boost", json={"product_id": listing_id, "boost_type": "basic"}, headers=seller)
    assert r.status_code == 200, r.text
    assert r.json()["new_balance"] == 5
    assert r.json()["cost"] == 5

    r = await client.post("/v1/credits/boost", json={"product_id": listing_id, "boost_type": "urgent"}, headers=seller)
    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "insufficient_balance"
    assert body["details"] == [{"required": 30, "available": 5}]

    r = await client.get("/v1/credits/balance", headers=seller)
    assert r.json()["balance"] == 5
    assert r.json()["total_spent"] == 5

    r = await client.get("/v1/credits/history", headers=seller)
    assert [t["type"] for t in r.json()] == ["boost", "purchase"]


@pytest.mark.asyncio
async def test_boost_someone_elses_listing_is_404(client, seed_users):
    listing_id = await _create_and_approve(client, seed_users)
    other = seed_users["other"]["headers"]
    await client.post("/v1/credits/purchase", json={"amount": 10, "payment_method": "stripe"}, headers=other)

    r = await client.post("/v1/credits/boost", json={"product_id": listing_id, "boost_type": "basic"}, headers=other)
    assert r.status_code == 404
    assert r.json()["code"] == "not_found_or_forbidden"


@pytest.mark.asyncio
async def test_purchase_with_idempotency_key_is_applied_once(client, seed_users):
    seller = dict(seed_users["seller"]["headers"], **{"Idempotency-Key": "buy-10"})
    body = {"amount": 10, "payment_method": "mobile_money"}

    r1 = await client.post("/v1/credits/purchase", json=body, headers=seller)
    r2 = await client.post("/v1/credits/purchase", json=body, headers=seller)
    assert r1.status_code == 201, r1.text
    assert r2.status_code == 201, r2.text
    assert r1.json()["id"] == r2.json()["id"]

    r = await client.get("/v1/credits/balance", headers=seed_users["seller"]["headers"])
    assert r.json()["balance"] == 10

    r = await client.post("/v1/credits/purchase", json={"amount": 20, "payment_method": "stripe"}, headers=seller)
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_losing_a_race_for_the_same_idempotency_key_is_409(db_session, seed_users):
    actor = Actor(user_id=seed_users["seller"]["user_id"], email="seller@test.local", role="USER")
    args = {"request_path": "/v1/credits/purchase", "request_body": {"amount": 10}}
    assert await get_or_reserve_idempotency(db=db_session, actor=actor, idempotency_key="k-race", **args) is None
    await db_session.commit()

    # the other request checked before the first one committed, then tries to insert
    with pytest.raises(HTTPException) as exc:
        await reserve_idempotency_key(db_session, actor=actor, idempotency_key="k-race", request_hash="sha256:x")
    assert exc.value.status_code == 409

    existing = await get_or_reserve_idempotency(db=db_session, actor=actor, idempotency_key="k-race", **args)
    assert existing is not None
    assert existing.response == {}


@pytest.mark.asyncio
async def test_purchase_over_maximum(client, seed_users):
    r = await client.post(
        "/v1/credits/purchase",
        json={"amount": 501, "payment_method": "stripe"},
        headers=seed_users["seller"]["headers"],
    )
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_earn_and_refund_are_admin_only(client, seed_users):
    target = seed_users["seller"]["user_id"]
    body = {"user_id": target, "amount": 7, "reason": "goodwill"}

    r = await client.post("/v1/credits/earn", json=body, headers=seed_users["seller"]["headers"])
    assert r.status_code == 403

    r = await client.post("/v1/credits/earn", json=body, headers=seed_users["admin"]["headers"])
    assert r.status_code == 200, r.text
    assert r.json()["balance_after"] == 7

    r = await client.post(
        "/v1/credits/refund",
        json={"user_id": target, "amount": 3, "reason": "correction"},
        headers=seed_users["admin"]["headers"],
    )
    assert r.status_code == 200, r.text
    assert r.json()["amount"] == -3

    r = await client.post(
        "/v1/credits/earn",
        json={"user_id": "usr_nobody", "amount": 1, "reason": "x"},
        headers=seed_users["admin"]["headers"],
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_packages_need_no_auth(client):
    r = await client.get("/v1/credits/packages")
    assert r.status_code == 200
    assert len(r.json()) == 4


@pytest.mark.asyncio
async def test_renew_over_http(client, seed_users):
    listing_id = await _create_and_approve(client, seed_users)

    r = await client.post(f"/v1/products/{listing_id}/renew", headers=seed_users["other"]["headers"])
    assert r.status_code == 403

    for n in (1, 2, 3):
        r = await client.post(f"/v1/products/{listing_id}/renew", headers=seed_users["seller"]["headers"])
        assert r.status_code == 200, r.text
        assert r.json()["renewal_count"] == n

    r = await client.post(f"/v1/products/{listing_id}/renew", headers=seed_users["seller"]["headers"])
    assert r.status_code == 409
    assert r.json()["code"] == "renewal_limit_exceeded"

    r = await client.post("/v1/products/lst_missing/renew", headers=seed_users["seller"]["headers"])
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_auto_expire_is_admin_only(client, seed_users):
    r = await client.post("/v1/products/auto-expire", headers=seed_users["moderator"]["headers"])
    assert r.status_code == 403

    r = await client.post("/v1/products/auto-expire", headers=seed_users["admin"]["headers"])
    assert r.status_code == 200
    assert r.json() == {"expired": 0}


@pytest.mark.asyncio
async def test_update_sell_and_delete(client, seed_users):
    listing_id = await _create_and_approve(client, seed_users)
    seller = seed_users["seller"]["headers"]

    r = await client.put(f"/v1/products/{listing_id}", json={"price": "240000"}, headers=seller)
    assert r.status_code == 200, r.text

    r = await client.put(f"/v1/products/{listing_id}", json={"price": "1"}, headers=seed_users["other"]["headers"])
    assert r.status_code == 403

    r = await client.post(f"/v1/products/{listing_id}/sold", headers=seller)
    assert r.status_code == 200
    assert r.json()["status"] == "SOLD"

    r = await client.post(f"/v1/products/{listing_id}/renew", headers=seller)
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_state"

    r = await client.delete(f"/v1/products/{listing_id}", headers=seller)
    assert r.status_code == 204

    r = await client.get(f"/v1/products/{listing_id}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_notifications_after_approval(client, db_session, seed_users):
    await _create_and_approve(client, seed_users)
    seller = seed_users["seller"]["headers"]

    await drain_outbox(db_session)

    r = await client.get("/v1/notifications/unread-count", headers=seller)
    assert r.json() == {"count": 1}

    r = await client.get("/v1/notifications", headers=seller)
    items = r.json()
    assert [n["type"] for n in items] == ["product_approved"]
    assert items[0]["payload"]["title"] == "Listing approved!"

    r = await client.post("/v1/notifications/read", json={"ids": [items[0]["id"]]}, headers=seller)
    assert r.json() == {"count": 1}

    r = await client.get("/v1/notifications", params={"read": "false"}, headers=seller)
    assert r.json() == []

    r = await client.delete(f"/v1/notifications/{items[0]['id']}", headers=seller)
    assert r.status_code == 204
    r = await client.delete(f"/v1/notifications/{items[0]['id']}", headers=seller)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_internal_dispatch_requires_key(client):
    r = await client.post("/v1/internal/outbox/dispatch")
    assert r.status_code == 403

    r = await client.post(
        "/v1/internal/outbox/dispatch",
        headers={"X-Internal-Admin-Key": os.environ["INTERNAL_ADMIN_KEY"]},
    )
    # empty outbox: nothing is claimed, the broker is never touched
    assert r.status_code == 200
    assert r.json() == {"mode": "enqueued", "count": 0}


@pytest.mark.asyncio
async def test_internal_drain_processes_inline(client, seed_users):
    await _create_and_approve(client, seed_users)
    headers = {"X-Internal-Admin-Key": os.environ["INTERNAL_ADMIN_KEY"]}

    r = await client.post("/v1/internal/outbox/drain", headers=headers)
    assert r.status_code == 200, r.text
    # listing.created (silent) + listing.approved
    assert r.json() == {"mode": "processed", "count": 2}

    r = await client.get("/v1/notifications/unread-count", headers=seed_users["seller"]["headers"])
    assert r.json() == {"count": 1}


@pytest.mark.asyncio
async def test_audit_trail_records_moderation(client, seed_users):
    listing_id = await _create_and_approve(client, seed_users)

    r = await client.get("/v1/admin/audit", params={"target_id": listing_id}, headers=seed_users["moderator"]["headers"])
    assert r.status_code == 403

    r = await client.get("/v1/admin/audit", params={"target_id": listing_id}, headers=seed_users["admin"]["headers"])
    assert r.status_code == 200
    rows = r.json()
    assert [a["action"] for a in rows] == ["listing.approve"]
    assert rows[0]["actor_id"] == seed_users["moderator"]["user_id"]
