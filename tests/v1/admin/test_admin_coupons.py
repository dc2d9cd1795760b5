# tests/v1/admin/test_admin_coupons.py

from datetime import timedelta

import pytest
from httpx import AsyncClient

from app.models.user import User
from app.utils.time import utcnow

pytestmark = pytest.mark.asyncio


def _coupon_payload(code="SALE10", **overrides) -> dict:
    payload = {
        "code": code,
        "name": f"Coupon {code}",
        "discount": 10,
        "discount_unit": "PERCENT",
        "expires_at": (utcnow() + timedelta(days=30)).isoformat(),
    }
    payload.update(overrides)
    return payload


async def test_store_coupon_crud(client: AsyncClient, admin_auth_headers: dict, admin_user: User):
    created = await client.post("/api/v1/admin/coupons", json=_coupon_payload(), headers=admin_auth_headers)
    assert created.status_code == 201
    coupon = created.json()
    assert coupon["created_by"] == admin_user.id

    duplicate = await client.post("/api/v1/admin/coupons", json=_coupon_payload(), headers=admin_auth_headers)
    assert duplicate.status_code == 409

    by_code = await client.get("/api/v1/admin/coupons/code/SALE10", headers=admin_auth_headers)
    assert by_code.json()["id"] == coupon["id"]

    patched = await client.patch(
        f"/api/v1/admin/coupons/{coupon['id']}", json={"discount": 15}, headers=admin_auth_headers
    )
    assert patched.json()["discount"] == 15

    listing = await client.get("/api/v1/admin/coupons", params={"search": "sale"}, headers=admin_auth_headers)
    assert listing.json()["total_items"] == 1

    deleted = await client.delete(f"/api/v1/admin/coupons/{coupon['id']}", headers=admin_auth_headers)
    assert deleted.json()["success"] is True

    missing = await client.get(f"/api/v1/admin/coupons/{coupon['id']}", headers=admin_auth_headers)
    assert missing.status_code == 404


async def test_store_coupon_percent_limit(client: AsyncClient, admin_auth_headers: dict):
    response = await client.post(
        "/api/v1/admin/coupons", json=_coupon_payload(discount=101), headers=admin_auth_headers
    )

    assert response.status_code == 400


async def test_store_coupon_apply_via_user_endpoint(client: AsyncClient, admin_auth_headers: dict, user_auth_headers: dict):
    coupon = (await client.post("/api/v1/admin/coupons", json=_coupon_payload(), headers=admin_auth_headers)).json()

    verify = await client.post(
        "/api/v1/coupons/verify", json={"code": "SALE10", "cart_total": 300}, headers=user_auth_headers
    )
    assert verify.json()["valid"] is True
    assert verify.json()["discount"] == 30.0

    applied = await client.post(f"/api/v1/coupons/{coupon['id']}/apply", headers=user_auth_headers)
    assert applied.status_code == 200

    again = await client.post(f"/api/v1/coupons/{coupon['id']}/apply", headers=user_auth_headers)
    assert again.status_code == 400


async def test_create_user_coupon_for_points(client: AsyncClient, admin_auth_headers: dict, user_auth_headers: dict, test_user: User, add_transaction):
    add_transaction(test_user, 100)

    response = await client.post(
        "/api/v1/admin/coupons/user",
        json={"user_id": test_user.id, "code": "PTS-15", "discount": 15, "discount_unit": "FLAT", "points": 60},
        headers=admin_auth_headers,
    )

    assert response.status_code == 201
    coupon_user = response.json()
    assert coupon_user["points"] == 60

    balance = (await client.get("/api/v1/points/me/balance", headers=user_auth_headers)).json()
    assert balance["available_points"] == 40

    fetched = await client.get(f"/api/v1/admin/coupons/user/{coupon_user['id']}", headers=admin_auth_headers)
    assert fetched.json()["code"] == "PTS-15"

    by_code = await client.get("/api/v1/admin/coupons/user/code/PTS-15", headers=admin_auth_headers)
    assert by_code.json()["id"] == coupon_user["id"]

    missing = await client.get("/api/v1/admin/coupons/user/code/NOPE", headers=admin_auth_headers)
    assert missing.status_code == 404

    listing = await client.get("/api/v1/admin/coupons/user", params={"user_id": test_user.id}, headers=admin_auth_headers)
    assert listing.json()["total_items"] == 1


async def test_create_user_coupon_without_enough_points(client: AsyncClient, admin_auth_headers: dict, test_user: User, add_transaction):
    add_transaction(test_user, 10)

    response = await client.post(
        "/api/v1/admin/coupons/user",
        json={"user_id": test_user.id, "code": "PTS-15", "discount": 15, "discount_unit": "FLAT", "points": 60},
        headers=admin_auth_headers,
    )

    assert response.status_code == 400


async def test_create_user_coupon_with_percent_over_100(client: AsyncClient, admin_auth_headers: dict, test_user: User):
    response = await client.post(
        "/api/v1/admin/coupons/user",
        json={"user_id": test_user.id, "code": "PTS-150", "discount": 150, "discount_unit": "PERCENT", "points": 1},
        headers=admin_auth_headers,
    )

    assert response.status_code == 422


async def test_user_coupon_routes_require_admin(client: AsyncClient, user_auth_headers: dict):
    response = await client.get("/api/v1/admin/coupons/user", headers=user_auth_headers)

    assert response.status_code == 403
