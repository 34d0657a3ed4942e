from typing import Callable, Dict
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from couponhub.core.config import settings


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def _trust_forwarded_for(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "trust_forwarded_for", True)


def test_add_coupon_requires_admin(test_app: Dict[str, object], admin_token: Callable) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    token, _ = admin_token()

    anonymous = client.post("/api/coupons/admin/add", json={"code": "NEW-1"})
    assert anonymous.status_code == 403

    created = client.post("/api/coupons/admin/add", json={"code": "  NEW-1  "}, headers=auth_headers(token))
    assert created.status_code == 201, created.text
    assert created.json() == {"message": "Coupon added successfully"}

    duplicate = client.post("/api/coupons/admin/add", json={"code": "NEW-1"}, headers=auth_headers(token))
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "Coupon code already exists"

    blank = client.post("/api/coupons/admin/add", json={"code": "   "}, headers=auth_headers(token))
    assert blank.status_code == 422

    listing = client.get("/api/admin/coupons", headers=auth_headers(token)).json()
    assert [(item["code"], item["status"], item["assignedTo"]) for item in listing] == [("NEW-1", "available", None)]


def test_added_coupons_are_claimed_in_insertion_order(test_app: Dict[str, object], admin_token: Callable) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    token, _ = admin_token()
    for code in ("FIFO-1", "FIFO-2"):
        assert client.post("/api/coupons/admin/add", json={"code": code}, headers=auth_headers(token)).status_code == 201

    res = client.get("/api/coupons/claim", headers={"X-Forwarded-For": "1.2.3.4"})
    assert res.json()["coupon"] == "FIFO-1"


def test_update_coupon(test_app: Dict[str, object], admin_token: Callable, seed_coupons: Callable) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    token, _ = admin_token()
    coupon_id, other_id = seed_coupons("UPD-1", "UPD-2")
    before = client.get("/api/admin/coupons", headers=auth_headers(token)).json()[0]

    unchanged = client.put(f"/api/admin/coupon/update/{coupon_id}", json={}, headers=auth_headers(token))
    assert unchanged.status_code == 200, unchanged.text
    assert unchanged.json() == before

    renamed = client.put(
        f"/api/admin/coupon/update/{coupon_id}",
        json={"code": "UPD-RENAMED", "status": "claimed", "assignedTo": "support-desk"},
        headers=auth_headers(token),
    )
    assert renamed.status_code == 200, renamed.text
    body = renamed.json()
    assert body["code"] == "UPD-RENAMED"
    assert body["status"] == "claimed"
    assert body["assignedTo"] == "support-desk"
    assert body["createdAt"] == before["createdAt"]

    clash = client.put(f"/api/admin/coupon/update/{other_id}", json={"code": "UPD-RENAMED"}, headers=auth_headers(token))
    assert clash.status_code == 400

    bad_status = client.put(f"/api/admin/coupon/update/{other_id}", json={"status": "expired"}, headers=auth_headers(token))
    assert bad_status.status_code == 422

    missing = client.put(f"/api/admin/coupon/update/{uuid4()}", json={"status": "available"}, headers=auth_headers(token))
    assert missing.status_code == 404
    assert missing.json()["message"] == "Coupon not found"

    assert client.put(f"/api/admin/coupon/update/{coupon_id}", json={}).status_code == 403


def test_delete_coupon(test_app: Dict[str, object], admin_token: Callable, seed_coupons: Callable) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    token, _ = admin_token()
    (coupon_id,) = seed_coupons("DEL-1")

    assert client.delete(f"/api/admin/coupon/delete/{coupon_id}").status_code == 403

    res = client.delete(f"/api/admin/coupon/delete/{coupon_id}", headers=auth_headers(token))
    assert res.status_code == 200
    assert res.json() == {"message": "Coupon deleted successfully"}

    again = client.delete(f"/api/admin/coupon/delete/{coupon_id}", headers=auth_headers(token))
    assert again.status_code == 404
    assert client.get("/api/admin/coupons", headers=auth_headers(token)).json() == []


def test_claim_history_most_recent_first(test_app: Dict[str, object], admin_token: Callable, seed_coupons: Callable) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    token, _ = admin_token()
    seed_coupons("H-1", "H-2", "H-3")

    for ip in ("1.1.1.1", "2.2.2.2"):
        assert client.get("/api/coupons/claim", headers={"X-Forwarded-For": ip}).status_code == 200

    res = client.get("/api/admin/claim-history", headers=auth_headers(token))
    assert res.status_code == 200
    history = res.json()
    assert [(entry["code"], entry["assignedTo"]) for entry in history] == [("H-2", "2.2.2.2"), ("H-1", "1.1.1.1")]
    assert set(history[0].keys()) == {"code", "assignedTo", "updatedAt"}
    assert history[0]["updatedAt"] >= history[1]["updatedAt"]

    assert client.get("/api/admin/claim-history").status_code == 403
