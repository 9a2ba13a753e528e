from __future__ import annotations

import pytest
from backend.happio.contracts import ClaimCreate
from backend.happio.storage import ALREADY_CLAIMED_MESSAGE, DUPLICATE_CLAIM_MESSAGE
from fastapi import HTTPException


@pytest.fixture
def restaurant(seed):
    return seed.restaurant(seed.city())


def _claim(client, **overrides):
    payload = {
        "city_slug": "amsterdam",
        "restaurant_slug": "de-kas",
        "business_email": "Eigenaar@DeKas.nl",
        "phone": "+31 20 462 4562",
        "message": "Ik ben de eigenaar",
        "recaptcha_token": "tok",
    }
    payload.update(overrides)
    return client.post("/v1/claims", json=payload)


def test_submit_claim(client, restaurant):
    resp = _claim(client)
    assert resp.status_code == 201
    claim = resp.json()
    assert claim["status"] == "pending"
    assert claim["business_email"] == "eigenaar@dekas.nl"
    assert claim["restaurant"]["id"] == restaurant.id

    mine = client.get("/v1/claims/mine").json()
    assert [c["id"] for c in mine] == [claim["id"]]


def test_duplicate_claim_is_rejected(client, restaurant):
    assert _claim(client).status_code == 201
    resp = _claim(client)
    assert resp.status_code == 409
    assert resp.json()["detail"] == DUPLICATE_CLAIM_MESSAGE


def test_rejected_claimant_may_claim_again(client, restaurant, admin):
    first = _claim(client).json()
    assert client.post(f"/v1/admin/claims/{first['id']}/reject", json={"reason": "Geen bewijs"}).status_code == 200
    resp = _claim(client, message="Hier is het KvK-uittreksel")
    assert resp.status_code == 201
    assert resp.json()["status"] == "pending"
    # and the new claim is again the only open one
    assert _claim(client).json()["detail"] == DUPLICATE_CLAIM_MESSAGE
    statuses = sorted(c["status"] for c in client.get("/v1/claims/mine").json())
    assert statuses == ["pending", "rejected"]


def test_owner_cannot_claim_again(client, restaurant, admin):
    claim = _claim(client).json()
    client.post(f"/v1/admin/claims/{claim['id']}/approve")
    resp = _claim(client)
    assert resp.status_code == 409
    assert resp.json()["detail"] == DUPLICATE_CLAIM_MESSAGE


def test_claim_unknown_restaurant(client, restaurant):
    assert _claim(client, restaurant_slug="onbekend").status_code == 404
    assert _claim(client, city_slug="atlantis").status_code == 404


def test_claim_needs_verification(client, restaurant):
    assert _claim(client, recaptcha_token="").status_code == 400


def test_approval_transfers_ownership(client, restaurant, admin):
    claim = _claim(client).json()
    resp = client.post(f"/v1/admin/claims/{claim['id']}/approve")
    assert resp.status_code == 200
    approved = resp.json()
    assert approved["status"] == "approved"
    assert approved["reviewed_by"] == admin
    assert approved["reviewed_at"] is not None

    detail = client.get("/v1/restaurants/amsterdam/de-kas").json()
    assert detail["is_claimed"] is True
    assert detail["owner_id"] == admin

    owned = client.get("/v1/owner/restaurants").json()
    assert [r["id"] for r in owned] == [restaurant.id]


def test_claimed_restaurant_cannot_be_claimed_again(run, db, client, restaurant, admin):
    claim = _claim(client).json()
    client.post(f"/v1/admin/claims/{claim['id']}/approve")
    # a second visitor arriving later
    with pytest.raises(HTTPException) as excinfo:
        run(
            db.create_claim,
            "another-user",
            ClaimCreate(city_slug="amsterdam", restaurant_slug="de-kas", business_email="x@y.nl"),
        )
    assert excinfo.value.status_code == 409
    assert excinfo.value.detail == ALREADY_CLAIMED_MESSAGE


def test_claim_can_only_be_decided_once(client, restaurant, admin):
    claim = _claim(client).json()
    assert client.post(f"/v1/admin/claims/{claim['id']}/approve").status_code == 200
    resp = client.post(f"/v1/admin/claims/{claim['id']}/reject", json={"reason": "Te laat"})
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Claim is already approved"


def test_rejection_keeps_restaurant_unclaimed(client, restaurant, admin):
    claim = _claim(client).json()
    resp = client.post(f"/v1/admin/claims/{claim['id']}/reject", json={"reason": "Geen bewijs"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "rejected"
    assert resp.json()["rejection_reason"] == "Geen bewijs"
    assert client.get("/v1/restaurants/amsterdam/de-kas").json()["is_claimed"] is False


def test_rejection_requires_reason(client, restaurant, admin):
    claim = _claim(client).json()
    resp = client.post(f"/v1/admin/claims/{claim['id']}/reject", json={"reason": "  "})
    assert resp.status_code == 422


def test_admin_claim_listing_filters_by_status(client, restaurant, admin):
    claim = _claim(client).json()
    assert [c["id"] for c in client.get("/v1/admin/claims", params={"status": "pending"}).json()] == [
        claim["id"]
    ]
    assert client.get("/v1/admin/claims", params={"status": "approved"}).json() == []
    assert client.get("/v1/admin/claims", params={"status": "bogus"}).status_code == 422


def test_unknown_claim_is_404(client, admin):
    assert client.post("/v1/admin/claims/nope/approve").status_code == 404
