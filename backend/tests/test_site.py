from __future__ import annotations

import uuid

import pytest


@pytest.fixture
def restaurant(seed):
    return seed.restaurant(seed.city())


def _view(client, **payload):
    payload.setdefault("page_type", "restaurant")
    return client.post("/v1/page-views", json=payload)


def test_page_view_is_recorded(client, restaurant, admin):
    resp = _view(client, restaurant_id=restaurant.id, page_slug="de-kas", session_id="tab-1")
    assert resp.status_code == 202
    assert resp.json() == {"recorded": True, "session_id": "tab-1"}

    stats = client.get("/v1/admin/analytics").json()["stats"]
    assert stats["total"] == 1
    assert stats["today"] == 1
    assert stats["pageTypes"] == {"restaurant": 1}


def test_session_id_is_minted_when_missing(client):
    body = _view(client, page_type="home").json()
    assert body["recorded"] is True
    uuid.UUID(body["session_id"])


def test_same_session_counts_as_one_visitor(client, admin):
    for _ in range(3):
        _view(client, page_type="city", page_slug="amsterdam", session_id="tab-1")
    _view(client, page_type="home", session_id="tab-2")
    stats = client.get("/v1/admin/analytics").json()["stats"]
    assert stats["total"] == 4
    assert stats["uniqueVisitors"] == 2


def test_bots_are_not_counted(client, admin):
    resp = client.post(
        "/v1/page-views",
        json={"page_type": "home"},
        headers={"User-Agent": "Mozilla/5.0 (compatible; Googlebot/2.1)"},
    )
    assert resp.json() == {"recorded": False}
    assert client.get("/v1/admin/analytics").json()["stats"]["total"] == 0


def test_view_for_unknown_restaurant(client):
    assert _view(client, restaurant_id=str(uuid.uuid4())).status_code == 404


def test_unknown_page_type(client):
    assert _view(client, page_type="checkout").status_code == 422


def test_admin_analytics_filters_by_restaurant(client, seed, admin):
    city = seed.city()
    kas = seed.restaurant(city)
    other = seed.restaurant(city, name="Rijks")
    _view(client, restaurant_id=kas.id)
    _view(client, restaurant_id=other.id)
    _view(client, restaurant_id=other.id)

    body = client.get(f"/v1/admin/analytics/restaurants/{other.id}", params={"days": 7}).json()
    assert body["stats"]["total"] == 2
    assert len(body["chart"]) == 8
    assert body["chart"][-1]["views"] == 2
    assert client.get("/v1/admin/analytics", params={"restaurant_id": kas.id}).json()["stats"]["total"] == 1


def test_admin_analytics_unknown_restaurant(client, admin):
    assert client.get(f"/v1/admin/analytics/restaurants/{uuid.uuid4()}").status_code == 404


class TestOwnerAnalytics:
    def test_stranger_is_refused(self, client, restaurant):
        resp = client.get(f"/v1/owner/restaurants/{restaurant.id}/analytics")
        assert resp.status_code == 403

    def test_owner_sees_own_views(self, client, restaurant, admin):
        claim = client.post(
            "/v1/claims",
            json={
                "city_slug": "amsterdam",
                "restaurant_slug": "de-kas",
                "business_email": "eigenaar@dekas.nl",
                "recaptcha_token": "tok",
            },
        ).json()
        client.post(f"/v1/admin/claims/{claim['id']}/approve")
        _view(client, restaurant_id=restaurant.id)

        body = client.get(f"/v1/owner/restaurants/{restaurant.id}/analytics", params={"days": 1}).json()
        assert body["stats"]["total"] == 1
        assert [point["views"] for point in body["chart"]][-1] == 1

    def test_admin_may_look_at_any_restaurant(self, client, restaurant, admin):
        assert client.get(f"/v1/owner/restaurants/{restaurant.id}/analytics").status_code == 200


def test_active_ads_are_public(client):
    assert client.get("/v1/ads", params={"placement": "homepage"}).json() == []
