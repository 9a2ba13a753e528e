from __future__ import annotations

from datetime import UTC, datetime, timedelta

from backend.happio import auth
from backend.happio.settings import settings


class TestAdminAccess:
    def test_non_admin_gets_403(self, client):
        resp = client.get("/v1/admin/reviews")
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Admin role required"

    def test_browser_is_sent_home(self, client):
        resp = client.get(
            "/v1/admin/claims", headers={"Accept": "text/html"}, follow_redirects=False
        )
        assert resp.status_code == 303
        assert resp.headers["location"] == "/"

    def test_admin_scope_grants_access(self, client, monkeypatch):
        monkeypatch.setitem(auth.DEV_CLAIMS, "scope", f"openid {settings.ADMIN_SCOPE}")
        assert client.get("/v1/admin/reviews").status_code == 200

    def test_role_row_grants_access(self, client, admin):
        assert client.get("/v1/admin/reviews").status_code == 200

    def test_grant_role(self, client, admin):
        resp = client.put("/v1/admin/roles/auth0|abc", json={"role": "moderator"})
        assert resp.status_code == 200
        assert resp.json() == {"user_id": "auth0|abc", "roles": ["moderator"]}
        # idempotent
        resp = client.put("/v1/admin/roles/auth0|abc", json={"role": "moderator"})
        assert resp.json()["roles"] == ["moderator"]
        assert client.put("/v1/admin/roles/auth0|abc", json={"role": "owner"}).status_code == 422


class TestDirectoryManagement:
    def test_create_city_and_cuisine(self, client, admin):
        city = client.post(
            "/v1/admin/cities", json={"name": "Den Haag", "slug": "den-haag", "province": "Zuid-Holland"}
        )
        assert city.status_code == 201
        assert city.json()["path"] == "/den-haag"
        assert client.post("/v1/admin/cities", json={"name": "Dubbel", "slug": "den-haag"}).status_code == 409

        cuisine = client.post("/v1/admin/cuisines", json={"name": "Thais", "slug": "thais", "icon": "🍜"})
        assert cuisine.status_code == 201
        assert [c["slug"] for c in client.get("/v1/cuisines").json()] == ["thais"]

    def test_create_update_delete_restaurant(self, client, admin, seed):
        city = seed.city()
        italian = seed.cuisine()
        resp = client.post(
            "/v1/admin/restaurants",
            json={
                "name": "Trattoria",
                "slug": "trattoria",
                "city_id": city["id"],
                "latitude": 52.37,
                "longitude": 4.89,
                "price_range": "€€",
                "cuisine_ids": [italian["id"]],
            },
        )
        assert resp.status_code == 201
        restaurant = resp.json()
        assert restaurant["cuisines"][0]["slug"] == "italiaans"

        duplicate = client.post(
            "/v1/admin/restaurants",
            json={"name": "Trattoria 2", "slug": "trattoria", "city_id": city["id"], "latitude": 52, "longitude": 4},
        )
        assert duplicate.status_code == 409

        patched = client.patch(
            f"/v1/admin/restaurants/{restaurant['id']}",
            json={"price_range": "€€€", "cuisine_ids": [], "is_verified": True},
        )
        assert patched.status_code == 200
        assert patched.json()["price_range"] == "€€€"
        assert patched.json()["cuisines"] == []
        assert patched.json()["is_verified"] is True
        # untouched fields stay put
        assert patched.json()["name"] == "Trattoria"

        assert client.delete(f"/v1/admin/restaurants/{restaurant['id']}").status_code == 204
        assert client.get("/v1/restaurants/amsterdam/trattoria").status_code == 404

    def test_unknown_cuisine_id_is_rejected(self, client, admin, seed):
        city = seed.city()
        resp = client.post(
            "/v1/admin/restaurants",
            json={
                "name": "X",
                "slug": "x",
                "city_id": city["id"],
                "latitude": 52,
                "longitude": 4,
                "cuisine_ids": ["nope"],
            },
        )
        assert resp.status_code == 422

    def test_admin_restaurant_listing_sorted_by_name(self, client, admin, seed):
        city = seed.city()
        seed.restaurant(city, name="Zeezout", rating=4.9, review_count=3)
        seed.restaurant(city, name="Anna", rating=3.0, review_count=1)
        body = client.get("/v1/admin/restaurants").json()
        assert [r["name"] for r in body["items"]] == ["Anna", "Zeezout"]
        assert body["limit"] == 50


class TestAds:
    def test_ad_lifecycle(self, client, admin):
        today = datetime.now(UTC).date()
        created = client.post(
            "/v1/admin/ads",
            json={
                "placement_type": "homepage",
                "ad_code": "<div>ad</div>",
                "start_date": (today - timedelta(days=1)).isoformat(),
                "end_date": (today + timedelta(days=1)).isoformat(),
            },
        )
        assert created.status_code == 201
        ad = created.json()

        assert [a["id"] for a in client.get("/v1/ads", params={"placement": "homepage"}).json()] == [ad["id"]]
        assert client.get("/v1/ads", params={"placement": "city"}).json() == []

        client.patch(f"/v1/admin/ads/{ad['id']}", json={"is_active": False})
        assert client.get("/v1/ads", params={"placement": "homepage"}).json() == []

        assert client.delete(f"/v1/admin/ads/{ad['id']}").status_code == 204
        assert client.get("/v1/admin/ads").json() == []
        assert client.delete(f"/v1/admin/ads/{ad['id']}").status_code == 404

    def test_expired_ad_is_hidden(self, client, admin):
        today = datetime.now(UTC).date()
        client.post(
            "/v1/admin/ads",
            json={"placement_type": "city", "end_date": (today - timedelta(days=1)).isoformat()},
        )
        assert client.get("/v1/ads", params={"placement": "city"}).json() == []

    def test_update_cannot_invert_window(self, client, admin):
        ad = client.post(
            "/v1/admin/ads", json={"placement_type": "detail_content", "start_date": "2026-05-10"}
        ).json()
        resp = client.patch(f"/v1/admin/ads/{ad['id']}", json={"end_date": "2026-05-01"})
        assert resp.status_code == 422

    def test_unknown_placement_is_rejected(self, client):
        assert client.get("/v1/ads", params={"placement": "popup"}).status_code == 422


class TestPhotoRefresh:
    def test_refresh_page_is_relayed(self, client, admin, functions):
        functions.respond(
            "refresh-restaurant-photos",
            body={"processed": 5, "photosDownloaded": 4, "hasMore": True, "nextOffset": 5, "totalRestaurants": 9},
        )
        resp = client.post("/v1/admin/photos/refresh", json={"batchSize": 5})
        assert resp.status_code == 200
        assert resp.json()["nextOffset"] == 5
        assert functions.payloads("refresh-restaurant-photos") == [{"batchSize": 5, "offset": 0}]

    def test_refresh_failure_is_502(self, client, admin, functions):
        functions.respond("refresh-restaurant-photos", status_code=500)
        assert client.post("/v1/admin/photos/refresh", json={}).status_code == 502

    def test_batch_size_bounds(self, client, admin):
        assert client.post("/v1/admin/photos/refresh", json={"batchSize": 500}).status_code == 422
