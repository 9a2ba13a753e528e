from __future__ import annotations

from backend.happio.settings import settings


def _seed(seed):
    amsterdam = seed.city()
    seed.restaurant(amsterdam, name="Centrum", latitude=52.3731, longitude=4.8922)
    seed.restaurant(amsterdam, name="Oost", latitude=52.3600, longitude=4.9400)
    seed.restaurant(amsterdam, name="Zaandam", latitude=52.4389, longitude=4.8258)
    seed.restaurant(amsterdam, name="Utrecht", latitude=52.0907, longitude=5.1214)


def test_nearby_orders_by_distance(client, seed):
    _seed(seed)
    resp = client.get("/v1/nearby", params={"lat": 52.3731, "lng": 4.8922, "limit": 3})
    assert resp.status_code == 200
    body = resp.json()
    assert [r["name"] for r in body] == ["Centrum", "Oost", "Zaandam"]
    assert body[0]["distance_km"] == 0
    assert body[1]["distance_km"] < body[2]["distance_km"]


def test_nearby_distance_is_rounded(client, seed):
    _seed(seed)
    body = client.get("/v1/nearby", params={"lat": 52.3676, "lng": 4.9041}).json()
    for entry in body:
        assert round(entry["distance_km"], 2) == entry["distance_km"]


def test_nearby_uses_default_limit(client, seed, monkeypatch):
    _seed(seed)
    monkeypatch.setattr(settings, "NEARBY_DEFAULT_LIMIT", 2)
    body = client.get("/v1/nearby", params={"lat": 52.3676, "lng": 4.9041}).json()
    assert len(body) == 2


def test_nearby_without_position_is_empty(client, seed):
    _seed(seed)
    assert client.get("/v1/nearby").json() == []
    assert client.get("/v1/nearby", params={"lat": 52.37}).json() == []


def test_nearby_rejects_impossible_coordinates(client):
    assert client.get("/v1/nearby", params={"lat": 91, "lng": 4.9}).status_code == 422


def test_nearby_still_answers_over_scan_ceiling(client, seed, monkeypatch):
    _seed(seed)
    monkeypatch.setattr(settings, "NEARBY_SCAN_CEILING", 1)
    body = client.get("/v1/nearby", params={"lat": 52.3731, "lng": 4.8922}).json()
    assert len(body) == 4


def test_geolocation_policy_endpoint(client):
    body = client.get("/v1/nearby/geolocation").json()
    assert body["timeout_ms"] == 10_000
    assert "permission_denied" in body["messages"]
