from __future__ import annotations

import uuid

import pytest
from backend.happio.settings import settings

SIGNED_IN = {"Authorization": "Bearer dev-token"}


@pytest.fixture
def restaurant(seed):
    return seed.restaurant(seed.city())


def _review(client, restaurant_id, headers=SIGNED_IN, **overrides):
    payload = {"rating": 5, "content": "Fantastisch gegeten!", "recaptcha_token": "tok"}
    payload.update(overrides)
    return client.post(f"/v1/restaurants/{restaurant_id}/reviews", json=payload, headers=headers)


def test_signed_in_review_awaits_moderation(client, restaurant, functions):
    resp = _review(client, restaurant.id, title="Top")
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"].startswith("Bedankt")
    assert body["review"]["is_guest"] is False
    assert "guest_email" not in body["review"]

    # not public until approved
    assert client.get(f"/v1/restaurants/{restaurant.id}/reviews").json() == []
    assert functions.payloads("send-email")[0]["type"] == "review"


def test_guest_review_requires_name_and_email(client, restaurant):
    resp = _review(client, restaurant.id, headers=None, guest_name="Ana")
    assert resp.status_code == 422
    resp = _review(client, restaurant.id, headers=None, guest_name="Ana", guest_email="ana@example.nl")
    assert resp.status_code == 201
    assert resp.json()["review"]["author_name"] == "Ana"
    assert resp.json()["review"]["is_guest"] is True


def test_review_requires_verification_token(client, restaurant):
    resp = _review(client, restaurant.id, recaptcha_token=None)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Verificatie mislukt. Probeer het opnieuw."


def test_review_verification_goes_through_function(client, restaurant, functions):
    settings.RECAPTCHA_BYPASS = False
    functions.respond("verify-recaptcha", body={"success": False})
    assert _review(client, restaurant.id).status_code == 400
    functions.respond("verify-recaptcha", body={"success": True})
    assert _review(client, restaurant.id).status_code == 201
    assert functions.payloads("verify-recaptcha")[-1] == {"token": "tok"}


def test_review_survives_email_outage(client, restaurant, functions):
    functions.respond("send-email", status_code=500)
    assert _review(client, restaurant.id).status_code == 201


def test_review_for_unknown_restaurant(client):
    assert _review(client, uuid.uuid4()).status_code == 404


def test_review_rating_bounds(client, restaurant):
    assert _review(client, restaurant.id, rating=6).status_code == 422
    assert _review(client, restaurant.id, content="   ").status_code == 422


def test_approval_updates_rating_and_count(client, restaurant, admin):
    first = _review(client, restaurant.id, rating=5).json()["review"]["id"]
    second = _review(client, restaurant.id, rating=4).json()["review"]["id"]
    third = _review(client, restaurant.id, rating=2).json()["review"]["id"]

    pending = client.get("/v1/admin/reviews").json()
    assert {r["id"] for r in pending} == {first, second, third}

    client.post(f"/v1/admin/reviews/{first}/approve")
    client.post(f"/v1/admin/reviews/{second}/approve")
    client.post(f"/v1/admin/reviews/{third}/reject")

    listed = client.get("/v1/restaurants/amsterdam/de-kas").json()
    assert listed["review_count"] == 2
    assert listed["rating"] == 4.5
    public = client.get(f"/v1/restaurants/{restaurant.id}/reviews").json()
    assert {r["id"] for r in public} == {first, second}

    client.delete(f"/v1/admin/reviews/{first}")
    listed = client.get("/v1/restaurants/amsterdam/de-kas").json()
    assert (listed["review_count"], listed["rating"]) == (1, 4.0)

    client.post(f"/v1/admin/reviews/{second}/reject")
    listed = client.get("/v1/restaurants/amsterdam/de-kas").json()
    assert (listed["review_count"], listed["rating"]) == (0, None)


def test_approving_guest_review_sends_thank_you(client, restaurant, admin, functions):
    review = _review(
        client, restaurant.id, headers=None, guest_name="Ana", guest_email="ana@example.nl"
    ).json()
    client.post(f"/v1/admin/reviews/{review['review']['id']}/approve")
    sent = [p for p in functions.payloads("send-email") if p["type"] == "review_approved"]
    assert sent[0]["data"]["email"] == "ana@example.nl"
    assert sent[0]["data"]["restaurantUrl"] == "https://happio.nl/amsterdam/de-kas"


def test_reapproving_does_not_thank_the_guest_twice(client, restaurant, admin, functions):
    review = _review(
        client, restaurant.id, headers=None, guest_name="Ana", guest_email="ana@example.nl"
    ).json()
    review_id = review["review"]["id"]
    assert client.post(f"/v1/admin/reviews/{review_id}/approve").status_code == 200
    assert client.post(f"/v1/admin/reviews/{review_id}/approve").status_code == 200
    sent = [p for p in functions.payloads("send-email") if p["type"] == "review_approved"]
    assert len(sent) == 1


def test_imported_review_is_public_and_counted(run, db, client, restaurant):
    run(
        db.import_review,
        restaurant.id,
        author_name="Google gebruiker",
        rating=3,
        content="Prima",
    )
    public = client.get(f"/v1/restaurants/{restaurant.id}/reviews").json()
    assert public[0]["author_name"] == "Google gebruiker"
    assert public[0]["is_verified"] is True
    listed = client.get("/v1/restaurants/amsterdam/de-kas").json()
    assert (listed["review_count"], listed["rating"]) == (1, 3.0)


def test_admin_review_filters(client, restaurant, admin):
    review_id = _review(client, restaurant.id).json()["review"]["id"]
    client.post(f"/v1/admin/reviews/{review_id}/approve")
    assert client.get("/v1/admin/reviews", params={"status": "pending"}).json() == []
    assert len(client.get("/v1/admin/reviews", params={"status": "approved"}).json()) == 1
    assert len(client.get("/v1/admin/reviews", params={"status": "all"}).json()) == 1
    assert client.get("/v1/admin/reviews", params={"status": "spam"}).status_code == 422


def _photo(client, review_id, url="https://cdn.happio.nl/reviews/stamppot.jpg"):
    return client.post(f"/v1/reviews/{review_id}/photos", json={"url": url})


def test_author_adds_photos_shown_after_approval(client, restaurant, admin):
    review_id = _review(client, restaurant.id).json()["review"]["id"]
    resp = _photo(client, review_id)
    assert resp.status_code == 201
    assert resp.json()["review_id"] == review_id
    _photo(client, review_id, url="cdn.happio.nl/reviews/toetje.jpg")

    client.post(f"/v1/admin/reviews/{review_id}/approve")
    public = client.get(f"/v1/restaurants/{restaurant.id}/reviews").json()
    assert [p["url"] for p in public[0]["photos"]] == [
        "https://cdn.happio.nl/reviews/stamppot.jpg",
        "https://cdn.happio.nl/reviews/toetje.jpg",
    ]
    assert len(client.get("/v1/admin/reviews").json()[0]["photos"]) == 2


def test_photo_limit_per_review(client, restaurant):
    review_id = _review(client, restaurant.id).json()["review"]["id"]
    for index in range(4):
        assert _photo(client, review_id, url=f"https://cdn.happio.nl/{index}.jpg").status_code == 201
    resp = _photo(client, review_id)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Maximaal 4 foto's per review"


def test_only_author_adds_photos(client, restaurant):
    guest = _review(client, restaurant.id, headers=None, guest_name="Ana", guest_email="ana@example.nl")
    assert _photo(client, guest.json()["review"]["id"]).status_code == 403
    assert _photo(client, str(uuid.uuid4())).status_code == 404


def test_public_review_uses_profile_name(client, restaurant, admin):
    client.patch("/v1/profile", json={"display_name": "Sanne"})
    review_id = _review(client, restaurant.id).json()["review"]["id"]
    client.post(f"/v1/admin/reviews/{review_id}/approve")
    public = client.get(f"/v1/restaurants/{restaurant.id}/reviews").json()
    assert public[0]["author_name"] == "Sanne"
    assert public[0]["photos"] == []
