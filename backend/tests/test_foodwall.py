from __future__ import annotations

import pytest
from backend.happio.contracts import FoodPostCreate, UserAuthor

SIGNED_IN = {"Authorization": "Bearer dev-token"}


def _share(client, headers=SIGNED_IN, **overrides):
    payload = {
        "image_url": "https://cdn.happio.nl/foodwall/bitterballen.jpg",
        "caption": "Bitterballen bij de borrel",
        "recaptcha_token": "tok",
    }
    payload.update(overrides)
    return client.post("/v1/foodwall", json=payload, headers=headers)


def test_signed_in_post_uses_profile_name(client):
    client.patch("/v1/profile", json={"display_name": "Sanne", "avatar_url": "https://cdn.happio.nl/a.png"})
    resp = _share(client)
    assert resp.status_code == 201
    post = resp.json()["post"]
    assert post["author"] == {"name": "Sanne", "avatar_url": "https://cdn.happio.nl/a.png", "is_guest": False}
    assert post["likes_count"] == 0
    assert post["restaurant"] is None


def test_guest_post_needs_name_and_email(client):
    assert _share(client, headers=None, guest_name="Ana").status_code == 422
    resp = _share(client, headers=None, guest_name="Ana", guest_email="ana@example.nl")
    assert resp.status_code == 201
    assert resp.json()["post"]["author"]["name"] == "Ana"
    assert resp.json()["post"]["author"]["is_guest"] is True
    assert "guest_email" not in resp.json()["post"]


def test_post_requires_verification(client):
    assert _share(client, recaptcha_token="").status_code == 400


def test_post_tags_restaurant(client, seed):
    restaurant = seed.restaurant(seed.city())
    post = _share(client, restaurant_id=restaurant.id).json()["post"]
    assert post["restaurant"]["id"] == restaurant.id
    assert post["restaurant"]["path"] == "/amsterdam/de-kas"
    assert _share(client, restaurant_id="00000000-0000-0000-0000-000000000000").status_code == 404


def test_wall_is_newest_first_and_marks_own_likes(client, run, db):
    first = _share(client, caption="eerste").json()["post"]
    second = _share(client, caption="tweede").json()["post"]
    run(db.toggle_food_post_like, "someone-else", first["id"])
    client.post(f"/v1/foodwall/{first['id']}/like")

    wall = client.get("/v1/foodwall", headers=SIGNED_IN).json()
    assert [p["id"] for p in wall] == [second["id"], first["id"]]
    assert (wall[1]["likes_count"], wall[1]["is_liked"]) == (2, True)
    assert wall[0]["is_liked"] is False

    # anonymous visitors see counts but no likes of their own
    anonymous = client.get("/v1/foodwall").json()
    assert [p["is_liked"] for p in anonymous] == [False, False]
    assert client.get("/v1/foodwall", params={"limit": 1}).json()[0]["id"] == second["id"]


def test_like_toggles_and_recounts(client):
    post_id = _share(client).json()["post"]["id"]
    liked = client.post(f"/v1/foodwall/{post_id}/like").json()
    assert liked == {"action": "liked", "is_liked": True, "likes_count": 1}
    unliked = client.post(f"/v1/foodwall/{post_id}/like").json()
    assert unliked == {"action": "unliked", "is_liked": False, "likes_count": 0}


def test_like_unknown_post(client):
    assert client.post("/v1/foodwall/missing/like").status_code == 404


def test_only_author_or_admin_deletes(client, run, db):
    theirs = run(
        db.create_food_post,
        UserAuthor(user_id="someone-else"),
        FoodPostCreate(image_url="https://cdn.happio.nl/x.jpg"),
    )
    resp = client.delete(f"/v1/foodwall/{theirs['id']}")
    assert resp.status_code == 403

    mine = _share(client).json()["post"]
    client.post(f"/v1/foodwall/{mine['id']}/like")
    assert client.delete(f"/v1/foodwall/{mine['id']}").status_code == 204
    assert [p["id"] for p in client.get("/v1/foodwall").json()] == [theirs["id"]]


def test_admin_removes_any_post(client, run, db, admin):
    theirs = run(
        db.create_food_post,
        UserAuthor(user_id="someone-else"),
        FoodPostCreate(image_url="https://cdn.happio.nl/x.jpg"),
    )
    assert client.delete(f"/v1/foodwall/{theirs['id']}").status_code == 204
    assert client.delete(f"/v1/foodwall/{theirs['id']}").status_code == 404


def test_post_survives_restaurant_removal(client, seed, admin):
    restaurant = seed.restaurant(seed.city())
    post_id = _share(client, restaurant_id=restaurant.id).json()["post"]["id"]
    assert client.delete(f"/v1/admin/restaurants/{restaurant.id}").status_code == 204
    wall = client.get("/v1/foodwall").json()
    assert [(p["id"], p["restaurant"]) for p in wall] == [(post_id, None)]


@pytest.mark.parametrize("image_url", ["", "geen url"])
def test_image_url_is_validated(client, image_url):
    assert _share(client, image_url=image_url).status_code == 422
