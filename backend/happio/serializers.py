from __future__ import annotations

from datetime import date, datetime
from typing import Any

from .settings import settings
from .urls import city_path, claim_path, cuisine_path, restaurant_path

ANONYMOUS_AUTHOR = "Happio gebruiker"
GUEST_AUTHOR = "Gast"


def get_attr(o: Any, key: str, default=None):
    if isinstance(o, dict):
        return o.get(key, default)
    return getattr(o, key, default)


def _iso(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def city_to_dict(c: Any) -> dict[str, Any] | None:
    if c is None:
        return None
    slug = get_attr(c, "slug")
    return {
        "id": get_attr(c, "id"),
        "name": get_attr(c, "name"),
        "slug": slug,
        "province": get_attr(c, "province"),
        "latitude": get_attr(c, "latitude"),
        "longitude": get_attr(c, "longitude"),
        "image_url": get_attr(c, "image_url"),
        "description": get_attr(c, "description"),
        "meta_title": get_attr(c, "meta_title"),
        "meta_description": get_attr(c, "meta_description"),
        "path": city_path(slug) if slug else None,
    }


def city_to_summary(c: Any) -> dict[str, Any] | None:
    if c is None:
        return None
    return {"id": get_attr(c, "id"), "name": get_attr(c, "name"), "slug": get_attr(c, "slug")}


def cuisine_to_dict(c: Any) -> dict[str, Any]:
    slug = get_attr(c, "slug")
    return {
        "id": get_attr(c, "id"),
        "name": get_attr(c, "name"),
        "slug": slug,
        "icon": get_attr(c, "icon"),
        "path": cuisine_path(slug) if slug else None,
    }


def restaurant_to_list_item(r: Any) -> dict[str, Any]:
    city = get_attr(r, "city")
    city_slug = get_attr(city, "slug") if city is not None else None
    slug = get_attr(r, "slug")
    rating = get_attr(r, "rating")
    return {
        "id": get_attr(r, "id"),
        "name": get_attr(r, "name"),
        "slug": slug,
        "address": get_attr(r, "address"),
        "postal_code": get_attr(r, "postal_code"),
        "latitude": get_attr(r, "latitude"),
        "longitude": get_attr(r, "longitude"),
        "price_range": get_attr(r, "price_range"),
        "rating": float(rating) if rating is not None else None,
        "review_count": int(get_attr(r, "review_count", 0) or 0),
        "image_url": get_attr(r, "image_url"),
        "is_verified": bool(get_attr(r, "is_verified", False)),
        "is_claimed": bool(get_attr(r, "is_claimed", False)),
        "city": city_to_summary(city),
        "cuisines": [cuisine_to_dict(c) for c in get_attr(r, "cuisines", None) or []],
        "path": restaurant_path(city_slug, slug) if city_slug and slug else None,
    }


def restaurant_to_detail(r: Any, photos: list[Any] | None = None) -> dict[str, Any]:
    payload = restaurant_to_list_item(r)
    city = get_attr(r, "city")
    city_slug = get_attr(city, "slug") if city is not None else None
    payload.update(
        {
            "description": get_attr(r, "description"),
            "phone": get_attr(r, "phone"),
            "email": get_attr(r, "email"),
            "website": get_attr(r, "website"),
            "opening_hours": get_attr(r, "opening_hours"),
            "features": list(get_attr(r, "features", None) or []),
            "specialties": list(get_attr(r, "specialties", None) or []),
            "meta_title": get_attr(r, "meta_title"),
            "meta_description": get_attr(r, "meta_description"),
            "owner_id": get_attr(r, "owner_id"),
            "google_place_id": get_attr(r, "google_place_id"),
            "city": city_to_dict(city),
            "claim_path": claim_path(city_slug, payload["slug"]) if city_slug else None,
            "photos": [photo_to_dict(p) for p in photos or []],
            "created_at": _iso(get_attr(r, "created_at")),
            "updated_at": _iso(get_attr(r, "updated_at")),
        }
    )
    return payload


def photo_to_dict(p: Any) -> dict[str, Any]:
    return {
        "id": get_attr(p, "id"),
        "restaurant_id": get_attr(p, "restaurant_id"),
        "url": get_attr(p, "url"),
        "caption": get_attr(p, "caption"),
        "is_primary": bool(get_attr(p, "is_primary", False)),
        "is_approved": bool(get_attr(p, "is_approved", False)),
        "created_at": _iso(get_attr(p, "created_at")),
    }


def review_photo_to_dict(p: Any) -> dict[str, Any]:
    return {
        "id": get_attr(p, "id"),
        "review_id": get_attr(p, "review_id"),
        "url": get_attr(p, "url"),
        "created_at": _iso(get_attr(p, "created_at")),
    }


def review_to_public(
    r: Any, photos: list[Any] | None = None, display_name: str | None = None
) -> dict[str, Any]:
    # guest_email never leaves the admin API
    return {
        "id": get_attr(r, "id"),
        "restaurant_id": get_attr(r, "restaurant_id"),
        "rating": get_attr(r, "rating"),
        "title": get_attr(r, "title"),
        "content": get_attr(r, "content"),
        "author_name": get_attr(r, "guest_name") or display_name or ANONYMOUS_AUTHOR,
        "is_guest": get_attr(r, "user_id") is None,
        "is_verified": bool(get_attr(r, "is_verified", False)),
        "photos": [review_photo_to_dict(p) for p in photos or []],
        "created_at": _iso(get_attr(r, "created_at")),
    }


def review_to_admin(r: Any, photos: list[Any] | None = None) -> dict[str, Any]:
    payload = review_to_public(r, photos)
    restaurant = get_attr(r, "restaurant")
    payload.update(
        {
            "user_id": get_attr(r, "user_id"),
            "guest_name": get_attr(r, "guest_name"),
            "guest_email": get_attr(r, "guest_email"),
            "is_approved": bool(get_attr(r, "is_approved", False)),
            "restaurant": restaurant_to_list_item(restaurant) if restaurant is not None else None,
        }
    )
    return payload


def claim_to_dict(c: Any) -> dict[str, Any]:
    restaurant = get_attr(c, "restaurant")
    return {
        "id": get_attr(c, "id"),
        "restaurant_id": get_attr(c, "restaurant_id"),
        "user_id": get_attr(c, "user_id"),
        "business_email": get_attr(c, "business_email"),
        "phone": get_attr(c, "phone"),
        "message": get_attr(c, "message"),
        "status": get_attr(c, "status"),
        "rejection_reason": get_attr(c, "rejection_reason"),
        "reviewed_by": get_attr(c, "reviewed_by"),
        "reviewed_at": _iso(get_attr(c, "reviewed_at")),
        "created_at": _iso(get_attr(c, "created_at")),
        "restaurant": restaurant_to_list_item(restaurant) if restaurant is not None else None,
    }


def profile_to_dict(p: Any) -> dict[str, Any]:
    return {
        "user_id": get_attr(p, "user_id"),
        "display_name": get_attr(p, "display_name"),
        "avatar_url": get_attr(p, "avatar_url"),
        "bio": get_attr(p, "bio"),
        "created_at": _iso(get_attr(p, "created_at")),
        "updated_at": _iso(get_attr(p, "updated_at")),
    }


def food_post_to_dict(
    post: Any, profile: Any = None, is_liked: bool = False
) -> dict[str, Any]:
    restaurant = get_attr(post, "restaurant")
    if get_attr(post, "user_id") is None:
        author = {"name": get_attr(post, "guest_name") or GUEST_AUTHOR, "avatar_url": None, "is_guest": True}
    else:
        author = {
            "name": get_attr(profile, "display_name") or ANONYMOUS_AUTHOR,
            "avatar_url": get_attr(profile, "avatar_url"),
            "is_guest": False,
        }
    return {
        "id": get_attr(post, "id"),
        "image_url": get_attr(post, "image_url"),
        "caption": get_attr(post, "caption"),
        "likes_count": int(get_attr(post, "likes_count", 0) or 0),
        "is_liked": is_liked,
        "author": author,
        "restaurant": restaurant_to_list_item(restaurant) if restaurant is not None else None,
        "created_at": _iso(get_attr(post, "created_at")),
    }


def import_job_to_dict(j: Any) -> dict[str, Any] | None:
    if j is None:
        return None
    return {
        "id": get_attr(j, "id"),
        "status": get_attr(j, "status"),
        "total_cities": get_attr(j, "total_cities"),
        "processed_cities": get_attr(j, "processed_cities"),
        "imported_restaurants": get_attr(j, "imported_restaurants"),
        "imported_reviews": get_attr(j, "imported_reviews"),
        "skipped_restaurants": get_attr(j, "skipped_restaurants"),
        "last_city": get_attr(j, "last_city"),
        "errors": list(get_attr(j, "errors", None) or []),
        "started_at": _iso(get_attr(j, "started_at")),
        "completed_at": _iso(get_attr(j, "completed_at")),
        "created_at": _iso(get_attr(j, "created_at")),
        "updated_at": _iso(get_attr(j, "updated_at")),
    }


def ad_to_dict(a: Any) -> dict[str, Any]:
    return {
        "id": get_attr(a, "id"),
        "placement_type": get_attr(a, "placement_type"),
        "ad_code": get_attr(a, "ad_code"),
        "start_date": _iso(get_attr(a, "start_date")),
        "end_date": _iso(get_attr(a, "end_date")),
        "is_active": bool(get_attr(a, "is_active", False)),
        "created_at": _iso(get_attr(a, "created_at")),
    }


def absolute_url(path: str) -> str:
    return f"{settings.site_url}{path}"
