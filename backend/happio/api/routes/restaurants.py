from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from ...aggregation import best_rated
from ...auth import optional_auth, require_auth
from ...contracts import (
    PhotoCreate,
    RestaurantDetail,
    RestaurantPage,
    RestaurantRegistration,
    RestaurantWithRelations,
)
from ...query_builder import RestaurantFilters
from ..deps import DatabaseDep, VerifierDep, require_subject, subject, verify_human
from ..types import LimitQuery, PageQuery, PriceRangeQuery

router = APIRouter(tags=["restaurants"])


def build_filters(**params: Any) -> RestaurantFilters:
    """RestaurantFilters from query parameters; bad values become a 422."""
    try:
        return RestaurantFilters(**{k: v for k, v in params.items() if v is not None})
    except ValidationError as exc:
        detail = [
            {"loc": ["query", *map(str, err["loc"])], "msg": err["msg"], "type": err["type"]}
            for err in exc.errors()
        ]
        raise HTTPException(status_code=422, detail=detail) from exc


@router.get("/restaurants", response_model=RestaurantPage)
async def list_restaurants(
    db: DatabaseDep,
    city: str | None = None,
    cuisine: str | None = None,
    min_rating: float | None = None,
    min_reviews: int | None = None,
    price_range: PriceRangeQuery = None,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: PageQuery = 1,
    limit: LimitQuery = 20,
):
    filters = build_filters(
        city_slug=city,
        cuisine_slug=cuisine,
        min_rating=min_rating,
        min_reviews=min_reviews,
        price_range=price_range,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return await db.query_restaurants(filters)


@router.get("/restaurants/top-rated", response_model=list[RestaurantWithRelations])
async def top_rated_restaurants(db: DatabaseDep, min_reviews: int = 1, limit: LimitQuery = 8):
    filters = build_filters(min_reviews=min_reviews, sort_by="rating", sort_order="desc", limit=limit)
    page = await db.query_restaurants(filters)
    return best_rated(page.items)


@router.get("/restaurants/new", response_model=list[RestaurantWithRelations])
async def new_restaurants(db: DatabaseDep, limit: LimitQuery = 8):
    return await db.new_restaurants(limit)


@router.get("/restaurants/locations")
async def restaurant_locations(db: DatabaseDep):
    return await db.restaurant_locations()


@router.post("/restaurants/register", response_model=RestaurantWithRelations, status_code=201)
async def register_restaurant(
    payload: RestaurantRegistration,
    db: DatabaseDep,
    verifier: VerifierDep,
    claims: dict[str, Any] | None = Depends(optional_auth),
):
    await verify_human(verifier, payload.recaptcha_token)
    return await db.register_restaurant(payload, owner_id=subject(claims))


@router.post("/restaurants/{restaurant_id:uuid}/photos", status_code=201)
async def upload_photo(
    restaurant_id: UUID,
    payload: PhotoCreate,
    db: DatabaseDep,
    claims: dict[str, Any] = Depends(require_auth),
):
    return await db.add_photo(str(restaurant_id), require_subject(claims), payload)


@router.get("/restaurants/{city_slug}/{restaurant_slug}", response_model=RestaurantDetail)
async def get_restaurant(city_slug: str, restaurant_slug: str, db: DatabaseDep):
    return await db.get_restaurant_detail(city_slug, restaurant_slug)
