"""Translate a restaurant filter specification into SQL."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Select, and_, exists, false, func, select

from .db.models import CuisineTypeRecord, RestaurantRecord, restaurant_cuisines
from .validators import normalize_price_ranges, normalize_search

SortKey = Literal["rating", "reviews", "name"]
SortOrder = Literal["asc", "desc"]

MAX_PAGE_SIZE = 1000

SORT_COLUMNS = {
    "rating": RestaurantRecord.rating,
    "reviews": RestaurantRecord.review_count,
    "name": RestaurantRecord.name,
}


class RestaurantFilters(BaseModel):
    """Filter specification accepted by every listing page."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    city_slug: str | None = Field(default=None, alias="citySlug")
    cuisine_slug: str | None = Field(default=None, alias="cuisineSlug")
    min_rating: float | None = Field(default=None, alias="minRating", ge=0, le=5)
    min_reviews: int | None = Field(default=None, alias="minReviews", ge=0)
    price_range: list[str] | None = Field(default=None, alias="priceRange")
    search: str | None = None
    sort_by: SortKey = Field(default="rating", alias="sortBy")
    sort_order: SortOrder = Field(default="desc", alias="sortOrder")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=MAX_PAGE_SIZE)

    @field_validator("price_range")
    @classmethod
    def _validate_price_range(cls, value: list[str] | None) -> list[str] | None:
        return normalize_price_ranges(value)

    @field_validator("search")
    @classmethod
    def _validate_search(cls, value: str | None) -> str | None:
        return normalize_search(value)

    @field_validator("city_slug", "cuisine_slug")
    @classmethod
    def _validate_slug(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip().lower()
        return cleaned or None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _filtered(filters: RestaurantFilters, city_id: str | None) -> Select:
    stmt = select(RestaurantRecord)
    if filters.city_slug:
        # city_id None means the slug did not resolve: nothing can match
        stmt = stmt.where(RestaurantRecord.city_id == city_id) if city_id else stmt.where(false())
    if filters.cuisine_slug:
        stmt = stmt.where(
            exists()
            .where(
                and_(
                    restaurant_cuisines.c.restaurant_id == RestaurantRecord.id,
                    restaurant_cuisines.c.cuisine_id == CuisineTypeRecord.id,
                    CuisineTypeRecord.slug == filters.cuisine_slug,
                )
            )
        )
    if filters.min_rating is not None:
        stmt = stmt.where(RestaurantRecord.rating >= filters.min_rating)
    if filters.min_reviews is not None:
        stmt = stmt.where(RestaurantRecord.review_count >= filters.min_reviews)
    if filters.price_range:
        stmt = stmt.where(RestaurantRecord.price_range.in_(filters.price_range))
    if filters.search:
        stmt = stmt.where(RestaurantRecord.name.icontains(filters.search, autoescape=True))
    return stmt


def build_restaurant_query(
    filters: RestaurantFilters, *, city_id: str | None = None
) -> tuple[Select, Select]:
    """
    Return ``(page_query, count_query)`` for `filters`.

    `city_id` is the already-resolved id for ``filters.city_slug``. Rows without a
    value for the sort column come last in either direction; name and id break ties
    so pages never overlap.
    """
    base = _filtered(filters, city_id)
    count_query = select(func.count()).select_from(base.subquery())

    column = SORT_COLUMNS[filters.sort_by]
    primary = column.desc() if filters.sort_order == "desc" else column.asc()
    page_query = (
        base.order_by(primary.nulls_last(), RestaurantRecord.name.asc(), RestaurantRecord.id.asc())
        .offset(filters.offset)
        .limit(filters.limit)
    )
    return page_query, count_query


__all__ = ["MAX_PAGE_SIZE", "RestaurantFilters", "build_restaurant_query"]
