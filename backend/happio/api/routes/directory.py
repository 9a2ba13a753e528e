"""Read-only directory pages: cities, provinces, cuisines, search and nearby."""

from __future__ import annotations

from fastapi import APIRouter, Query

from ...aggregation import compute_listing_stats, group_by_province
from ...contracts import (
    City,
    CityListing,
    CuisineListing,
    CuisineType,
    NearbyRestaurant,
    PopularCity,
    ProvinceGroup,
    RestaurantPage,
    SearchResults,
)
from ...geo import geolocation_policy
from ...query_builder import MAX_PAGE_SIZE, RestaurantFilters
from ...storage import Database
from ..deps import CacheDep, DatabaseDep
from ..types import Latitude, LimitQuery, Longitude, NearbyLimit, PageQuery, PriceRangeQuery, SearchQuery
from .restaurants import build_filters

router = APIRouter(tags=["directory"])

MIN_SEARCH_LENGTH = 2


async def _listing_with_stats(db: Database, filters: RestaurantFilters) -> tuple[RestaurantPage, dict]:
    """Requested page plus statistics over the first MAX_PAGE_SIZE matches."""
    page = await db.query_restaurants(filters)
    if filters.page == 1 and page.total <= filters.limit:
        population = page.items
    else:
        everything = filters.model_copy(update={"page": 1, "limit": MAX_PAGE_SIZE})
        population = (await db.query_restaurants(everything)).items
    return page, compute_listing_stats(population).to_dict()


@router.get("/cities", response_model=list[City])
async def list_cities(db: DatabaseDep, cache: CacheDep):
    return await cache.get_or_load("cities", db.list_cities)


@router.get("/cities/popular", response_model=list[PopularCity])
async def popular_cities(db: DatabaseDep, limit: int = Query(6, ge=1, le=50)):
    return await db.popular_cities(limit)


@router.get("/provinces", response_model=list[ProvinceGroup])
async def provinces(db: DatabaseDep, cache: CacheDep):
    cities = await cache.get_or_load("cities", db.list_cities)
    return group_by_province(cities)


@router.get("/cities/{city_slug}", response_model=CityListing)
async def city_listing(
    city_slug: str,
    db: DatabaseDep,
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
    city = await db.get_city(city_slug)
    filters = build_filters(
        city_slug=city.slug,
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
    restaurants, stats = await _listing_with_stats(db, filters)
    return {"city": city, "restaurants": restaurants, "stats": stats}


@router.get("/cuisines", response_model=list[CuisineType])
async def list_cuisines(db: DatabaseDep, cache: CacheDep):
    return await cache.get_or_load("cuisines", db.list_cuisines)


@router.get("/cuisines/{cuisine_slug}", response_model=CuisineListing)
async def cuisine_listing(
    cuisine_slug: str,
    db: DatabaseDep,
    city: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: PageQuery = 1,
    limit: LimitQuery = 20,
):
    cuisine = await db.get_cuisine(cuisine_slug)
    filters = build_filters(
        city_slug=city,
        cuisine_slug=cuisine.slug,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    restaurants, stats = await _listing_with_stats(db, filters)
    return {"cuisine": cuisine, "restaurants": restaurants, "stats": stats}


@router.get("/search", response_model=SearchResults)
async def search(db: DatabaseDep, q: SearchQuery = ""):
    term = " ".join(q.split())
    if len(term) < MIN_SEARCH_LENGTH:
        return SearchResults()
    return await db.search(term)


@router.get("/nearby", response_model=list[NearbyRestaurant])
async def nearby(db: DatabaseDep, lat: Latitude = None, lng: Longitude = None, limit: NearbyLimit = None):
    return await db.nearby_restaurants(lat, lng, limit)


@router.get("/nearby/geolocation")
def nearby_geolocation():
    return geolocation_policy()
