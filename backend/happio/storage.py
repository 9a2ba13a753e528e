from __future__ import annotations

import time
from collections import defaultdict
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from typing import Any

from fastapi import HTTPException
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .analytics import series_start
from .contracts import (
    AdPlacementCreate,
    AdPlacementUpdate,
    City,
    CityCreate,
    ClaimCreate,
    CuisineCreate,
    CuisineType,
    FoodPostCreate,
    GuestAuthor,
    NearbyRestaurant,
    PhotoCreate,
    ProfileUpdate,
    RestaurantCreate,
    RestaurantDetail,
    RestaurantPage,
    RestaurantRegistration,
    RestaurantUpdate,
    RestaurantWithRelations,
    ReviewAuthor,
    ReviewCreate,
    ReviewPhotoCreate,
    UserAuthor,
)
from .db.core import create_engine, create_session_factory, init_models
from .db.models import (
    AdPlacementRecord,
    CityRecord,
    CuisineTypeRecord,
    FavoriteRecord,
    FoodPostLikeRecord,
    FoodPostRecord,
    ImportJobRecord,
    PageViewRecord,
    ProfileRecord,
    RestaurantClaimRecord,
    RestaurantPhotoRecord,
    RestaurantRecord,
    ReviewPhotoRecord,
    ReviewRecord,
    UserRoleRecord,
)
from .geo import rank_nearby
from .logging_config import get_logger
from .metrics import nearby_scan_size
from .query_builder import RestaurantFilters, build_restaurant_query
from .serializers import (
    ad_to_dict,
    city_to_dict,
    claim_to_dict,
    cuisine_to_dict,
    food_post_to_dict,
    import_job_to_dict,
    photo_to_dict,
    profile_to_dict,
    restaurant_to_detail,
    restaurant_to_list_item,
    review_photo_to_dict,
    review_to_admin,
    review_to_public,
)
from .settings import settings
from .validators import slugify_name

logger = get_logger(__name__)

# Registrations without a usable city centroid land on Amsterdam
DEFAULT_POSITION = (52.3676, 4.9041)
SEARCH_GROUP_LIMIT = 5
FOODWALL_LIMIT = 50
REVIEW_PHOTO_LIMIT = 4
DUPLICATE_CLAIM_MESSAGE = "Je hebt dit restaurant al geclaimd"
ALREADY_CLAIMED_MESSAGE = "Dit restaurant is al geclaimd"


def _with_relations(record: RestaurantRecord) -> RestaurantWithRelations:
    return RestaurantWithRelations.model_validate(restaurant_to_list_item(record))


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Database:
    """
    Every read and write the directory needs, on top of one async engine.

    Methods open their own short-lived session, commit before returning and hand back
    plain dicts or pydantic models so nothing leaks an ORM session to the caller.
    """

    def __init__(self, url: str | None = None) -> None:
        self.url = url or settings.async_database_url
        self.engine = create_engine(self.url)
        self._sessions = create_session_factory(self.engine)

    async def init(self) -> None:
        await init_models(self.engine)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._sessions() as session:
            yield session

    async def ping(self) -> dict[str, int]:
        async with self.session() as session:
            restaurants = (
                await session.execute(select(func.count()).select_from(RestaurantRecord))
            ).scalar_one()
            cities = (await session.execute(select(func.count()).select_from(CityRecord))).scalar_one()
        return {"restaurants": int(restaurants), "cities": int(cities)}

    # -------- helpers --------
    @staticmethod
    async def _load_restaurant(session: AsyncSession, restaurant_id: str) -> RestaurantRecord | None:
        stmt = (
            select(RestaurantRecord)
            .where(RestaurantRecord.id == restaurant_id)
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _require_restaurant(self, session: AsyncSession, restaurant_id: str) -> RestaurantRecord:
        record = await self._load_restaurant(session, restaurant_id)
        if not record:
            raise HTTPException(status_code=404, detail="Restaurant not found")
        return record

    @staticmethod
    async def _city_by_slug(session: AsyncSession, slug: str) -> CityRecord | None:
        stmt = select(CityRecord).where(CityRecord.slug == slug.strip().lower())
        return (await session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def _restaurant_in_city(
        session: AsyncSession, city_slug: str, restaurant_slug: str
    ) -> RestaurantRecord:
        city = await Database._city_by_slug(session, city_slug)
        if not city:
            raise HTTPException(status_code=404, detail="City not found")
        stmt = select(RestaurantRecord).where(
            RestaurantRecord.city_id == city.id,
            RestaurantRecord.slug == restaurant_slug.strip().lower(),
        )
        record = (await session.execute(stmt)).scalar_one_or_none()
        if not record:
            raise HTTPException(status_code=404, detail="Restaurant not found")
        return record

    @staticmethod
    async def _cuisines_by_id(session: AsyncSession, ids: Sequence[str]) -> list[CuisineTypeRecord]:
        if not ids:
            return []
        rows = (
            await session.execute(select(CuisineTypeRecord).where(CuisineTypeRecord.id.in_(ids)))
        ).scalars().all()
        missing = set(ids) - {row.id for row in rows}
        if missing:
            raise HTTPException(status_code=422, detail="Unknown cuisine id")
        return list(rows)

    @staticmethod
    async def _refresh_review_stats(session: AsyncSession, restaurant_id: str) -> None:
        """Rating and review_count always reflect approved reviews only."""
        await session.flush()
        count, average = (
            await session.execute(
                select(func.count(ReviewRecord.id), func.avg(ReviewRecord.rating)).where(
                    ReviewRecord.restaurant_id == restaurant_id,
                    ReviewRecord.is_approved.is_(True),
                )
            )
        ).one()
        restaurant = await session.get(RestaurantRecord, restaurant_id)
        if restaurant is None:
            return
        restaurant.review_count = int(count or 0)
        restaurant.rating = round(float(average), 1) if count else None

    # -------- cities & cuisines --------
    async def list_cities(self) -> list[dict[str, Any]]:
        async with self.session() as session:
            rows = (await session.execute(select(CityRecord).order_by(CityRecord.name))).scalars().all()
            return [city_to_dict(row) for row in rows]

    async def get_city(self, slug: str) -> City:
        async with self.session() as session:
            city = await self._city_by_slug(session, slug)
            if not city:
                raise HTTPException(status_code=404, detail="City not found")
            return City.model_validate(city_to_dict(city))

    async def popular_cities(self, limit: int = 6) -> list[dict[str, Any]]:
        count = func.count(RestaurantRecord.id).label("restaurant_count")
        stmt = (
            select(CityRecord, count)
            .join(RestaurantRecord, RestaurantRecord.city_id == CityRecord.id)
            .group_by(CityRecord.id)
            .order_by(count.desc(), CityRecord.name.asc())
            .limit(limit)
        )
        async with self.session() as session:
            rows = (await session.execute(stmt)).all()
            return [{**city_to_dict(city), "restaurant_count": int(n)} for city, n in rows]

    async def create_city(self, payload: CityCreate) -> dict[str, Any]:
        async with self.session() as session:
            record = CityRecord(**payload.model_dump())
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise HTTPException(status_code=409, detail="City slug already exists") from exc
            return city_to_dict(record)

    async def list_cuisines(self) -> list[dict[str, Any]]:
        async with self.session() as session:
            rows = (
                await session.execute(select(CuisineTypeRecord).order_by(CuisineTypeRecord.name))
            ).scalars().all()
            return [cuisine_to_dict(row) for row in rows]

    async def get_cuisine(self, slug: str) -> CuisineType:
        async with self.session() as session:
            stmt = select(CuisineTypeRecord).where(CuisineTypeRecord.slug == slug.strip().lower())
            record = (await session.execute(stmt)).scalar_one_or_none()
            if not record:
                raise HTTPException(status_code=404, detail="Cuisine not found")
            return CuisineType.model_validate(cuisine_to_dict(record))

    async def create_cuisine(self, payload: CuisineCreate) -> dict[str, Any]:
        async with self.session() as session:
            record = CuisineTypeRecord(**payload.model_dump())
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise HTTPException(status_code=409, detail="Cuisine slug already exists") from exc
            return cuisine_to_dict(record)

    # -------- restaurant reads --------
    async def query_restaurants(self, filters: RestaurantFilters) -> RestaurantPage:
        async with self.session() as session:
            city_id = None
            if filters.city_slug:
                city = await self._city_by_slug(session, filters.city_slug)
                city_id = city.id if city else None
            page_query, count_query = build_restaurant_query(filters, city_id=city_id)
            total = (await session.execute(count_query)).scalar_one()
            rows = (await session.execute(page_query)).scalars().all()
            items = [_with_relations(row) for row in rows]
        return RestaurantPage(items=items, total=int(total), page=filters.page, limit=filters.limit)

    async def new_restaurants(self, limit: int = 8) -> list[RestaurantWithRelations]:
        stmt = (
            select(RestaurantRecord)
            .order_by(RestaurantRecord.created_at.desc(), RestaurantRecord.id.asc())
            .limit(limit)
        )
        async with self.session() as session:
            return [_with_relations(row) for row in (await session.execute(stmt)).scalars().all()]

    async def get_restaurant_detail(self, city_slug: str, restaurant_slug: str) -> RestaurantDetail:
        async with self.session() as session:
            record = await self._restaurant_in_city(session, city_slug, restaurant_slug)
            photos = (
                await session.execute(
                    select(RestaurantPhotoRecord)
                    .where(
                        RestaurantPhotoRecord.restaurant_id == record.id,
                        RestaurantPhotoRecord.is_approved.is_(True),
                    )
                    .order_by(
                        RestaurantPhotoRecord.is_primary.desc(),
                        RestaurantPhotoRecord.created_at.asc(),
                    )
                )
            ).scalars().all()
            return RestaurantDetail.model_validate(restaurant_to_detail(record, photos))

    async def get_restaurant(self, restaurant_id: str) -> RestaurantWithRelations:
        async with self.session() as session:
            return _with_relations(await self._require_restaurant(session, restaurant_id))

    async def restaurant_owner(self, restaurant_id: str) -> str | None:
        async with self.session() as session:
            return (await self._require_restaurant(session, restaurant_id)).owner_id

    async def resolve_restaurant(self, city_slug: str, restaurant_slug: str) -> RestaurantWithRelations:
        async with self.session() as session:
            return _with_relations(await self._restaurant_in_city(session, city_slug, restaurant_slug))

    async def positioned_restaurants(self) -> list[RestaurantWithRelations]:
        stmt = select(RestaurantRecord).where(
            RestaurantRecord.latitude.isnot(None), RestaurantRecord.longitude.isnot(None)
        )
        async with self.session() as session:
            return [_with_relations(row) for row in (await session.execute(stmt)).scalars().all()]

    async def nearby_restaurants(
        self, lat: float | None, lon: float | None, limit: int | None = None
    ) -> list[NearbyRestaurant]:
        """Closest restaurants to (lat, lon); no query runs when a coordinate is missing."""
        if lat is None or lon is None:
            return []
        candidates = await self.positioned_restaurants()
        nearby_scan_size.observe(len(candidates))
        if len(candidates) > settings.NEARBY_SCAN_CEILING:
            logger.warning(
                "nearby_scan_over_ceiling",
                scanned=len(candidates),
                ceiling=settings.NEARBY_SCAN_CEILING,
            )
        ranked = rank_nearby(lat, lon, candidates, limit or settings.NEARBY_DEFAULT_LIMIT)
        return [
            NearbyRestaurant(**entry.item.model_dump(), distance_km=round(entry.distance_km, 2))
            for entry in ranked
        ]

    async def restaurant_locations(self, batch_size: int | None = None) -> list[dict[str, Any]]:
        """Every positioned restaurant for the map, read in fixed-size batches."""
        size = batch_size or settings.LOCATIONS_BATCH_SIZE
        columns = (
            RestaurantRecord.id,
            RestaurantRecord.name,
            RestaurantRecord.slug,
            RestaurantRecord.latitude,
            RestaurantRecord.longitude,
            RestaurantRecord.rating,
            RestaurantRecord.price_range,
            CityRecord.slug,
        )
        locations: list[dict[str, Any]] = []
        offset = 0
        async with self.session() as session:
            while True:
                stmt = (
                    select(*columns)
                    .outerjoin(CityRecord, RestaurantRecord.city_id == CityRecord.id)
                    .where(RestaurantRecord.latitude.isnot(None), RestaurantRecord.longitude.isnot(None))
                    .order_by(RestaurantRecord.id)
                    .offset(offset)
                    .limit(size)
                )
                batch = (await session.execute(stmt)).all()
                for rid, name, slug, lat, lon, rating, price, city_slug in batch:
                    locations.append(
                        {
                            "id": rid,
                            "name": name,
                            "slug": slug,
                            "latitude": lat,
                            "longitude": lon,
                            "rating": rating,
                            "price_range": price,
                            "city_slug": city_slug,
                        }
                    )
                if len(batch) < size:
                    break
                offset += size
        return locations

    async def search(self, query: str) -> dict[str, list[Any]]:
        async with self.session() as session:
            restaurants = (
                await session.execute(
                    select(RestaurantRecord)
                    .where(RestaurantRecord.name.icontains(query, autoescape=True))
                    .order_by(RestaurantRecord.rating.desc().nulls_last(), RestaurantRecord.name)
                    .limit(SEARCH_GROUP_LIMIT)
                )
            ).scalars().all()
            cities = (
                await session.execute(
                    select(CityRecord)
                    .where(CityRecord.name.icontains(query, autoescape=True))
                    .order_by(CityRecord.name)
                    .limit(SEARCH_GROUP_LIMIT)
                )
            ).scalars().all()
            cuisines = (
                await session.execute(
                    select(CuisineTypeRecord)
                    .where(CuisineTypeRecord.name.icontains(query, autoescape=True))
                    .order_by(CuisineTypeRecord.name)
                    .limit(SEARCH_GROUP_LIMIT)
                )
            ).scalars().all()
            return {
                "restaurants": [_with_relations(r) for r in restaurants],
                "cities": [city_to_dict(c) for c in cities],
                "cuisines": [cuisine_to_dict(c) for c in cuisines],
            }

    async def sitemap_sources(self) -> dict[str, list[Any]]:
        async with self.session() as session:
            cities = (await session.execute(select(CityRecord).order_by(CityRecord.name))).scalars().all()
            cuisines = (
                await session.execute(select(CuisineTypeRecord).order_by(CuisineTypeRecord.name))
            ).scalars().all()
            rows = (
                await session.execute(
                    select(RestaurantRecord.slug, RestaurantRecord.updated_at, CityRecord.slug)
                    .join(CityRecord, RestaurantRecord.city_id == CityRecord.id)
                    .order_by(CityRecord.slug, RestaurantRecord.slug)
                )
            ).all()
        return {
            "cities": list(cities),
            "cuisines": list(cuisines),
            "restaurants": [
                {"slug": slug, "updated_at": updated_at, "city": {"slug": city_slug}}
                for slug, updated_at, city_slug in rows
            ],
        }

    # -------- restaurant writes --------
    async def register_restaurant(
        self, payload: RestaurantRegistration, owner_id: str | None
    ) -> RestaurantWithRelations:
        async with self.session() as session:
            city = await session.get(CityRecord, payload.city_id)
            if not city:
                raise HTTPException(status_code=404, detail="City not found")
            if city.latitude is not None and city.longitude is not None:
                lat, lon = city.latitude, city.longitude
            else:
                lat, lon = DEFAULT_POSITION
            record = RestaurantRecord(
                name=payload.name,
                slug=f"{slugify_name(payload.name)}-{int(time.time() * 1000)}",
                description=payload.description,
                address=payload.address,
                postal_code=payload.postal_code,
                city_id=city.id,
                latitude=lat,
                longitude=lon,
                phone=payload.phone,
                email=payload.email,
                website=payload.website,
                is_verified=False,
                is_claimed=False,
                owner_id=owner_id,
            )
            session.add(record)
            await session.commit()
            logger.info("restaurant_registered", restaurant_id=record.id, owner_id=owner_id)
            return _with_relations(await self._load_restaurant(session, record.id))

    async def create_restaurant(self, payload: RestaurantCreate) -> RestaurantWithRelations:
        async with self.session() as session:
            data = payload.model_dump(exclude={"cuisine_ids"})
            data["address"] = data.get("address") or ""
            data["slug"] = data["slug"].strip().lower()
            record = RestaurantRecord(**data)
            record.cuisines = await self._cuisines_by_id(session, payload.cuisine_ids)
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise HTTPException(
                    status_code=409, detail="Restaurant slug already exists in this city"
                ) from exc
            return _with_relations(await self._load_restaurant(session, record.id))

    async def update_restaurant(
        self, restaurant_id: str, payload: RestaurantUpdate
    ) -> RestaurantWithRelations:
        async with self.session() as session:
            record = await self._require_restaurant(session, restaurant_id)
            changes = payload.model_dump(exclude_unset=True, exclude={"cuisine_ids"})
            for key, value in changes.items():
                setattr(record, key, value)
            if payload.cuisine_ids is not None:
                record.cuisines = await self._cuisines_by_id(session, payload.cuisine_ids)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise HTTPException(status_code=409, detail="Restaurant update conflicts") from exc
            return _with_relations(await self._load_restaurant(session, restaurant_id))

    async def delete_restaurant(self, restaurant_id: str) -> None:
        async with self.session() as session:
            record = await self._require_restaurant(session, restaurant_id)
            await session.delete(record)
            await session.commit()

    async def owned_restaurants(self, user_id: str) -> list[RestaurantWithRelations]:
        stmt = (
            select(RestaurantRecord)
            .where(RestaurantRecord.owner_id == user_id)
            .order_by(RestaurantRecord.name)
        )
        async with self.session() as session:
            return [_with_relations(row) for row in (await session.execute(stmt)).scalars().all()]

    async def add_photo(self, restaurant_id: str, user_id: str, payload: PhotoCreate) -> dict[str, Any]:
        async with self.session() as session:
            await self._require_restaurant(session, restaurant_id)
            record = RestaurantPhotoRecord(
                restaurant_id=restaurant_id,
                user_id=user_id,
                url=payload.url,
                caption=payload.caption,
                is_approved=False,
            )
            session.add(record)
            await session.commit()
            return photo_to_dict(record)

    async def approve_photo(self, photo_id: str) -> dict[str, Any]:
        async with self.session() as session:
            record = await session.get(RestaurantPhotoRecord, photo_id)
            if not record:
                raise HTTPException(status_code=404, detail="Photo not found")
            record.is_approved = True
            await session.commit()
            return photo_to_dict(record)

    # -------- reviews --------
    @staticmethod
    async def _review_photos(
        session: AsyncSession, review_ids: Sequence[str]
    ) -> dict[str, list[ReviewPhotoRecord]]:
        grouped: dict[str, list[ReviewPhotoRecord]] = defaultdict(list)
        if not review_ids:
            return grouped
        stmt = (
            select(ReviewPhotoRecord)
            .where(ReviewPhotoRecord.review_id.in_(review_ids))
            .order_by(ReviewPhotoRecord.created_at, ReviewPhotoRecord.id)
        )
        for photo in (await session.execute(stmt)).scalars().all():
            grouped[photo.review_id].append(photo)
        return grouped

    async def list_reviews(self, restaurant_id: str) -> list[dict[str, Any]]:
        """Approved reviews, newest first, with their photos and the author's display name."""
        stmt = (
            select(ReviewRecord)
            .where(ReviewRecord.restaurant_id == restaurant_id, ReviewRecord.is_approved.is_(True))
            .order_by(ReviewRecord.created_at.desc())
        )
        async with self.session() as session:
            reviews = (await session.execute(stmt)).scalars().all()
            photos = await self._review_photos(session, [r.id for r in reviews])
            profiles = await self._profiles_for(session, [r.user_id for r in reviews])
            return [
                review_to_public(
                    r,
                    photos.get(r.id),
                    profiles[r.user_id].display_name if r.user_id in profiles else None,
                )
                for r in reviews
            ]

    async def add_review_photo(
        self, review_id: str, user_id: str, payload: ReviewPhotoCreate
    ) -> dict[str, Any]:
        async with self.session() as session:
            review = await session.get(ReviewRecord, review_id)
            if not review:
                raise HTTPException(status_code=404, detail="Review not found")
            if review.user_id != user_id:
                raise HTTPException(status_code=403, detail="Alleen de schrijver kan foto's toevoegen")
            count = await session.scalar(
                select(func.count(ReviewPhotoRecord.id)).where(ReviewPhotoRecord.review_id == review_id)
            )
            if count >= REVIEW_PHOTO_LIMIT:
                raise HTTPException(
                    status_code=409, detail=f"Maximaal {REVIEW_PHOTO_LIMIT} foto's per review"
                )
            record = ReviewPhotoRecord(review_id=review_id, user_id=user_id, url=payload.url)
            session.add(record)
            await session.commit()
            return review_photo_to_dict(record)

    async def create_review(
        self, restaurant_id: str, payload: ReviewCreate, author: ReviewAuthor
    ) -> tuple[dict[str, Any], RestaurantWithRelations]:
        """Store a review awaiting moderation; returns it with the reviewed restaurant."""
        async with self.session() as session:
            restaurant = await self._require_restaurant(session, restaurant_id)
            record = ReviewRecord(
                restaurant=restaurant,
                rating=payload.rating,
                title=payload.title,
                content=payload.content,
                is_approved=False,
                is_verified=False,
            )
            match author:
                case UserAuthor(user_id=user_id):
                    record.user_id = user_id
                case GuestAuthor(name=name, email=email):
                    record.guest_name = name
                    record.guest_email = email
            session.add(record)
            await session.commit()
            return review_to_admin(record), _with_relations(restaurant)

    async def admin_list_reviews(self, status: str = "pending") -> list[dict[str, Any]]:
        stmt = select(ReviewRecord).order_by(ReviewRecord.created_at.desc())
        if status == "pending":
            stmt = stmt.where(ReviewRecord.is_approved.is_(False))
        elif status == "approved":
            stmt = stmt.where(ReviewRecord.is_approved.is_(True))
        async with self.session() as session:
            reviews = (await session.execute(stmt)).scalars().all()
            photos = await self._review_photos(session, [r.id for r in reviews])
            return [review_to_admin(r, photos.get(r.id)) for r in reviews]

    async def set_review_approval(
        self, review_id: str, approved: bool
    ) -> tuple[dict[str, Any], bool]:
        """Set the approval flag; the second value tells whether it actually changed."""
        async with self.session() as session:
            record = await session.get(ReviewRecord, review_id)
            if not record:
                raise HTTPException(status_code=404, detail="Review not found")
            changed = record.is_approved != approved
            record.is_approved = approved
            await self._refresh_review_stats(session, record.restaurant_id)
            await session.commit()
            return review_to_admin(record), changed

    async def delete_review(self, review_id: str) -> None:
        async with self.session() as session:
            record = await session.get(ReviewRecord, review_id)
            if not record:
                raise HTTPException(status_code=404, detail="Review not found")
            restaurant_id = record.restaurant_id
            await session.delete(record)
            await self._refresh_review_stats(session, restaurant_id)
            await session.commit()

    async def import_review(
        self, restaurant_id: str, *, author_name: str, rating: int, content: str | None
    ) -> dict[str, Any]:
        """Externally sourced review: published straight away, named author, no email."""
        async with self.session() as session:
            await self._require_restaurant(session, restaurant_id)
            record = ReviewRecord(
                restaurant_id=restaurant_id,
                rating=rating,
                content=content,
                guest_name=author_name,
                is_approved=True,
                is_verified=True,
            )
            session.add(record)
            await self._refresh_review_stats(session, restaurant_id)
            await session.commit()
            return review_to_public(record)

    # -------- favorites --------
    async def toggle_favorite(self, user_id: str, restaurant_id: str) -> dict[str, Any]:
        async with self.session() as session:
            await self._require_restaurant(session, restaurant_id)
            stmt = select(FavoriteRecord).where(
                FavoriteRecord.user_id == user_id, FavoriteRecord.restaurant_id == restaurant_id
            )
            existing = (await session.execute(stmt)).scalar_one_or_none()
            if existing:
                await session.delete(existing)
                await session.commit()
                return {"action": "removed", "is_favorite": False}
            session.add(FavoriteRecord(user_id=user_id, restaurant_id=restaurant_id))
            try:
                await session.commit()
            except IntegrityError:
                # a concurrent toggle already added it
                await session.rollback()
            return {"action": "added", "is_favorite": True}

    async def is_favorite(self, user_id: str, restaurant_id: str) -> bool:
        stmt = select(func.count(FavoriteRecord.id)).where(
            FavoriteRecord.user_id == user_id, FavoriteRecord.restaurant_id == restaurant_id
        )
        async with self.session() as session:
            return bool((await session.execute(stmt)).scalar_one())

    async def list_favorites(self, user_id: str) -> list[dict[str, Any]]:
        stmt = (
            select(FavoriteRecord)
            .where(FavoriteRecord.user_id == user_id)
            .order_by(FavoriteRecord.created_at.desc())
        )
        async with self.session() as session:
            return [
                {
                    "id": fav.id,
                    "created_at": fav.created_at.isoformat() if fav.created_at else None,
                    "restaurant": _with_relations(fav.restaurant),
                }
                for fav in (await session.execute(stmt)).scalars().all()
            ]

    # -------- profiles --------
    @staticmethod
    async def _profiles_for(
        session: AsyncSession, user_ids: Sequence[str | None]
    ) -> dict[str, ProfileRecord]:
        wanted = {uid for uid in user_ids if uid}
        if not wanted:
            return {}
        stmt = select(ProfileRecord).where(ProfileRecord.user_id.in_(wanted))
        return {row.user_id: row for row in (await session.execute(stmt)).scalars().all()}

    @staticmethod
    async def _profile(session: AsyncSession, user_id: str) -> ProfileRecord | None:
        stmt = select(ProfileRecord).where(ProfileRecord.user_id == user_id)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def get_profile(self, user_id: str) -> dict[str, Any]:
        async with self.session() as session:
            record = await self._profile(session, user_id)
            if not record:
                raise HTTPException(status_code=404, detail="Profile not found")
            return profile_to_dict(record)

    async def ensure_profile(self, user_id: str, display_name: str | None = None) -> dict[str, Any]:
        """The caller's profile, created empty the first time an account shows up."""
        async with self.session() as session:
            record = await self._profile(session, user_id)
            if record:
                return profile_to_dict(record)
            record = ProfileRecord(user_id=user_id, display_name=display_name)
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                # created by a parallel request
                await session.rollback()
                record = await self._profile(session, user_id)
            return profile_to_dict(record)

    async def update_profile(self, user_id: str, payload: ProfileUpdate) -> dict[str, Any]:
        changes = payload.model_dump(exclude_unset=True)
        async with self.session() as session:
            record = await self._profile(session, user_id)
            if record is None:
                record = ProfileRecord(user_id=user_id)
                session.add(record)
            for key, value in changes.items():
                setattr(record, key, value)
            await session.commit()
            return profile_to_dict(record)

    # -------- foodwall --------
    async def list_food_posts(
        self, viewer_id: str | None = None, limit: int = FOODWALL_LIMIT
    ) -> list[dict[str, Any]]:
        stmt = (
            select(FoodPostRecord)
            .order_by(FoodPostRecord.created_at.desc(), FoodPostRecord.id)
            .limit(limit)
        )
        async with self.session() as session:
            posts = (await session.execute(stmt)).scalars().all()
            profiles = await self._profiles_for(session, [p.user_id for p in posts])
            liked: set[str] = set()
            if viewer_id and posts:
                liked_stmt = select(FoodPostLikeRecord.post_id).where(
                    FoodPostLikeRecord.user_id == viewer_id,
                    FoodPostLikeRecord.post_id.in_([p.id for p in posts]),
                )
                liked = set((await session.execute(liked_stmt)).scalars().all())
            return [food_post_to_dict(p, profiles.get(p.user_id), p.id in liked) for p in posts]

    async def create_food_post(self, author: ReviewAuthor, payload: FoodPostCreate) -> dict[str, Any]:
        async with self.session() as session:
            restaurant = None
            if payload.restaurant_id:
                restaurant = await self._require_restaurant(session, payload.restaurant_id)
            record = FoodPostRecord(
                image_url=payload.image_url,
                caption=payload.caption,
                likes_count=0,
            )
            record.restaurant = restaurant
            match author:
                case UserAuthor(user_id=user_id):
                    record.user_id = user_id
                case GuestAuthor(name=name, email=email):
                    record.guest_name = name
                    record.guest_email = email
            session.add(record)
            await session.commit()
            profile = await self._profile(session, record.user_id) if record.user_id else None
            return food_post_to_dict(record, profile)

    async def toggle_food_post_like(self, user_id: str, post_id: str) -> dict[str, Any]:
        """Like or unlike; ``likes_count`` is recounted from the like rows every time."""
        async with self.session() as session:
            post = await session.get(FoodPostRecord, post_id)
            if not post:
                raise HTTPException(status_code=404, detail="Post not found")
            stmt = select(FoodPostLikeRecord).where(
                FoodPostLikeRecord.post_id == post_id, FoodPostLikeRecord.user_id == user_id
            )
            existing = (await session.execute(stmt)).scalar_one_or_none()
            if existing:
                await session.delete(existing)
                action = "unliked"
            else:
                session.add(FoodPostLikeRecord(post_id=post_id, user_id=user_id))
                action = "liked"
            try:
                await session.flush()
            except IntegrityError:
                # a concurrent like already landed
                await session.rollback()
                post = await session.get(FoodPostRecord, post_id)
            post.likes_count = await session.scalar(
                select(func.count(FoodPostLikeRecord.id)).where(FoodPostLikeRecord.post_id == post_id)
            )
            await session.commit()
            return {"action": action, "is_liked": action == "liked", "likes_count": post.likes_count}

    async def delete_food_post(self, post_id: str, user_id: str, *, as_admin: bool = False) -> None:
        async with self.session() as session:
            post = await session.get(FoodPostRecord, post_id)
            if not post:
                raise HTTPException(status_code=404, detail="Post not found")
            if not as_admin and post.user_id != user_id:
                raise HTTPException(status_code=403, detail="Je kunt alleen je eigen posts verwijderen")
            await session.delete(post)
            await session.commit()

    # -------- claims --------
    async def create_claim(self, user_id: str, payload: ClaimCreate) -> dict[str, Any]:
        async with self.session() as session:
            restaurant = await self._restaurant_in_city(
                session, payload.city_slug, payload.restaurant_slug
            )
            approved = await session.scalar(
                select(RestaurantClaimRecord.id).where(
                    RestaurantClaimRecord.user_id == user_id,
                    RestaurantClaimRecord.restaurant_id == restaurant.id,
                    RestaurantClaimRecord.status == "approved",
                )
            )
            if approved:
                raise HTTPException(status_code=409, detail=DUPLICATE_CLAIM_MESSAGE)
            if restaurant.is_claimed:
                raise HTTPException(status_code=409, detail=ALREADY_CLAIMED_MESSAGE)
            record = RestaurantClaimRecord(
                restaurant_id=restaurant.id,
                user_id=user_id,
                business_email=payload.business_email,
                phone=payload.phone,
                message=payload.message,
                status="pending",
            )
            record.restaurant = restaurant
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise HTTPException(status_code=409, detail=DUPLICATE_CLAIM_MESSAGE) from exc
            return claim_to_dict(record)

    async def my_claims(self, user_id: str) -> list[dict[str, Any]]:
        stmt = (
            select(RestaurantClaimRecord)
            .where(RestaurantClaimRecord.user_id == user_id)
            .order_by(RestaurantClaimRecord.created_at.desc())
        )
        async with self.session() as session:
            return [claim_to_dict(c) for c in (await session.execute(stmt)).scalars().all()]

    async def list_claims(self, status: str | None = None) -> list[dict[str, Any]]:
        stmt = select(RestaurantClaimRecord).order_by(RestaurantClaimRecord.created_at.desc())
        if status:
            stmt = stmt.where(RestaurantClaimRecord.status == status)
        async with self.session() as session:
            return [claim_to_dict(c) for c in (await session.execute(stmt)).scalars().all()]

    @staticmethod
    async def _pending_claim(session: AsyncSession, claim_id: str) -> RestaurantClaimRecord:
        claim = await session.get(RestaurantClaimRecord, claim_id)
        if not claim:
            raise HTTPException(status_code=404, detail="Claim not found")
        if claim.status != "pending":
            raise HTTPException(status_code=409, detail=f"Claim is already {claim.status}")
        return claim

    async def approve_claim(self, claim_id: str, reviewer_id: str) -> dict[str, Any]:
        """Approve the claim and hand the restaurant to the claimant in one transaction."""
        async with self.session() as session:
            async with session.begin():
                claim = await self._pending_claim(session, claim_id)
                restaurant = await session.get(RestaurantRecord, claim.restaurant_id)
                if restaurant is None:
                    raise HTTPException(status_code=404, detail="Restaurant not found")
                if restaurant.is_claimed and restaurant.owner_id != claim.user_id:
                    raise HTTPException(status_code=409, detail=ALREADY_CLAIMED_MESSAGE)
                claim.status = "approved"
                claim.reviewed_by = reviewer_id
                claim.reviewed_at = _utcnow()
                restaurant.owner_id = claim.user_id
                restaurant.is_claimed = True
            return claim_to_dict(claim)

    async def reject_claim(self, claim_id: str, reviewer_id: str, reason: str) -> dict[str, Any]:
        async with self.session() as session:
            claim = await self._pending_claim(session, claim_id)
            claim.status = "rejected"
            claim.rejection_reason = reason
            claim.reviewed_by = reviewer_id
            claim.reviewed_at = _utcnow()
            await session.commit()
            return claim_to_dict(claim)

    # -------- roles --------
    async def roles_for(self, user_id: str) -> list[str]:
        stmt = select(UserRoleRecord.role).where(UserRoleRecord.user_id == user_id)
        async with self.session() as session:
            return sorted((await session.execute(stmt)).scalars().all())

    async def has_role(self, user_id: str, role: str) -> bool:
        return role in await self.roles_for(user_id)

    async def grant_role(self, user_id: str, role: str) -> dict[str, Any]:
        async with self.session() as session:
            existing = (
                await session.execute(
                    select(UserRoleRecord).where(
                        UserRoleRecord.user_id == user_id, UserRoleRecord.role == role
                    )
                )
            ).scalar_one_or_none()
            if not existing:
                session.add(UserRoleRecord(user_id=user_id, role=role))
                await session.commit()
        return {"user_id": user_id, "roles": await self.roles_for(user_id)}

    # -------- ads --------
    async def list_ads(self) -> list[dict[str, Any]]:
        async with self.session() as session:
            rows = (
                await session.execute(
                    select(AdPlacementRecord).order_by(AdPlacementRecord.created_at.desc())
                )
            ).scalars().all()
            return [ad_to_dict(row) for row in rows]

    async def active_ads(self, placement: str, today: date | None = None) -> list[dict[str, Any]]:
        day = today or _utcnow().date()
        stmt = (
            select(AdPlacementRecord)
            .where(
                AdPlacementRecord.placement_type == placement,
                AdPlacementRecord.is_active.is_(True),
                or_(AdPlacementRecord.start_date.is_(None), AdPlacementRecord.start_date <= day),
                or_(AdPlacementRecord.end_date.is_(None), AdPlacementRecord.end_date >= day),
            )
            .order_by(AdPlacementRecord.created_at.desc())
        )
        async with self.session() as session:
            return [ad_to_dict(row) for row in (await session.execute(stmt)).scalars().all()]

    async def create_ad(self, payload: AdPlacementCreate) -> dict[str, Any]:
        async with self.session() as session:
            record = AdPlacementRecord(**payload.model_dump())
            session.add(record)
            await session.commit()
            return ad_to_dict(record)

    async def update_ad(self, ad_id: str, payload: AdPlacementUpdate) -> dict[str, Any]:
        async with self.session() as session:
            record = await session.get(AdPlacementRecord, ad_id)
            if not record:
                raise HTTPException(status_code=404, detail="Ad placement not found")
            for key, value in payload.model_dump(exclude_unset=True).items():
                setattr(record, key, value)
            if record.start_date and record.end_date and record.end_date < record.start_date:
                raise HTTPException(status_code=422, detail="end_date must not be before start_date")
            await session.commit()
            return ad_to_dict(record)

    async def delete_ad(self, ad_id: str) -> None:
        async with self.session() as session:
            result = await session.execute(delete(AdPlacementRecord).where(AdPlacementRecord.id == ad_id))
            if not result.rowcount:
                raise HTTPException(status_code=404, detail="Ad placement not found")
            await session.commit()

    # -------- page views --------
    async def record_page_view(self, **fields: Any) -> None:
        async with self.session() as session:
            session.add(PageViewRecord(**fields))
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise HTTPException(status_code=404, detail="Restaurant not found") from exc

    async def page_views(self, restaurant_id: str | None = None) -> list[tuple[datetime, str | None, str]]:
        stmt = select(PageViewRecord.created_at, PageViewRecord.ip_hash, PageViewRecord.page_type)
        if restaurant_id:
            stmt = stmt.where(PageViewRecord.restaurant_id == restaurant_id)
        async with self.session() as session:
            return [tuple(row) for row in (await session.execute(stmt)).all()]

    async def page_view_times(
        self, days: int, now: datetime, restaurant_id: str | None = None
    ) -> list[datetime]:
        stmt = (
            select(PageViewRecord.created_at)
            .where(PageViewRecord.created_at >= series_start(days, now))
            .order_by(PageViewRecord.created_at.asc())
        )
        if restaurant_id:
            stmt = stmt.where(PageViewRecord.restaurant_id == restaurant_id)
        async with self.session() as session:
            return list((await session.execute(stmt)).scalars().all())

    # -------- import jobs --------
    async def running_import_job(self) -> dict[str, Any] | None:
        stmt = (
            select(ImportJobRecord)
            .where(ImportJobRecord.status == "running")
            .order_by(ImportJobRecord.created_at.desc())
            .limit(1)
        )
        async with self.session() as session:
            return import_job_to_dict((await session.execute(stmt)).scalar_one_or_none())

    async def latest_import_job(self) -> dict[str, Any] | None:
        stmt = select(ImportJobRecord).order_by(ImportJobRecord.created_at.desc()).limit(1)
        async with self.session() as session:
            return import_job_to_dict((await session.execute(stmt)).scalar_one_or_none())

    async def get_import_job(self, job_id: str) -> dict[str, Any]:
        async with self.session() as session:
            record = await session.get(ImportJobRecord, job_id)
            if not record:
                raise HTTPException(status_code=404, detail="Import job not found")
            return import_job_to_dict(record)

    async def create_import_job(self, total_cities: int) -> dict[str, Any]:
        async with self.session() as session:
            record = ImportJobRecord(status="pending", total_cities=total_cities, errors=[])
            session.add(record)
            await session.commit()
            return import_job_to_dict(record)

    async def update_import_job(self, job_id: str, **fields: Any) -> dict[str, Any]:
        async with self.session() as session:
            record = await session.get(ImportJobRecord, job_id)
            if not record:
                raise HTTPException(status_code=404, detail="Import job not found")
            for key, value in fields.items():
                setattr(record, key, value)
            await session.commit()
            return import_job_to_dict(record)

    async def count_cities(self) -> int:
        async with self.session() as session:
            return int((await session.execute(select(func.count()).select_from(CityRecord))).scalar_one())
