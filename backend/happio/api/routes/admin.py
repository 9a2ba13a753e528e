"""Moderation and management endpoints. Every route requires the admin role."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ...analytics import daily_series, view_stats
from ...contracts import (
    AdPlacementCreate,
    AdPlacementUpdate,
    CityCreate,
    ClaimRejection,
    CuisineCreate,
    ImportControl,
    PhotoRefreshRequest,
    RestaurantCreate,
    RestaurantPage,
    RestaurantUpdate,
    RestaurantWithRelations,
    RoleGrant,
)
from ...imports import ImportProgress, refresh_photos_page
from ...logging_config import get_logger
from ...metrics import claims_total, review_moderation_total
from ...storage import Database
from ..deps import (
    CacheDep,
    DatabaseDep,
    FunctionsDep,
    ImportServiceDep,
    NotifierDep,
    require_admin,
    require_subject,
)
from ..types import LimitQuery, PageQuery, ReviewStatusQuery
from .restaurants import build_filters

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

AdminClaims = dict[str, Any]


# ---------- reviews ----------
@router.get("/reviews")
async def list_reviews(db: DatabaseDep, status: ReviewStatusQuery = "pending"):
    return await db.admin_list_reviews(status)


@router.post("/reviews/{review_id}/approve")
async def approve_review(review_id: str, db: DatabaseDep, notifier: NotifierDep):
    review, changed = await db.set_review_approval(review_id, True)
    review_moderation_total.labels(decision="approved").inc()
    if changed and review.get("guest_email") and review.get("restaurant"):
        await notifier.review_approved(review, review["restaurant"])
    return review


@router.post("/reviews/{review_id}/reject")
async def reject_review(review_id: str, db: DatabaseDep):
    review, _ = await db.set_review_approval(review_id, False)
    review_moderation_total.labels(decision="rejected").inc()
    return review


@router.delete("/reviews/{review_id}", status_code=204)
async def delete_review(review_id: str, db: DatabaseDep):
    await db.delete_review(review_id)
    review_moderation_total.labels(decision="deleted").inc()


# ---------- claims ----------
@router.get("/claims")
async def list_claims(
    db: DatabaseDep,
    status: str | None = Query(None, pattern="^(pending|approved|rejected)$"),
):
    return await db.list_claims(status)


@router.post("/claims/{claim_id}/approve")
async def approve_claim(
    claim_id: str, db: DatabaseDep, claims: AdminClaims = Depends(require_admin)
):
    claim = await db.approve_claim(claim_id, require_subject(claims))
    claims_total.labels(outcome="approved").inc()
    logger.info("claim_approved", claim_id=claim_id, restaurant_id=claim["restaurant_id"])
    return claim


@router.post("/claims/{claim_id}/reject")
async def reject_claim(
    claim_id: str,
    payload: ClaimRejection,
    db: DatabaseDep,
    claims: AdminClaims = Depends(require_admin),
):
    claim = await db.reject_claim(claim_id, require_subject(claims), payload.reason)
    claims_total.labels(outcome="rejected").inc()
    return claim


# ---------- directory data ----------
@router.post("/cities", status_code=201)
async def create_city(payload: CityCreate, db: DatabaseDep, cache: CacheDep):
    city = await db.create_city(payload)
    cache.invalidate("cities")
    return city


@router.post("/cuisines", status_code=201)
async def create_cuisine(payload: CuisineCreate, db: DatabaseDep, cache: CacheDep):
    cuisine = await db.create_cuisine(payload)
    cache.invalidate("cuisines")
    return cuisine


@router.get("/restaurants", response_model=RestaurantPage)
async def list_restaurants(
    db: DatabaseDep, search: str | None = None, page: PageQuery = 1, limit: LimitQuery = 50
):
    filters = build_filters(search=search, sort_by="name", sort_order="asc", page=page, limit=limit)
    return await db.query_restaurants(filters)


@router.post("/restaurants", response_model=RestaurantWithRelations, status_code=201)
async def create_restaurant(payload: RestaurantCreate, db: DatabaseDep):
    return await db.create_restaurant(payload)


@router.patch("/restaurants/{restaurant_id:uuid}", response_model=RestaurantWithRelations)
async def update_restaurant(restaurant_id: UUID, payload: RestaurantUpdate, db: DatabaseDep):
    return await db.update_restaurant(str(restaurant_id), payload)


@router.delete("/restaurants/{restaurant_id:uuid}", status_code=204)
async def delete_restaurant(restaurant_id: UUID, db: DatabaseDep):
    await db.delete_restaurant(str(restaurant_id))


@router.post("/photos/{photo_id}/approve")
async def approve_photo(photo_id: str, db: DatabaseDep):
    return await db.approve_photo(photo_id)


@router.post("/photos/refresh")
async def refresh_photos(payload: PhotoRefreshRequest, functions: FunctionsDep):
    page = await refresh_photos_page(functions, payload.batch_size, payload.offset)
    return page.model_dump(by_alias=True)


# ---------- ads ----------
@router.get("/ads")
async def list_ads(db: DatabaseDep):
    return await db.list_ads()


@router.post("/ads", status_code=201)
async def create_ad(payload: AdPlacementCreate, db: DatabaseDep):
    return await db.create_ad(payload)


@router.patch("/ads/{ad_id}")
async def update_ad(ad_id: str, payload: AdPlacementUpdate, db: DatabaseDep):
    return await db.update_ad(ad_id, payload)


@router.delete("/ads/{ad_id}", status_code=204)
async def delete_ad(ad_id: str, db: DatabaseDep):
    await db.delete_ad(ad_id)


# ---------- analytics ----------
async def _analytics(db: Database, days: int, restaurant_id: str | None) -> dict[str, Any]:
    now = datetime.now(UTC)
    return {
        "stats": view_stats(await db.page_views(restaurant_id), now),
        "chart": daily_series(await db.page_view_times(days, now, restaurant_id), days, now),
    }


@router.get("/analytics")
async def analytics(
    db: DatabaseDep,
    restaurant_id: str | None = None,
    days: int = Query(30, ge=1, le=365),
):
    return await _analytics(db, days, restaurant_id)


@router.get("/analytics/restaurants/{restaurant_id:uuid}")
async def restaurant_analytics(
    restaurant_id: UUID, db: DatabaseDep, days: int = Query(30, ge=1, le=365)
):
    await db.get_restaurant(str(restaurant_id))
    return await _analytics(db, days, str(restaurant_id))


# ---------- roles ----------
@router.put("/roles/{user_id}")
async def grant_role(user_id: str, payload: RoleGrant, db: DatabaseDep):
    return await db.grant_role(user_id, payload.role)


# ---------- bulk import ----------
@router.post("/import")
async def import_control(payload: ImportControl, service: ImportServiceDep):
    if payload.action == "start":
        return await service.start()
    return await service.status()


@router.patch("/import/{job_id}")
async def import_progress(job_id: str, payload: ImportProgress, service: ImportServiceDep):
    return await service.record_progress(job_id, payload)


@router.get("/import/events")
async def import_events(service: ImportServiceDep, job_id: str | None = None):
    if job_id:
        await service.get(job_id)

    async def stream():
        async for job in service.watch(job_id):
            yield f"event: job\ndata: {json.dumps(job)}\n\n"
        yield "event: end\ndata: {}\n\n"

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
