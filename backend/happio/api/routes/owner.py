from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from ...analytics import daily_series, view_stats
from ...auth import require_auth
from ...contracts import RestaurantWithRelations
from ..deps import DatabaseDep, is_admin, require_subject

router = APIRouter(prefix="/owner", tags=["owner"])


@router.get("/restaurants", response_model=list[RestaurantWithRelations])
async def my_restaurants(db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)):
    return await db.owned_restaurants(require_subject(claims))


@router.get("/restaurants/{restaurant_id:uuid}/analytics")
async def restaurant_analytics(
    restaurant_id: UUID,
    db: DatabaseDep,
    days: int = Query(30, ge=1, le=365),
    claims: dict[str, Any] = Depends(require_auth),
):
    rid = str(restaurant_id)
    if await db.restaurant_owner(rid) != require_subject(claims) and not await is_admin(claims, db):
        raise HTTPException(403, "Not the owner of this restaurant")
    now = datetime.now(UTC)
    return {
        "stats": view_stats(await db.page_views(rid), now),
        "chart": daily_series(await db.page_view_times(days, now, rid), days, now),
    }
