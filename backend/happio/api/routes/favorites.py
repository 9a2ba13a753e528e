from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends

from ...auth import require_auth
from ...metrics import favorites_toggled_total
from ..deps import DatabaseDep, require_subject

router = APIRouter(prefix="/favorites", tags=["favorites"])


@router.get("")
async def list_favorites(db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)):
    return await db.list_favorites(require_subject(claims))


@router.get("/{restaurant_id:uuid}")
async def favorite_status(
    restaurant_id: UUID, db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)
):
    return {"is_favorite": await db.is_favorite(require_subject(claims), str(restaurant_id))}


@router.post("/{restaurant_id:uuid}/toggle")
async def toggle_favorite(
    restaurant_id: UUID, db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)
):
    result = await db.toggle_favorite(require_subject(claims), str(restaurant_id))
    favorites_toggled_total.labels(action=result["action"]).inc()
    return result
