from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ...auth import require_auth
from ...contracts import Profile, ProfileUpdate
from ...validators import NAME_MAX_LENGTH
from ..deps import DatabaseDep, require_subject

router = APIRouter(tags=["profiles"])


def _token_name(claims: dict[str, Any]) -> str | None:
    name = claims.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    return name.strip()[:NAME_MAX_LENGTH]


@router.get("/profile", response_model=Profile)
async def my_profile(db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)):
    """The caller's profile; the first visit creates it from the token's name claim."""
    return await db.ensure_profile(require_subject(claims), _token_name(claims))


@router.patch("/profile", response_model=Profile)
async def update_profile(
    payload: ProfileUpdate, db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)
):
    return await db.update_profile(require_subject(claims), payload)


@router.get("/profiles/{user_id}", response_model=Profile)
async def public_profile(user_id: str, db: DatabaseDep):
    return await db.get_profile(user_id)
