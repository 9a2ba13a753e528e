"""Foodwall: dishes shared by visitors, optionally tagged with a restaurant."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ...auth import optional_auth, require_auth
from ...contracts import FoodPost, FoodPostCreate, UserAuthor
from ...metrics import food_post_likes_total, food_posts_total
from ...storage import FOODWALL_LIMIT
from ..deps import DatabaseDep, VerifierDep, is_admin, require_subject, subject, verify_human

router = APIRouter(prefix="/foodwall", tags=["foodwall"])

POST_SHARED_MESSAGE = "Post gedeeld!"


@router.get("", response_model=list[FoodPost])
async def list_posts(
    db: DatabaseDep,
    limit: Annotated[int, Query(ge=1, le=FOODWALL_LIMIT)] = FOODWALL_LIMIT,
    claims: dict[str, Any] | None = Depends(optional_auth),
):
    return await db.list_food_posts(subject(claims), limit)


@router.post("", status_code=201)
async def share_post(
    payload: FoodPostCreate,
    db: DatabaseDep,
    verifier: VerifierDep,
    claims: dict[str, Any] | None = Depends(optional_auth),
):
    try:
        author = payload.author_for(subject(claims))
    except ValueError as exc:
        raise HTTPException(422, str(exc)) from exc
    await verify_human(verifier, payload.recaptcha_token)

    post = await db.create_food_post(author, payload)
    food_posts_total.labels(author="user" if isinstance(author, UserAuthor) else "guest").inc()
    return {"post": FoodPost.model_validate(post), "message": POST_SHARED_MESSAGE}


@router.post("/{post_id}/like")
async def toggle_like(post_id: str, db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)):
    result = await db.toggle_food_post_like(require_subject(claims), post_id)
    food_post_likes_total.labels(action=result["action"]).inc()
    return result


@router.delete("/{post_id}", status_code=204)
async def delete_post(post_id: str, db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)):
    await db.delete_food_post(
        post_id, require_subject(claims), as_admin=await is_admin(claims, db)
    )
