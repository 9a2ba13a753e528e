from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from ...auth import optional_auth, require_auth
from ...contracts import PublicReview, ReviewCreate, ReviewPhoto, ReviewPhotoCreate, UserAuthor
from ...metrics import reviews_submitted_total
from ..deps import DatabaseDep, NotifierDep, VerifierDep, require_subject, subject, verify_human

router = APIRouter(tags=["reviews"])

REVIEW_RECEIVED_MESSAGE = "Bedankt! Je review wordt beoordeeld voordat deze zichtbaar wordt."


@router.get("/restaurants/{restaurant_id:uuid}/reviews", response_model=list[PublicReview])
async def list_reviews(restaurant_id: UUID, db: DatabaseDep):
    return await db.list_reviews(str(restaurant_id))


@router.post("/restaurants/{restaurant_id:uuid}/reviews", status_code=201)
async def submit_review(
    restaurant_id: UUID,
    payload: ReviewCreate,
    db: DatabaseDep,
    verifier: VerifierDep,
    notifier: NotifierDep,
    claims: dict[str, Any] | None = Depends(optional_auth),
):
    try:
        author = payload.author_for(subject(claims))
    except ValueError as exc:
        raise HTTPException(422, str(exc)) from exc
    await verify_human(verifier, payload.recaptcha_token)

    review, restaurant = await db.create_review(str(restaurant_id), payload, author)
    reviews_submitted_total.labels(
        author="user" if isinstance(author, UserAuthor) else "guest"
    ).inc()
    await notifier.review_submitted(review, restaurant)
    return {
        "review": PublicReview.model_validate(review),
        "message": REVIEW_RECEIVED_MESSAGE,
    }


@router.post("/reviews/{review_id}/photos", status_code=201, response_model=ReviewPhoto)
async def add_review_photo(
    review_id: str,
    payload: ReviewPhotoCreate,
    db: DatabaseDep,
    claims: dict[str, Any] = Depends(require_auth),
):
    return await db.add_review_photo(review_id, require_subject(claims), payload)
