from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ...auth import require_auth
from ...contracts import ClaimCreate
from ...metrics import claims_total
from ..deps import DatabaseDep, VerifierDep, require_subject, verify_human

router = APIRouter(prefix="/claims", tags=["claims"])


@router.post("", status_code=201)
async def submit_claim(
    payload: ClaimCreate,
    db: DatabaseDep,
    verifier: VerifierDep,
    claims: dict[str, Any] = Depends(require_auth),
):
    await verify_human(verifier, payload.recaptcha_token)
    try:
        claim = await db.create_claim(require_subject(claims), payload)
    except HTTPException as exc:
        if exc.status_code == 409:
            claims_total.labels(outcome="duplicate").inc()
        raise
    claims_total.labels(outcome="submitted").inc()
    return claim


@router.get("/mine")
async def my_claims(db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)):
    return await db.my_claims(require_subject(claims))
