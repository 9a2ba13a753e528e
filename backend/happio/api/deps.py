"""Request-scoped access to the services built in the application lifespan."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request

from ..auth import AdminRequired, has_admin_scope, require_auth
from ..cache import ReferenceCache
from ..functions import FunctionsClient, HumanVerifier
from ..imports import ImportJobService
from ..notifications import Notifier
from ..storage import Database


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_reference_cache(request: Request) -> ReferenceCache:
    return request.app.state.reference_cache


def get_functions(request: Request) -> FunctionsClient:
    return request.app.state.functions


def get_verifier(request: Request) -> HumanVerifier:
    return request.app.state.verifier


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_import_service(
    db: Annotated[Database, Depends(get_db)],
    functions: Annotated[FunctionsClient, Depends(get_functions)],
) -> ImportJobService:
    return ImportJobService(db, functions)


DatabaseDep = Annotated[Database, Depends(get_db)]
CacheDep = Annotated[ReferenceCache, Depends(get_reference_cache)]
FunctionsDep = Annotated[FunctionsClient, Depends(get_functions)]
VerifierDep = Annotated[HumanVerifier, Depends(get_verifier)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]
ImportServiceDep = Annotated[ImportJobService, Depends(get_import_service)]


def subject(claims: dict[str, Any] | None) -> str | None:
    sub = (claims or {}).get("sub")
    if isinstance(sub, str) and sub.strip():
        return sub.strip()
    return None


def require_subject(claims: dict[str, Any]) -> str:
    sub = subject(claims)
    if not sub:
        raise HTTPException(401, "Missing subject claim")
    return sub


async def is_admin(claims: dict[str, Any] | None, db: Database) -> bool:
    if has_admin_scope(claims):
        return True
    sub = subject(claims)
    return bool(sub) and await db.has_role(sub, "admin")


async def require_admin(
    db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)
) -> dict[str, Any]:
    """Admin gate: token scope or an ``admin`` row in ``user_roles``."""
    if not await is_admin(claims, db):
        raise AdminRequired(subject(claims))
    return claims


async def verify_human(verifier: HumanVerifier, token: str | None) -> None:
    if not await verifier.verify(token):
        raise HTTPException(400, "Verificatie mislukt. Probeer het opnieuw.")
