from __future__ import annotations

import asyncio
import json
import time
from typing import Annotated, Any

import httpx
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import (
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidTokenError,
    MissingRequiredClaimError,
)
from jwt.algorithms import RSAAlgorithm

from .logging_config import get_logger
from .metrics import auth_bypassed_total
from .settings import settings

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)
AuthCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(security)]

JWKS_TTL_SECONDS = 60 * 15
CLOCK_SKEW_SECONDS = 300
EXPIRY_BUFFER_SECONDS = 60

DEV_CLAIMS: dict[str, Any] = {
    "sub": "local-dev-user",
    "scope": "openid profile",
    "email": "dev@happio.local",
    "name": "Local Dev",
}


class AdminRequired(Exception):
    """Raised when a signed-in visitor without the admin role hits an admin route."""

    def __init__(self, sub: str | None = None) -> None:
        super().__init__("admin role required")
        self.sub = sub


def token_scopes(claims: dict[str, Any] | None) -> set[str]:
    if not claims:
        return set()
    raw = claims.get("scope", "")
    if isinstance(raw, str):
        return set(raw.split())
    if isinstance(raw, list):
        return {str(item) for item in raw}
    return set()


class Auth0Verifier:
    """Validates RS256 access tokens against the tenant's published JWKS."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._jwks: dict[str, Any] | None = None
        self._jwks_expiry: float = 0.0
        self._lock = asyncio.Lock()
        self._transport = transport

    async def _fetch_jwks(self) -> dict[str, Any]:
        issuer = settings.auth0_issuer
        if not issuer:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="AUTH0_DOMAIN is not configured",
            )
        url = issuer.rstrip("/") + "/.well-known/jwks.json"
        try:
            async with httpx.AsyncClient(timeout=5, transport=self._transport) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("jwks_fetch_failed", url=url, error=type(exc).__name__)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to fetch Auth0 JWKS",
            ) from exc

    async def _get_jwks(self) -> dict[str, Any]:
        if self._jwks and time.time() < self._jwks_expiry:
            return self._jwks
        async with self._lock:
            if self._jwks and time.time() < self._jwks_expiry:
                return self._jwks
            self._jwks = await self._fetch_jwks()
            self._jwks_expiry = time.time() + JWKS_TTL_SECONDS
            return self._jwks

    async def verify(self, token: str) -> dict[str, Any]:
        """
        Decode `token` and return its claims.

        Only RS256 tokens signed by a key in the tenant JWKS are accepted; the token
        must carry ``exp``, ``iat`` and ``sub`` and must not expire within the next
        minute.
        """
        audience = settings.AUTH0_AUDIENCE
        issuer = settings.auth0_issuer
        if not audience or not issuer:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Auth0 audience/domain not configured",
            )

        try:
            header = jwt.get_unverified_header(token)
        except InvalidTokenError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Malformed token header"
            ) from exc

        if header.get("alg") != "RS256":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Unsupported algorithm: {header.get('alg')}. Only RS256 allowed.",
            )
        kid = header.get("kid")
        if not kid:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing key ID in token"
            )

        jwks = await self._get_jwks()
        key = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
        if not key:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown token signature key"
            )

        try:
            payload = jwt.decode(
                token,
                key=RSAAlgorithm.from_jwk(json.dumps(key)),
                algorithms=["RS256"],
                audience=audience,
                issuer=issuer,
                options={"require": ["exp", "iat", "sub"]},
            )
        except ExpiredSignatureError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has expired"
            ) from exc
        except (InvalidAudienceError, InvalidIssuerError, MissingRequiredClaimError) as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims"
            ) from exc
        except InvalidTokenError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
            ) from exc

        self._check_timing(payload)
        return payload

    @staticmethod
    def _check_timing(payload: dict[str, Any]) -> None:
        now = time.time()
        exp = payload.get("exp")
        if exp and exp < now + EXPIRY_BUFFER_SECONDS:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired or expiring soon. Please refresh.",
            )
        iat = payload.get("iat")
        if iat and iat > now + CLOCK_SKEW_SECONDS:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Token issued in the future"
            )
        if not payload.get("sub"):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Token missing subject claim"
            )


auth0_verifier = Auth0Verifier()


def _bypass_claims() -> dict[str, Any]:
    auth_bypassed_total.inc()
    return dict(DEV_CLAIMS)


async def require_auth(credentials: AuthCredentials) -> dict[str, Any]:
    """FastAPI dependency enforcing Auth0 authentication."""

    if settings.AUTH0_BYPASS:
        return _bypass_claims()

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
        )
    return await auth0_verifier.verify(credentials.credentials)


async def optional_auth(credentials: AuthCredentials) -> dict[str, Any] | None:
    """Claims for signed-in visitors, ``None`` for guests.

    A present but invalid token is still rejected; guests simply send no header.
    """
    if not credentials:
        return None
    if settings.AUTH0_BYPASS:
        return _bypass_claims()
    return await auth0_verifier.verify(credentials.credentials)


def has_admin_scope(claims: dict[str, Any] | None) -> bool:
    return settings.ADMIN_SCOPE in token_scopes(claims)
