"""Health check module with dependency verification."""

from __future__ import annotations

import time
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError

from .settings import settings
from .storage import Database


def _is_configured(value: str | None) -> bool:
    if value is None:
        return False
    return bool(value.strip())


class HealthChecker:
    """Checks the store and reports on the external services the API leans on."""

    def __init__(self, cache_ttl: float = 30.0) -> None:
        self._check_cache: dict[str, tuple[dict[str, Any], float]] = {}
        self._cache_ttl = cache_ttl

    async def check_all(self, db: Database) -> dict[str, Any]:
        checks = {
            "database": await self._check_database(db),
            "auth0": (
                await self._check_auth0()
                if _is_configured(settings.AUTH0_DOMAIN) and not settings.AUTH0_BYPASS
                else {"status": "bypassed"}
            ),
            "sentry": self._check_sentry(),
            "functions": self._check_functions(),
        }
        all_ok = all(
            check.get("status") in {"ok", "disabled", "bypassed"} for check in checks.values()
        )
        return {
            "status": "healthy" if all_ok else "degraded",
            "timestamp": time.time(),
            "checks": checks,
        }

    async def _check_database(self, db: Database) -> dict[str, Any]:
        try:
            counts = await db.ping()
        except SQLAlchemyError as exc:
            return {"status": "error", "error": str(exc), "error_type": type(exc).__name__}
        return {
            "status": "ok",
            "restaurant_count": counts["restaurants"],
            "city_count": counts["cities"],
            "backend": db.engine.dialect.name,
        }

    async def _check_auth0(self) -> dict[str, Any]:
        cached = self._get_cached_check("auth0")
        if cached is not None:
            return cached

        url = (settings.auth0_issuer or "").rstrip("/") + "/.well-known/jwks.json"
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(url)
                response.raise_for_status()
                jwks = response.json()
        except httpx.TimeoutException:
            result = {"status": "error", "error": "Connection timeout", "error_type": "TimeoutException"}
        except httpx.HTTPStatusError as exc:
            result = {
                "status": "error",
                "error": f"HTTP {exc.response.status_code}",
                "error_type": "HTTPStatusError",
            }
        except (httpx.HTTPError, ValueError) as exc:
            result = {"status": "error", "error": str(exc), "error_type": type(exc).__name__}
        else:
            if isinstance(jwks, dict) and "keys" in jwks:
                result = {"status": "ok", "endpoint": url, "keys_count": len(jwks["keys"])}
            else:
                result = {"status": "error", "error": "Invalid JWKS response format"}
        self._cache_check("auth0", result)
        return result

    def _check_sentry(self) -> dict[str, Any]:
        # configuration only; connectivity is not probed
        dsn = settings.SENTRY_DSN
        if not _is_configured(dsn):
            return {"status": "disabled", "reason": "SENTRY_DSN not configured"}
        if "@" in dsn and "//" in dsn:
            return {
                "status": "ok",
                "environment": settings.SENTRY_ENVIRONMENT,
                "release": settings.SENTRY_RELEASE or "unset",
            }
        return {"status": "error", "error": "Invalid SENTRY_DSN format"}

    def _check_functions(self) -> dict[str, Any]:
        if not _is_configured(settings.FUNCTIONS_BASE_URL):
            return {"status": "disabled", "reason": "FUNCTIONS_BASE_URL not configured"}
        return {"status": "ok", "base_url": settings.FUNCTIONS_BASE_URL.rstrip("/")}

    def _get_cached_check(self, key: str) -> dict[str, Any] | None:
        entry = self._check_cache.get(key)
        if entry is None:
            return None
        result, timestamp = entry
        if time.time() - timestamp > self._cache_ttl:
            return None
        return result

    def _cache_check(self, key: str, result: dict[str, Any]) -> None:
        self._check_cache[key] = (result, time.time())

    def clear_cache(self) -> None:
        """Clear cached dependency checks (useful for tests)."""
        self._check_cache.clear()


health_checker = HealthChecker()


def scrub_health_details(payload: dict[str, Any]) -> dict[str, Any]:
    """Remove error fields before returning debug health details."""

    def _scrub(value: Any) -> Any:
        if isinstance(value, dict):
            return {
                key: _scrub(inner)
                for key, inner in value.items()
                if key not in {"error", "error_type", "traceback"}
            }
        if isinstance(value, list):
            return [_scrub(item) for item in value]
        return value

    return _scrub(payload)


__all__ = ["HealthChecker", "health_checker", "scrub_health_details"]
