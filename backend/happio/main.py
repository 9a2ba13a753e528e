import warnings
from contextlib import asynccontextmanager
from typing import Any

import sentry_sdk
from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration

from .api.deps import CacheDep, DatabaseDep, is_admin, subject
from .api.routes import admin as admin_routes
from .api.routes import claims as claims_routes
from .api.routes import directory as directory_routes
from .api.routes import favorites as favorites_routes
from .api.routes import foodwall as foodwall_routes
from .api.routes import owner as owner_routes
from .api.routes import profiles as profiles_routes
from .api.routes import restaurants as restaurants_routes
from .api.routes import reviews as reviews_routes
from .api.routes import site as site_routes
from .auth import AdminRequired, require_auth
from .cache import ReferenceCache
from .contracts import SessionInfo
from .functions import HumanVerifier, create_functions_client
from .health import health_checker, scrub_health_details
from .logging_config import configure_structlog, get_logger
from .metrics import PrometheusMiddleware, get_metrics
from .notifications import Notifier
from .settings import SERVICE_NAME, SERVICE_VERSION, settings
from .storage import Database
from .utils import (
    add_cors,
    add_rate_limiting,
    add_request_id_tracing,
    add_security_headers,
)

# Suppress noisy multiprocessing semaphore warning on macOS dev runs
warnings.filterwarnings(
    "ignore",
    message=r"resource_tracker: There appear to be .* leaked semaphore objects",
    category=UserWarning,
)

# Configure structured logging (must be done before any logging calls)
configure_structlog(json_logs=not settings.DEBUG)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        release=settings.SENTRY_RELEASE or f"{SERVICE_NAME}@{SERVICE_VERSION}",
        integrations=[FastApiIntegration()],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )

logger = get_logger(__name__)

API_PREFIX = "/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = Database()
    await db.init()
    functions = create_functions_client()
    app.state.db = db
    app.state.reference_cache = ReferenceCache(settings.REFERENCE_CACHE_TTL_SECONDS, name="reference")
    app.state.functions = functions
    app.state.verifier = HumanVerifier(functions)
    app.state.notifier = Notifier(functions)
    logger.info("app_started", database=db.engine.dialect.name, functions=functions.configured)
    try:
        yield
    finally:
        await functions.aclose()
        await db.dispose()
        logger.info("app_stopped")


app = FastAPI(
    title="Happio API",
    version=SERVICE_VERSION,
    description="Restaurant directory for the Netherlands",
    lifespan=lifespan,
)
add_cors(app)
add_security_headers(app)
add_request_id_tracing(app)
add_rate_limiting(app)
app.add_middleware(PrometheusMiddleware)


@app.exception_handler(AdminRequired)
async def admin_required_handler(request: Request, exc: AdminRequired):
    # browsers go back to the home page, API clients get a plain 403
    if "text/html" in request.headers.get("accept", ""):
        return RedirectResponse(url="/", status_code=303)
    return JSONResponse(status_code=403, content={"detail": "Admin role required"})


# reviews before restaurants: /restaurants/{id}/reviews must win over the slug route
app.include_router(reviews_routes.router, prefix=API_PREFIX)
app.include_router(restaurants_routes.router, prefix=API_PREFIX)
app.include_router(directory_routes.router, prefix=API_PREFIX)
app.include_router(favorites_routes.router, prefix=API_PREFIX)
app.include_router(foodwall_routes.router, prefix=API_PREFIX)
app.include_router(profiles_routes.router, prefix=API_PREFIX)
app.include_router(claims_routes.router, prefix=API_PREFIX)
app.include_router(owner_routes.router, prefix=API_PREFIX)
app.include_router(site_routes.router, prefix=API_PREFIX)
app.include_router(admin_routes.router, prefix=API_PREFIX)
app.include_router(site_routes.sitemap_router)


async def health(db: DatabaseDep):
    """Return service health including upstream dependency checks."""
    health_status = await health_checker.check_all(db)
    status_code = 200 if health_status["status"] == "healthy" else 503
    body = {
        "status": health_status["status"],
        "timestamp": health_status.get("timestamp"),
        "checks": health_status.get("checks", {}),
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }
    if settings.DEBUG:
        body["details"] = scrub_health_details(health_status)
    return JSONResponse(content=body, status_code=status_code)


def metrics():
    """Expose Prometheus metrics."""
    return get_metrics()


for prefix in ("", API_PREFIX):
    app.add_api_route(f"{prefix}/health", health, methods=["GET"], tags=["ops"])
    app.add_api_route(f"{prefix}/metrics", metrics, methods=["GET"], tags=["ops"])


@app.get(f"{API_PREFIX}/auth/session", response_model=SessionInfo)
async def session_info(db: DatabaseDep, claims: dict[str, Any] = Depends(require_auth)):
    sub = subject(claims)
    return SessionInfo(
        sub=sub,
        email=claims.get("email"),
        name=claims.get("name"),
        is_admin=await is_admin(claims, db),
        roles=await db.roles_for(sub) if sub else [],
    )


if settings.DEBUG and settings.DEV_ROUTES_ENABLED:

    def _dev_guard(claims: dict[str, Any] = Depends(require_auth)):
        # Require authenticated user even in dev mode to reduce accidental exposure
        return claims

    @app.post("/dev/sentry-test")
    def dev_sentry_test(
        claims: dict[str, Any] = Depends(_dev_guard),
        message: str = Body("manual ping", embed=True),
    ):
        sentry_sdk.capture_message(f"[dev-sentry-test] {message}")
        return {"ok": True, "message": message}

    @app.post("/dev/cache/clear")
    def dev_clear_caches(cache: CacheDep, claims: dict[str, Any] = Depends(_dev_guard)):
        cache.invalidate()
        health_checker.clear_cache()
        return {"ok": True, "cleared": True}

    @app.get("/dev/cache/stats")
    def dev_cache_stats(cache: CacheDep, claims: dict[str, Any] = Depends(_dev_guard)):
        return {"reference": cache.stats()}


@app.get("/", include_in_schema=False)
def root():
    return {"service": SERVICE_NAME, "version": SERVICE_VERSION, "docs": "/docs"}


@app.exception_handler(HTTPException)
async def http_exception_logger(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.warning("http_error", path=request.url.path, status=exc.status_code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)
