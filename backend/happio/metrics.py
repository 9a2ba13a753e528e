"""Prometheus metrics for monitoring and observability."""

from __future__ import annotations

import platform
import re
import time
from collections.abc import Callable
from functools import lru_cache

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .settings import SERVICE_NAME, SERVICE_VERSION

# ==============================================================================
# APPLICATION INFO
# ==============================================================================

app_info = Info("happio", "Happio directory API information")
app_info.info(
    {
        "version": SERVICE_VERSION,
        "service": f"{SERVICE_NAME}-api",
        "python_version": platform.python_version(),
    }
)

# ==============================================================================
# HTTP METRICS
# ==============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently in progress",
    ["method"],
)

# ==============================================================================
# DIRECTORY METRICS
# ==============================================================================

reviews_submitted_total = Counter(
    "reviews_submitted_total",
    "Reviews submitted for moderation",
    ["author"],
)

review_moderation_total = Counter(
    "review_moderation_total",
    "Review moderation decisions",
    ["decision"],
)

favorites_toggled_total = Counter(
    "favorites_toggled_total",
    "Favorite toggles",
    ["action"],
)

food_posts_total = Counter(
    "food_posts_total",
    "Foodwall posts shared",
    ["author"],
)

food_post_likes_total = Counter(
    "food_post_likes_total",
    "Foodwall like toggles",
    ["action"],
)

claims_total = Counter(
    "claims_total",
    "Restaurant claim submissions and decisions",
    ["outcome"],
)

notifications_total = Counter(
    "notifications_total",
    "Notification emails handed to the email function",
    ["kind", "result"],
)

import_jobs_total = Counter(
    "import_jobs_total",
    "Bulk import job control outcomes",
    ["outcome"],
)

nearby_scan_size = Histogram(
    "nearby_scan_size",
    "Positioned restaurants scanned per nearby ranking",
    buckets=(10, 100, 500, 1000, 2500, 5000, 10000, 25000),
)

page_views_recorded_total = Counter(
    "page_views_recorded_total",
    "Page views recorded or skipped",
    ["result"],
)

# ==============================================================================
# CACHE METRICS
# ==============================================================================

cache_hits_total = Counter(
    "cache_hits_total",
    "Total cache hits",
    ["cache_name"],
)

cache_misses_total = Counter(
    "cache_misses_total",
    "Total cache misses",
    ["cache_name"],
)

# ==============================================================================
# AUTH / RATE LIMITER METRICS
# ==============================================================================

auth_bypassed_total = Counter(
    "auth_bypassed_total",
    "Total requests with auth bypass enabled",
)

rate_limit_hits_total = Counter(
    "rate_limit_hits_total",
    "Total rate limit hits (requests blocked)",
)

rate_limit_requests_total = Counter(
    "rate_limit_requests_total",
    "Total requests checked by rate limiter",
    ["result"],
)

_UUID_SEGMENT = re.compile(
    r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)
_NUMERIC_SEGMENT = re.compile(r"/\d+")


@lru_cache(maxsize=2048)
def normalize_endpoint(path: str) -> str:
    """
    Collapse identifiers in a raw path so label cardinality stays bounded.

    Examples:
        /v1/admin/reviews/123e4567-e89b-12d3-a456-426614174000/approve
            -> /v1/admin/reviews/{id}/approve
        /v1/admin/ads/42 -> /v1/admin/ads/{id}
    """
    path = _UUID_SEGMENT.sub("/{id}", path)
    return _NUMERIC_SEGMENT.sub("/{id}", path)


def _endpoint_label(request: Request) -> str:
    # Slug routes would explode cardinality; prefer the matched route template.
    path = request.url.path
    template = getattr(request.scope.get("route"), "path", None)
    if not template:
        return normalize_endpoint(path)
    # Some releases record the template without the include_router prefix.
    missing = path.rstrip("/").count("/") - template.rstrip("/").count("/")
    if missing > 0:
        prefix = "/".join(path.split("/")[: missing + 1])
        return normalize_endpoint(prefix) + template
    return template


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP request metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        http_requests_in_progress.labels(method=method).inc()
        start_time = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            endpoint = _endpoint_label(request)
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - start_time
            )
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_requests_in_progress.labels(method=method).dec()


def get_metrics() -> Response:
    """Generate Prometheus metrics response."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "PrometheusMiddleware",
    "get_metrics",
    "normalize_endpoint",
    "http_requests_total",
    "http_request_duration_seconds",
    "reviews_submitted_total",
    "review_moderation_total",
    "favorites_toggled_total",
    "food_posts_total",
    "food_post_likes_total",
    "claims_total",
    "notifications_total",
    "import_jobs_total",
    "nearby_scan_size",
    "page_views_recorded_total",
    "cache_hits_total",
    "cache_misses_total",
]
