"""Public page paths of the Happio site.

These mirror the browser routes (`/{city}`, `/{city}/{restaurant}`, `/keukens/{cuisine}`,
`/claimen/{city}/{restaurant}`, `/admin/...`) so links in emails, API payloads and the
sitemap match what the front end serves.
"""

from __future__ import annotations

from urllib.parse import quote

CUISINES_PREFIX = "/keukens"
CLAIM_PREFIX = "/claimen"
ADMIN_PREFIX = "/admin"

STATIC_PAGES: tuple[tuple[str, str, str], ...] = (
    # path, changefreq, priority
    ("/ontdek", "weekly", "0.9"),
    (CUISINES_PREFIX, "weekly", "0.8"),
    ("/provincies", "weekly", "0.8"),
    ("/in-de-buurt", "weekly", "0.7"),
    ("/foodwall", "daily", "0.8"),
)


def _segment(value: str) -> str:
    if not value or "/" in value:
        raise ValueError(f"invalid path segment: {value!r}")
    return quote(value, safe="-_.~")


def city_path(city_slug: str) -> str:
    return f"/{_segment(city_slug)}"


def restaurant_path(city_slug: str, restaurant_slug: str) -> str:
    return f"/{_segment(city_slug)}/{_segment(restaurant_slug)}"


def cuisine_path(cuisine_slug: str) -> str:
    return f"{CUISINES_PREFIX}/{_segment(cuisine_slug)}"


def claim_path(city_slug: str, restaurant_slug: str) -> str:
    return f"{CLAIM_PREFIX}/{_segment(city_slug)}/{_segment(restaurant_slug)}"


def admin_path(section: str = "") -> str:
    section = section.strip("/")
    return f"{ADMIN_PREFIX}/{section}" if section else ADMIN_PREFIX
