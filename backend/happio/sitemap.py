"""XML sitemap of every public page."""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any
from xml.sax.saxutils import escape

from .serializers import get_attr
from .urls import STATIC_PAGES, city_path, cuisine_path, restaurant_path

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


def _url(loc: str, *, lastmod: str | None, changefreq: str, priority: str) -> str:
    parts = [f"    <loc>{escape(loc)}</loc>"]
    if lastmod:
        parts.append(f"    <lastmod>{lastmod}</lastmod>")
    parts.append(f"    <changefreq>{changefreq}</changefreq>")
    parts.append(f"    <priority>{priority}</priority>")
    return "  <url>\n" + "\n".join(parts) + "\n  </url>"


def _day(value: datetime | date | None, fallback: str) -> str:
    if value is None:
        return fallback
    if isinstance(value, datetime):
        return value.date().isoformat()
    return value.isoformat()


def build_sitemap(
    base_url: str,
    *,
    cities: list[Any],
    cuisines: list[Any],
    restaurants: list[Any],
    today: date | None = None,
) -> str:
    """
    Render the sitemap. Restaurants without a city have no public page and are skipped.
    """
    base = base_url.rstrip("/")
    stamp = (today or datetime.now(UTC).date()).isoformat()
    entries = [_url(f"{base}/", lastmod=stamp, changefreq="daily", priority="1.0")]
    for path, changefreq, priority in STATIC_PAGES:
        entries.append(_url(f"{base}{path}", lastmod=stamp, changefreq=changefreq, priority=priority))
    for cuisine in cuisines:
        entries.append(
            _url(
                f"{base}{cuisine_path(get_attr(cuisine, 'slug'))}",
                lastmod=None,
                changefreq="weekly",
                priority="0.7",
            )
        )
    for city in cities:
        entries.append(
            _url(
                f"{base}{city_path(get_attr(city, 'slug'))}",
                lastmod=_day(get_attr(city, "updated_at"), stamp),
                changefreq="daily",
                priority="0.8",
            )
        )
    for restaurant in restaurants:
        city = get_attr(restaurant, "city")
        city_slug = get_attr(city, "slug") if city is not None else None
        if not city_slug:
            continue
        entries.append(
            _url(
                f"{base}{restaurant_path(city_slug, get_attr(restaurant, 'slug'))}",
                lastmod=_day(get_attr(restaurant, "updated_at"), stamp),
                changefreq="weekly",
                priority="0.6",
            )
        )
    body = "\n".join(entries)
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<urlset xmlns="{SITEMAP_NS}">\n{body}\n</urlset>\n'
