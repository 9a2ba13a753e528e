"""Anonymous page-view tracking and the numbers shown on the analytics dashboards."""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any

USER_AGENT_MAX_LENGTH = 500

BOT_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"bot", r"crawl", r"spider", r"scrape", r"headless",
        r"googlebot", r"bingbot", r"yandex", r"baiduspider",
        r"facebookexternalhit", r"twitterbot", r"linkedinbot",
        r"slurp", r"duckduckbot", r"semrush", r"ahrefs",
        r"mj12bot", r"dotbot", r"petalbot", r"bytespider",
        r"gptbot", r"claudebot", r"anthropic", r"chatgpt",
        r"lighthouse", r"pagespeed", r"gtmetrix",
        r"pingdom", r"uptimerobot", r"statuscake",
    )
]  # fmt: skip


def is_bot(user_agent: str | None) -> bool:
    if not user_agent:
        return False
    return any(pattern.search(user_agent) for pattern in BOT_PATTERNS)


def visitor_hash(session_id: str, user_agent: str | None) -> str:
    """Hex SHA-256 of session id + user agent; the only visitor identity we keep."""
    return hashlib.sha256(f"{session_id}{user_agent or ''}".encode()).hexdigest()


def truncate_user_agent(user_agent: str | None) -> str | None:
    if not user_agent:
        return None
    return user_agent[:USER_AGENT_MAX_LENGTH]


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive timestamps; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True, slots=True)
class ViewWindow:
    start_of_day: datetime
    start_of_week: datetime
    start_of_month: datetime

    @classmethod
    def at(cls, now: datetime) -> ViewWindow:
        now = as_utc(now)
        day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return cls(
            start_of_day=day,
            start_of_week=now - timedelta(days=7),
            start_of_month=day.replace(day=1),
        )


def view_stats(views: Iterable[Any], now: datetime) -> dict[str, Any]:
    """
    Summarise ``(created_at, ip_hash, page_type)`` rows.

    "thisWeek" is a rolling seven days; "today" and "thisMonth" start at UTC
    midnight and the first of the month.
    """
    window = ViewWindow.at(now)
    total = today = week = month = 0
    hashes: set[str | None] = set()
    page_types: Counter[str] = Counter()
    for created_at, ip_hash, page_type in views:
        created_at = as_utc(created_at)
        total += 1
        today += created_at >= window.start_of_day
        week += created_at >= window.start_of_week
        month += created_at >= window.start_of_month
        hashes.add(ip_hash)
        if page_type:
            page_types[page_type] += 1
    return {
        "total": total,
        "today": today,
        "thisWeek": week,
        "thisMonth": month,
        "uniqueVisitors": len(hashes),
        "pageTypes": dict(page_types),
    }


def series_start(days: int, now: datetime) -> datetime:
    return as_utc(now) - timedelta(days=days)


def daily_series(timestamps: Iterable[datetime], days: int, now: datetime) -> list[dict[str, Any]]:
    """Views per UTC day from `days` ago through today; days without views count zero."""
    counts: Counter[date] = Counter(as_utc(ts).date() for ts in timestamps)
    current = series_start(days, now).date()
    last = as_utc(now).date()
    series = []
    while current <= last:
        series.append({"date": current.isoformat(), "views": counts[current]})
        current += timedelta(days=1)
    return series


__all__ = [
    "BOT_PATTERNS",
    "daily_series",
    "is_bot",
    "series_start",
    "truncate_user_agent",
    "view_stats",
    "visitor_hash",
]
