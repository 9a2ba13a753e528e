"""Shared input sanitizers for API models."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

NAME_MAX_LENGTH = 120
TITLE_MAX_LENGTH = 160
CONTENT_MAX_LENGTH = 4000
MESSAGE_MAX_LENGTH = 2000
SEARCH_MAX_LENGTH = 100
PRICE_RANGES = ("€", "€€", "€€€", "€€€€")

PHONE_PATTERN = re.compile(r"^[0-9+()\-\.\s]{6,32}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
URL_PATTERN = re.compile(r"^https?://\S+$", re.IGNORECASE)
POSTAL_CODE_PATTERN = re.compile(r"^\d{4}\s?[A-Za-z]{2}$")

_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_SPACES = re.compile(r"\s+")
_SLUG_DASHES = re.compile(r"-+")


def _squash_whitespace(text: str) -> str:
    return " ".join(text.split())


def normalize_display_name(value: str, *, field: str = "name") -> str:
    if not isinstance(value, str):  # pragma: no cover - Pydantic guards by default
        raise ValueError(f"{field} must be a string")
    cleaned = _squash_whitespace(value.strip())
    if not cleaned:
        raise ValueError(f"{field} cannot be blank")
    if len(cleaned) > NAME_MAX_LENGTH:
        raise ValueError(f"{field} must be <= {NAME_MAX_LENGTH} characters")
    return cleaned


def normalize_email(value: str | None, *, field: str = "email") -> str | None:
    if value is None:
        return None
    cleaned = value.strip().lower()
    if not cleaned:
        return None
    if len(cleaned) > 255 or not EMAIL_PATTERN.fullmatch(cleaned):
        raise ValueError(f"{field} must be a valid email address")
    return cleaned


def normalize_phone(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if not PHONE_PATTERN.fullmatch(cleaned):
        raise ValueError(
            "phone must contain digits, spaces, '.', '-', '()' or '+' and be 6-32 characters"
        )
    return cleaned


def normalize_text(
    value: str | None, *, field: str = "content", max_length: int = CONTENT_MAX_LENGTH
) -> str | None:
    """Trim free text; blank becomes None. Line breaks are kept, other runs of spaces are not."""
    if value is None:
        return None
    lines = [_squash_whitespace(line) for line in value.strip().splitlines()]
    cleaned = "\n".join(lines).strip()
    if not cleaned:
        return None
    if len(cleaned) > max_length:
        raise ValueError(f"{field} must be <= {max_length} characters")
    return cleaned


def normalize_url(value: str | None, *, field: str = "website") -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if not cleaned.lower().startswith(("http://", "https://")):
        cleaned = f"https://{cleaned}"
    if not URL_PATTERN.fullmatch(cleaned):
        raise ValueError(f"{field} must be a valid http(s) URL")
    return cleaned


def normalize_postal_code(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().upper()
    if not cleaned:
        return None
    if not POSTAL_CODE_PATTERN.fullmatch(cleaned):
        raise ValueError("postal_code must look like 1234 AB")
    return cleaned


def normalize_price_ranges(values: Iterable[str] | None) -> list[str] | None:
    if not values:
        return None
    cleaned: list[str] = []
    for raw in values:
        entry = (raw or "").strip()
        if not entry:
            continue
        if entry not in PRICE_RANGES:
            raise ValueError(f"price_range must be one of {', '.join(PRICE_RANGES)}")
        if entry not in cleaned:
            cleaned.append(entry)
    return cleaned or None


def normalize_search(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = _squash_whitespace(value.strip())
    if not cleaned:
        return None
    return cleaned[:SEARCH_MAX_LENGTH]


def slugify_name(name: str) -> str:
    """
    Lowercase slug for a restaurant name: accents folded, anything outside
    ``[a-z0-9 -]`` dropped, whitespace turned into dashes, dash runs collapsed.
    """
    folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    slug = _SLUG_STRIP.sub("", folded.lower())
    slug = _SLUG_SPACES.sub("-", slug.strip())
    return _SLUG_DASHES.sub("-", slug).strip("-")


__all__ = [
    "PRICE_RANGES",
    "normalize_display_name",
    "normalize_email",
    "normalize_phone",
    "normalize_text",
    "normalize_url",
    "normalize_postal_code",
    "normalize_price_ranges",
    "normalize_search",
    "slugify_name",
]
