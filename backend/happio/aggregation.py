"""Statistics derived from an already-filtered restaurant listing.

Everything here is a pure function over in-memory records (ORM rows or dicts);
nothing touches the database.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from .serializers import get_attr
from .validators import PRICE_RANGES

TOP_CUISINES = 5
DEFAULT_PROVINCE = "Overig"


@dataclass(slots=True)
class ListingStats:
    total_restaurants: int
    reviewed_restaurants: int
    average_rating: float | None
    top_cuisines: list[tuple[str, int]] = field(default_factory=list)
    price_distribution: dict[str, int] = field(default_factory=dict)

    @property
    def average_rating_display(self) -> str | None:
        if self.average_rating is None:
            return None
        return f"{self.average_rating:.1f}"

    def price_percentages(self) -> dict[str, float]:
        return {
            tier: percentage(count, self.total_restaurants)
            for tier, count in self.price_distribution.items()
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_restaurants": self.total_restaurants,
            "reviewed_restaurants": self.reviewed_restaurants,
            "average_rating": self.average_rating,
            "average_rating_display": self.average_rating_display,
            "top_cuisines": [{"name": name, "count": count} for name, count in self.top_cuisines],
            "price_distribution": dict(self.price_distribution),
            "price_percentages": self.price_percentages(),
        }


def _review_count(restaurant: Any) -> int:
    return int(get_attr(restaurant, "review_count", 0) or 0)


def _cuisine_names(restaurant: Any) -> list[str]:
    names = []
    for cuisine in get_attr(restaurant, "cuisines", None) or []:
        name = cuisine if isinstance(cuisine, str) else get_attr(cuisine, "name")
        if name:
            names.append(name)
    return names


def average_rating(restaurants: Iterable[Any]) -> float | None:
    """Mean rating over reviewed restaurants that carry a rating; None if none qualify."""
    ratings = [
        float(rating)
        for r in restaurants
        if _review_count(r) > 0 and (rating := get_attr(r, "rating")) is not None
    ]
    if not ratings:
        return None
    return sum(ratings) / len(ratings)


def cuisine_frequency(restaurants: Iterable[Any], top_n: int = TOP_CUISINES) -> list[tuple[str, int]]:
    """
    Count cuisine names across the listing, most frequent first.

    A restaurant with several cuisines counts once in each bucket. Equal counts keep
    the order in which the cuisine was first seen in the listing.
    """
    counts: Counter[str] = Counter()
    for restaurant in restaurants:
        counts.update(_cuisine_names(restaurant))
    return counts.most_common(top_n)


def price_distribution(restaurants: Iterable[Any]) -> dict[str, int]:
    """Restaurants per price tier, in tier order. Rows without a tier are not counted."""
    counts = Counter(get_attr(r, "price_range") for r in restaurants)
    return {tier: counts[tier] for tier in PRICE_RANGES if counts[tier]}


def percentage(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return count / total * 100


def compute_listing_stats(restaurants: Sequence[Any]) -> ListingStats:
    return ListingStats(
        total_restaurants=len(restaurants),
        reviewed_restaurants=sum(1 for r in restaurants if _review_count(r) > 0),
        average_rating=average_rating(restaurants),
        top_cuisines=cuisine_frequency(restaurants),
        price_distribution=price_distribution(restaurants),
    )


def best_rated(restaurants: Iterable[Any]) -> list[Any]:
    """Reviewed restaurants only, by rating then review count, both descending."""
    reviewed = [r for r in restaurants if _review_count(r) > 0]
    return sorted(
        reviewed,
        key=lambda r: (-float(get_attr(r, "rating", 0) or 0), -_review_count(r)),
    )


def group_by_province(cities: Iterable[Any]) -> list[dict[str, Any]]:
    """
    Group cities under their free-text province. Any spelling forms its own group;
    cities without a province land in DEFAULT_PROVINCE.
    """
    groups: dict[str, list[Any]] = defaultdict(list)
    for city in cities:
        province = (get_attr(city, "province") or "").strip() or DEFAULT_PROVINCE
        groups[province].append(city)
    return [
        {
            "province": province,
            "cities": sorted(members, key=lambda c: str(get_attr(c, "name", "")).lower()),
        }
        for province, members in sorted(groups.items(), key=lambda item: item[0].lower())
    ]


__all__ = [
    "ListingStats",
    "average_rating",
    "best_rated",
    "compute_listing_stats",
    "cuisine_frequency",
    "group_by_province",
    "percentage",
    "price_distribution",
]
