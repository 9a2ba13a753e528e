from __future__ import annotations

import pytest
from backend.happio.aggregation import (
    DEFAULT_PROVINCE,
    average_rating,
    best_rated,
    compute_listing_stats,
    cuisine_frequency,
    group_by_province,
    percentage,
    price_distribution,
)


def _restaurant(name, rating=None, reviews=0, price=None, cuisines=()):
    return {
        "name": name,
        "rating": rating,
        "review_count": reviews,
        "price_range": price,
        "cuisines": [{"name": c} for c in cuisines],
    }


LISTING = [
    _restaurant("A", 4.5, 10, "€€", ["Italiaans", "Pizza"]),
    _restaurant("B", 3.5, 2, "€", ["Italiaans"]),
    _restaurant("C", None, 0, "€€", ["Frans"]),
    _restaurant("D", 5.0, 0, None, []),
]


def test_average_rating_ignores_unreviewed_restaurants():
    assert average_rating(LISTING) == pytest.approx(4.0)


def test_average_rating_none_without_reviews():
    assert average_rating([_restaurant("X", 4.0, 0)]) is None


def test_cuisine_frequency_counts_each_cuisine_once_per_restaurant():
    assert cuisine_frequency(LISTING) == [("Italiaans", 2), ("Pizza", 1), ("Frans", 1)]


def test_cuisine_frequency_respects_top_n():
    assert cuisine_frequency(LISTING, top_n=1) == [("Italiaans", 2)]


def test_cuisine_frequency_truncates_to_five_keeping_first_seen_ties():
    listing = [_restaurant(str(i), cuisines=[name]) for i, name in enumerate("AABCCCDEF")]
    assert cuisine_frequency(listing) == [("C", 3), ("A", 2), ("B", 1), ("D", 1), ("E", 1)]


def test_average_rating_skips_reviewed_rows_without_rating():
    listing = [_restaurant("rated", 4.0, 5), _restaurant("pending-recompute", None, 2)]
    assert average_rating(listing) == pytest.approx(4.0)
    assert average_rating([_restaurant("pending-recompute", None, 2)]) is None


def test_price_distribution_in_tier_order_without_empty_tiers():
    assert price_distribution(LISTING) == {"€": 1, "€€": 2}


def test_percentage_handles_empty_total():
    assert percentage(3, 0) == 0.0
    assert percentage(1, 4) == 25.0


def test_listing_stats_to_dict():
    stats = compute_listing_stats(LISTING).to_dict()
    assert stats["total_restaurants"] == 4
    assert stats["reviewed_restaurants"] == 2
    assert stats["average_rating_display"] == "4.0"
    assert stats["top_cuisines"][0] == {"name": "Italiaans", "count": 2}
    assert stats["price_percentages"] == {"€": 25.0, "€€": 50.0}


def test_listing_stats_for_empty_listing():
    stats = compute_listing_stats([]).to_dict()
    assert stats["total_restaurants"] == 0
    assert stats["average_rating"] is None
    assert stats["average_rating_display"] is None
    assert stats["top_cuisines"] == []


def test_best_rated_drops_unreviewed_and_breaks_ties_on_review_count():
    ranked = best_rated(
        [
            _restaurant("few", 4.5, 3),
            _restaurant("none", 5.0, 0),
            _restaurant("many", 4.5, 30),
            _restaurant("top", 4.9, 1),
        ]
    )
    assert [r["name"] for r in ranked] == ["top", "many", "few"]


def test_group_by_province_sorts_groups_and_members():
    cities = [
        {"name": "Utrecht", "province": "Utrecht"},
        {"name": "Haarlem", "province": "Noord-Holland"},
        {"name": "amsterdam", "province": "Noord-Holland"},
        {"name": "Nergens", "province": "  "},
    ]
    groups = group_by_province(cities)
    assert [g["province"] for g in groups] == ["Noord-Holland", DEFAULT_PROVINCE, "Utrecht"]
    assert [c["name"] for c in groups[0]["cities"]] == ["amsterdam", "Haarlem"]


def test_group_by_province_keeps_spelling_variants_apart():
    groups = group_by_province(
        [{"name": "A", "province": "Noord-Holland"}, {"name": "B", "province": "Noord Holland"}]
    )
    assert len(groups) == 2
