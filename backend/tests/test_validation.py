from __future__ import annotations

import pytest
from backend.happio.contracts import (
    AdPlacementCreate,
    CityCreate,
    ClaimCreate,
    GuestAuthor,
    PhotoRefreshPage,
    PhotoRefreshRequest,
    RestaurantRegistration,
    ReviewCreate,
    UserAuthor,
)
from backend.happio.query_builder import RestaurantFilters
from backend.happio.validators import (
    normalize_postal_code,
    normalize_price_ranges,
    normalize_url,
    slugify_name,
)
from pydantic import ValidationError


def _review(**overrides):
    payload = {"rating": 4, "content": "Heerlijk gegeten", "recaptcha_token": "tok"}
    payload.update(overrides)
    return ReviewCreate(**payload)


def test_review_rejects_rating_out_of_range():
    with pytest.raises(ValidationError):
        _review(rating=0)
    with pytest.raises(ValidationError):
        _review(rating=6)


def test_review_rejects_blank_content():
    with pytest.raises(ValidationError):
        _review(content="   \n  ")


def test_review_trims_text_but_keeps_line_breaks():
    review = _review(title="  Top   avond ", content="  Eerste   regel\n tweede regel  ")
    assert review.title == "Top avond"
    assert review.content == "Eerste regel\ntweede regel"


def test_review_author_prefers_account():
    review = _review(guest_name="Ana", guest_email="ana@example.nl")
    assert review.author_for("auth0|123") == UserAuthor(user_id="auth0|123")


def test_guest_review_needs_name_and_email():
    with pytest.raises(ValueError):
        _review(guest_name="Ana").author_for(None)
    author = _review(guest_name=" Ana ", guest_email="ANA@Example.nl").author_for(None)
    assert author == GuestAuthor(name="Ana", email="ana@example.nl")


def test_review_rejects_malformed_guest_email():
    with pytest.raises(ValidationError):
        _review(guest_email="not-an-email")


def test_claim_requires_business_email():
    with pytest.raises(ValidationError):
        ClaimCreate(city_slug="amsterdam", restaurant_slug="de-kas", business_email=" ")


def test_claim_rejects_bad_phone():
    with pytest.raises(ValidationError):
        ClaimCreate(
            city_slug="amsterdam",
            restaurant_slug="de-kas",
            business_email="eigenaar@dekas.nl",
            phone="call me",
        )


def test_registration_normalizes_contact_fields():
    registration = RestaurantRegistration(
        name="  Café   Noord ",
        city_id="c1",
        address="Dam 1",
        postal_code="1012ab",
        website="cafenoord.nl",
        email=" Info@CafeNoord.nl ",
    )
    assert registration.name == "Café Noord"
    assert registration.postal_code == "1012AB"
    assert registration.website == "https://cafenoord.nl"
    assert registration.email == "info@cafenoord.nl"


def test_registration_rejects_blank_address():
    with pytest.raises(ValidationError):
        RestaurantRegistration(name="Café", city_id="c1", address="  ")


def test_city_slug_must_be_single_segment():
    with pytest.raises(ValidationError):
        CityCreate(name="Den Haag", slug="den/haag")
    assert CityCreate(name="Den Haag", slug=" Den-Haag ").slug == "den-haag"


def test_ad_window_must_not_end_before_start():
    with pytest.raises(ValidationError):
        AdPlacementCreate(placement_type="detail_sidebar", start_date="2026-05-10", end_date="2026-05-01")


def test_filters_reject_unknown_sort_and_price():
    with pytest.raises(ValidationError):
        RestaurantFilters(sort_by="distance")
    with pytest.raises(ValidationError):
        RestaurantFilters(price_range=["$$"])


def test_filters_accept_camel_case_aliases():
    filters = RestaurantFilters(citySlug=" Amsterdam ", sortBy="name", sortOrder="asc", page=3, limit=10)
    assert filters.city_slug == "amsterdam"
    assert filters.offset == 20


def test_filters_limit_is_capped():
    with pytest.raises(ValidationError):
        RestaurantFilters(limit=1001)


def test_photo_refresh_contract_uses_wire_names():
    request = PhotoRefreshRequest(batchSize=5)
    assert request.batch_size == 5
    page = PhotoRefreshPage.model_validate(
        {"processed": 5, "photosDownloaded": 3, "hasMore": True, "nextOffset": 5, "totalRestaurants": 12}
    )
    assert page.has_more is True
    assert page.next_offset == 5


@pytest.mark.parametrize(
    "name, slug",
    [
        ("Café de Paris", "cafe-de-paris"),
        ("  Pizza & Pasta!! ", "pizza-pasta"),
        ("Brasserie   Nieuw--West", "brasserie-nieuw-west"),
    ],
)
def test_slugify_name(name, slug):
    assert slugify_name(name) == slug


def test_price_ranges_deduplicate_and_validate():
    assert normalize_price_ranges(["€€", " € ", "€€", ""]) == ["€€", "€"]
    assert normalize_price_ranges([]) is None
    with pytest.raises(ValueError):
        normalize_price_ranges(["€€€€€"])


def test_postal_code_and_url_rules():
    assert normalize_postal_code("1234 ab") == "1234 AB"
    with pytest.raises(ValueError):
        normalize_postal_code("12345")
    with pytest.raises(ValueError):
        normalize_url("https://bad url")
