from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .validators import (
    CONTENT_MAX_LENGTH,
    MESSAGE_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    normalize_display_name,
    normalize_email,
    normalize_phone,
    normalize_postal_code,
    normalize_text,
    normalize_url,
)

PriceRange = Literal["€", "€€", "€€€", "€€€€"]
ClaimStatus = Literal["pending", "approved", "rejected"]
AppRole = Literal["admin", "moderator", "user"]
PlacementType = Literal["homepage", "city", "detail_sidebar", "detail_content"]
PageType = Literal["restaurant", "city", "home"]
ReviewStatusFilter = Literal["pending", "approved", "all"]


# --- Directory read models ---
class CitySummary(BaseModel):
    id: str
    name: str
    slug: str


class City(CitySummary):
    province: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    image_url: str | None = None
    description: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    path: str | None = None


class CuisineType(BaseModel):
    id: str
    name: str
    slug: str
    icon: str | None = None
    path: str | None = None


class RestaurantWithRelations(BaseModel):
    """A restaurant row with its city and cuisine list already resolved."""

    id: str
    name: str
    slug: str
    address: str | None = None
    postal_code: str | None = None
    latitude: float
    longitude: float
    price_range: PriceRange | None = None
    rating: float | None = None
    review_count: int = 0
    image_url: str | None = None
    is_verified: bool = False
    is_claimed: bool = False
    city: CitySummary | None = None
    cuisines: list[CuisineType] = Field(default_factory=list)
    path: str | None = None


class Photo(BaseModel):
    id: str
    restaurant_id: str
    url: str
    caption: str | None = None
    is_primary: bool = False
    is_approved: bool = False
    created_at: str | None = None


class RestaurantDetail(RestaurantWithRelations):
    city: City | None = None
    description: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    opening_hours: Any = None
    features: list[str] = Field(default_factory=list)
    specialties: list[str] = Field(default_factory=list)
    meta_title: str | None = None
    meta_description: str | None = None
    owner_id: str | None = None
    google_place_id: str | None = None
    photos: list[Photo] = Field(default_factory=list)
    claim_path: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class NearbyRestaurant(RestaurantWithRelations):
    distance_km: float


class RestaurantPage(BaseModel):
    items: list[RestaurantWithRelations]
    total: int
    page: int
    limit: int


class ListingStatsOut(BaseModel):
    total_restaurants: int
    reviewed_restaurants: int
    average_rating: float | None = None
    average_rating_display: str | None = None
    top_cuisines: list[dict[str, Any]] = Field(default_factory=list)
    price_distribution: dict[str, int] = Field(default_factory=dict)
    price_percentages: dict[str, float] = Field(default_factory=dict)


class CityListing(BaseModel):
    city: City
    restaurants: RestaurantPage
    stats: ListingStatsOut


class CuisineListing(BaseModel):
    cuisine: CuisineType
    restaurants: RestaurantPage
    stats: ListingStatsOut


class PopularCity(City):
    restaurant_count: int


class ProvinceGroup(BaseModel):
    province: str
    cities: list[City]


class SearchResults(BaseModel):
    restaurants: list[RestaurantWithRelations] = Field(default_factory=list)
    cities: list[City] = Field(default_factory=list)
    cuisines: list[CuisineType] = Field(default_factory=list)


class ReviewPhoto(BaseModel):
    id: str
    review_id: str
    url: str
    created_at: str | None = None


class PublicReview(BaseModel):
    id: str
    restaurant_id: str
    rating: int
    title: str | None = None
    content: str | None = None
    author_name: str
    is_guest: bool
    is_verified: bool = False
    photos: list[ReviewPhoto] = Field(default_factory=list)
    created_at: str | None = None


class Profile(BaseModel):
    user_id: str
    display_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class PostAuthor(BaseModel):
    name: str
    avatar_url: str | None = None
    is_guest: bool


class FoodPost(BaseModel):
    id: str
    image_url: str
    caption: str | None = None
    likes_count: int = 0
    is_liked: bool = False
    author: PostAuthor
    restaurant: RestaurantWithRelations | None = None
    created_at: str | None = None


# --- Review authorship ---
@dataclass(frozen=True, slots=True)
class UserAuthor:
    user_id: str


@dataclass(frozen=True, slots=True)
class GuestAuthor:
    name: str
    email: str


ReviewAuthor = UserAuthor | GuestAuthor


# --- Visitor writes ---
class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    title: str | None = None
    content: str
    guest_name: str | None = None
    guest_email: str | None = None
    recaptcha_token: str | None = None

    @field_validator("title")
    @classmethod
    def _title(cls, value: str | None) -> str | None:
        return normalize_text(value, field="title", max_length=TITLE_MAX_LENGTH)

    @field_validator("content")
    @classmethod
    def _content(cls, value: str) -> str:
        cleaned = normalize_text(value, field="content", max_length=CONTENT_MAX_LENGTH)
        if not cleaned:
            raise ValueError("content cannot be blank")
        return cleaned

    @field_validator("guest_name")
    @classmethod
    def _guest_name(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return normalize_display_name(value, field="guest_name")

    @field_validator("guest_email")
    @classmethod
    def _guest_email(cls, value: str | None) -> str | None:
        return normalize_email(value, field="guest_email")

    def author_for(self, user_id: str | None) -> ReviewAuthor:
        """Resolve who wrote this review; guests must identify themselves."""
        if user_id:
            return UserAuthor(user_id=user_id)
        if not self.guest_name or not self.guest_email:
            raise ValueError("guest_name and guest_email are required without an account")
        return GuestAuthor(name=self.guest_name, email=self.guest_email)


class PhotoCreate(BaseModel):
    url: str
    caption: str | None = None

    @field_validator("url")
    @classmethod
    def _url(cls, value: str) -> str:
        cleaned = normalize_url(value, field="url")
        if not cleaned:
            raise ValueError("url cannot be blank")
        return cleaned

    @field_validator("caption")
    @classmethod
    def _caption(cls, value: str | None) -> str | None:
        return normalize_text(value, field="caption", max_length=TITLE_MAX_LENGTH)


class ReviewPhotoCreate(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def _url(cls, value: str) -> str:
        cleaned = normalize_url(value, field="url")
        if not cleaned:
            raise ValueError("url cannot be blank")
        return cleaned


class ProfileUpdate(BaseModel):
    """Partial profile edit; fields left out keep their stored value."""

    display_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None

    @field_validator("display_name")
    @classmethod
    def _display_name(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return normalize_display_name(value, field="display_name")

    @field_validator("avatar_url")
    @classmethod
    def _avatar_url(cls, value: str | None) -> str | None:
        return normalize_url(value, field="avatar_url")

    @field_validator("bio")
    @classmethod
    def _bio(cls, value: str | None) -> str | None:
        return normalize_text(value, field="bio", max_length=MESSAGE_MAX_LENGTH)


class FoodPostCreate(BaseModel):
    image_url: str
    caption: str | None = None
    restaurant_id: str | None = None
    guest_name: str | None = None
    guest_email: str | None = None
    recaptcha_token: str | None = None

    @field_validator("image_url")
    @classmethod
    def _image_url(cls, value: str) -> str:
        cleaned = normalize_url(value, field="image_url")
        if not cleaned:
            raise ValueError("image_url cannot be blank")
        return cleaned

    @field_validator("caption")
    @classmethod
    def _caption(cls, value: str | None) -> str | None:
        return normalize_text(value, field="caption", max_length=MESSAGE_MAX_LENGTH)

    @field_validator("guest_name")
    @classmethod
    def _guest_name(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return normalize_display_name(value, field="guest_name")

    @field_validator("guest_email")
    @classmethod
    def _guest_email(cls, value: str | None) -> str | None:
        return normalize_email(value, field="guest_email")

    def author_for(self, user_id: str | None) -> ReviewAuthor:
        if user_id:
            return UserAuthor(user_id=user_id)
        if not self.guest_name or not self.guest_email:
            raise ValueError("guest_name and guest_email are required without an account")
        return GuestAuthor(name=self.guest_name, email=self.guest_email)


class ClaimCreate(BaseModel):
    city_slug: str
    restaurant_slug: str
    business_email: str
    phone: str | None = None
    message: str | None = None
    recaptcha_token: str | None = None

    @field_validator("business_email")
    @classmethod
    def _business_email(cls, value: str) -> str:
        cleaned = normalize_email(value, field="business_email")
        if not cleaned:
            raise ValueError("business_email is required")
        return cleaned

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str | None) -> str | None:
        return normalize_phone(value)

    @field_validator("message")
    @classmethod
    def _message(cls, value: str | None) -> str | None:
        return normalize_text(value, field="message", max_length=MESSAGE_MAX_LENGTH)


class ClaimRejection(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def _reason(cls, value: str) -> str:
        cleaned = normalize_text(value, field="reason", max_length=MESSAGE_MAX_LENGTH)
        if not cleaned:
            raise ValueError("reason cannot be blank")
        return cleaned


class _RestaurantFields(BaseModel):
    address: str | None = None
    postal_code: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    description: str | None = None

    @field_validator("postal_code")
    @classmethod
    def _postal_code(cls, value: str | None) -> str | None:
        return normalize_postal_code(value)

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str | None) -> str | None:
        return normalize_phone(value)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str | None) -> str | None:
        return normalize_email(value)

    @field_validator("website")
    @classmethod
    def _website(cls, value: str | None) -> str | None:
        return normalize_url(value)

    @field_validator("description")
    @classmethod
    def _description(cls, value: str | None) -> str | None:
        return normalize_text(value, field="description")


class RestaurantRegistration(_RestaurantFields):
    name: str
    city_id: str
    address: str
    recaptcha_token: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return normalize_display_name(value)

    @field_validator("address")
    @classmethod
    def _address(cls, value: str) -> str:
        return normalize_display_name(value, field="address")


class RestaurantCreate(_RestaurantFields):
    """Admin/import insert with every field explicit."""

    name: str
    slug: str
    city_id: str | None = None
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    price_range: PriceRange | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    review_count: int = Field(default=0, ge=0)
    cuisine_ids: list[str] = Field(default_factory=list)
    google_place_id: str | None = None
    image_url: str | None = None
    features: list[str] | None = None
    specialties: list[str] | None = None
    opening_hours: Any = None
    is_verified: bool = False

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return normalize_display_name(value)


class RestaurantUpdate(_RestaurantFields):
    name: str | None = None
    city_id: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    price_range: PriceRange | None = None
    image_url: str | None = None
    features: list[str] | None = None
    specialties: list[str] | None = None
    opening_hours: Any = None
    meta_title: str | None = None
    meta_description: str | None = None
    is_verified: bool | None = None
    cuisine_ids: list[str] | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: str | None) -> str | None:
        return normalize_display_name(value) if value is not None else None


class CityCreate(BaseModel):
    name: str
    slug: str
    province: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    description: str | None = None
    image_url: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return normalize_display_name(value)

    @field_validator("slug")
    @classmethod
    def _slug(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if not cleaned or "/" in cleaned:
            raise ValueError("slug must be a single path segment")
        return cleaned

    @field_validator("province")
    @classmethod
    def _province(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return " ".join(value.split()) or None


class CuisineCreate(BaseModel):
    name: str
    slug: str
    icon: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return normalize_display_name(value)

    @field_validator("slug")
    @classmethod
    def _slug(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if not cleaned or "/" in cleaned:
            raise ValueError("slug must be a single path segment")
        return cleaned


# --- Ads / analytics / roles ---
class AdPlacementCreate(BaseModel):
    placement_type: PlacementType
    ad_code: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def _window(self) -> AdPlacementCreate:
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class AdPlacementUpdate(BaseModel):
    placement_type: PlacementType | None = None
    ad_code: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool | None = None


class PageViewCreate(BaseModel):
    page_type: PageType
    page_slug: str | None = Field(default=None, max_length=255)
    restaurant_id: str | None = None
    session_id: str | None = Field(default=None, max_length=128)
    referrer: str | None = Field(default=None, max_length=2048)


class RoleGrant(BaseModel):
    role: AppRole


# --- Bulk import / photo refresh control ---
class ImportControl(BaseModel):
    action: Literal["start", "status"]


class PhotoRefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    batch_size: int = Field(default=10, ge=1, le=100, alias="batchSize")
    offset: int = Field(default=0, ge=0)


class PhotoRefreshPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    processed: int = 0
    photos_downloaded: int = Field(default=0, alias="photosDownloaded")
    errors: list[str] = Field(default_factory=list)
    has_more: bool = Field(default=False, alias="hasMore")
    next_offset: int = Field(default=0, alias="nextOffset")
    total_restaurants: int = Field(default=0, alias="totalRestaurants")


class SessionInfo(BaseModel):
    sub: str | None = None
    email: str | None = None
    name: str | None = None
    is_admin: bool = False
    roles: list[str] = Field(default_factory=list)

