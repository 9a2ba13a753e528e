from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    false,
    func,
    text,
    true,
)
from sqlalchemy.orm import relationship

from ..validators import PRICE_RANGES
from .core import Base

CLAIM_STATUSES = ("pending", "approved", "rejected")
IMPORT_JOB_STATUSES = ("pending", "running", "completed", "failed")
APP_ROLES = ("admin", "moderator", "user")
AD_PLACEMENT_TYPES = ("homepage", "city", "detail_sidebar", "detail_content")
PAGE_TYPES = ("restaurant", "city", "home")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _uuid() -> str:
    return str(uuid.uuid4())


def _in(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


restaurant_cuisines = Table(
    "restaurant_cuisines",
    Base.metadata,
    Column("id", String(36), primary_key=True, default=_uuid),
    Column(
        "restaurant_id",
        String(36),
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column(
        "cuisine_id",
        String(36),
        ForeignKey("cuisine_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    UniqueConstraint("restaurant_id", "cuisine_id", name="uq_restaurant_cuisine"),
)


class CityRecord(Base):
    __tablename__ = "cities"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(128), nullable=False, unique=True, index=True)
    province = Column(String(128), nullable=True, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    image_url = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    meta_title = Column(String(255), nullable=True)
    meta_description = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )


class CuisineTypeRecord(Base):
    __tablename__ = "cuisine_types"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(128), nullable=False)
    slug = Column(String(128), nullable=False, unique=True, index=True)
    icon = Column(String(16), nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


class RestaurantRecord(Base):
    __tablename__ = "restaurants"
    __table_args__ = (
        UniqueConstraint("city_id", "slug", name="uq_restaurant_city_slug"),
        CheckConstraint(
            f"price_range IS NULL OR {_in('price_range', PRICE_RANGES)}",
            name="ck_restaurant_price_range",
        ),
        CheckConstraint(
            "rating IS NULL OR (rating >= 0 AND rating <= 5)", name="ck_restaurant_rating"
        ),
        CheckConstraint("review_count >= 0", name="ck_restaurant_review_count"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    google_place_id = Column(String(255), nullable=True, unique=True)
    name = Column(String(255), nullable=False, index=True)
    slug = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    address = Column(String(255), nullable=False, default="", server_default=text("''"))
    postal_code = Column(String(16), nullable=True)
    city_id = Column(
        String(36), ForeignKey("cities.id", ondelete="SET NULL"), nullable=True, index=True
    )
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    phone = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(512), nullable=True)
    price_range = Column(String(4), nullable=True, index=True)
    rating = Column(Float, nullable=True, index=True)
    review_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    opening_hours = Column(JSON, nullable=True)
    features = Column(JSON, nullable=True)
    specialties = Column(JSON, nullable=True)
    image_url = Column(Text, nullable=True)
    meta_title = Column(String(255), nullable=True)
    meta_description = Column(Text, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False, server_default=false())
    is_claimed = Column(Boolean, nullable=False, default=False, server_default=false())
    owner_id = Column(String(128), nullable=True, index=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    city = relationship(CityRecord, lazy="selectin")
    cuisines = relationship(
        CuisineTypeRecord,
        secondary=restaurant_cuisines,
        lazy="selectin",
        order_by=CuisineTypeRecord.name,
    )


class RestaurantPhotoRecord(Base):
    __tablename__ = "restaurant_photos"

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(
        String(36), ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(128), nullable=True)
    url = Column(Text, nullable=False)
    caption = Column(String(255), nullable=True)
    is_primary = Column(Boolean, nullable=False, default=False, server_default=false())
    is_approved = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


class ReviewRecord(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating"),
        # author is either an account or a named guest; guests without an email
        # only come from verified imports
        CheckConstraint(
            "(user_id IS NOT NULL AND guest_name IS NULL AND guest_email IS NULL) OR "
            "(user_id IS NULL AND guest_name IS NOT NULL "
            "AND (guest_email IS NOT NULL OR is_verified))",
            name="ck_review_author",
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(
        String(36), ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rating = Column(Integer, nullable=False)
    title = Column(String(255), nullable=True)
    content = Column(Text, nullable=True)
    user_id = Column(String(128), nullable=True, index=True)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    is_approved = Column(Boolean, nullable=False, default=False, server_default=false())
    is_verified = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    restaurant = relationship(RestaurantRecord, lazy="selectin")


class FavoriteRecord(Base):
    __tablename__ = "favorites"
    __table_args__ = (UniqueConstraint("user_id", "restaurant_id", name="uq_favorite_pair"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(128), nullable=False, index=True)
    restaurant_id = Column(
        String(36), ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    restaurant = relationship(RestaurantRecord, lazy="selectin")


class RestaurantClaimRecord(Base):
    __tablename__ = "restaurant_claims"
    __table_args__ = (
        # a rejected claimant may try again; only one open claim per pair
        Index(
            "uq_claim_user_restaurant_pending",
            "user_id",
            "restaurant_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        CheckConstraint(_in("status", CLAIM_STATUSES), name="ck_claim_status"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(
        String(36), ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(128), nullable=False, index=True)
    business_email = Column(String(255), nullable=False)
    phone = Column(String(64), nullable=True)
    message = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="pending", server_default=text("'pending'"))
    rejection_reason = Column(Text, nullable=True)
    reviewed_by = Column(String(128), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    restaurant = relationship(RestaurantRecord, lazy="selectin")


class ImportJobRecord(Base):
    __tablename__ = "import_jobs"
    __table_args__ = (CheckConstraint(_in("status", IMPORT_JOB_STATUSES), name="ck_import_status"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    status = Column(String(16), nullable=False, default="pending", server_default=text("'pending'"))
    total_cities = Column(Integer, nullable=False, default=0, server_default=text("0"))
    processed_cities = Column(Integer, nullable=False, default=0, server_default=text("0"))
    imported_restaurants = Column(Integer, nullable=False, default=0, server_default=text("0"))
    imported_reviews = Column(Integer, nullable=False, default=0, server_default=text("0"))
    skipped_restaurants = Column(Integer, nullable=False, default=0, server_default=text("0"))
    last_city = Column(String(255), nullable=True)
    errors = Column(JSON, nullable=False, default=list)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )


class UserRoleRecord(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_role"),
        CheckConstraint(_in("role", APP_ROLES), name="ck_user_role"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(128), nullable=False, index=True)
    role = Column(String(16), nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


class AdPlacementRecord(Base):
    __tablename__ = "ad_placements"
    __table_args__ = (
        CheckConstraint(_in("placement_type", AD_PLACEMENT_TYPES), name="ck_ad_placement_type"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    placement_type = Column(String(32), nullable=False, index=True)
    ad_code = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )


class PageViewRecord(Base):
    __tablename__ = "page_views"
    __table_args__ = (CheckConstraint(_in("page_type", PAGE_TYPES), name="ck_page_type"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(
        String(36), ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=True, index=True
    )
    page_type = Column(String(16), nullable=False)
    page_slug = Column(String(255), nullable=True)
    ip_hash = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    referrer = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        index=True,
    )


class ReviewPhotoRecord(Base):
    __tablename__ = "review_photos"

    id = Column(String(36), primary_key=True, default=_uuid)
    review_id = Column(
        String(36), ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(128), nullable=False)
    url = Column(Text, nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


class ProfileRecord(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(128), nullable=False, unique=True, index=True)
    display_name = Column(String(120), nullable=True)
    avatar_url = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )


class FoodPostRecord(Base):
    __tablename__ = "food_posts"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NOT NULL AND guest_name IS NULL AND guest_email IS NULL) OR "
            "(user_id IS NULL AND guest_name IS NOT NULL AND guest_email IS NOT NULL)",
            name="ck_food_post_author",
        ),
        CheckConstraint("likes_count >= 0", name="ck_food_post_likes"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(128), nullable=True, index=True)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    # the tagged restaurant may disappear; the post stays
    restaurant_id = Column(
        String(36), ForeignKey("restaurants.id", ondelete="SET NULL"), nullable=True, index=True
    )
    image_url = Column(Text, nullable=False)
    caption = Column(Text, nullable=True)
    likes_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    restaurant = relationship(RestaurantRecord, lazy="selectin")


class FoodPostLikeRecord(Base):
    __tablename__ = "food_post_likes"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_food_post_like"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    post_id = Column(
        String(36), ForeignKey("food_posts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(128), nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
