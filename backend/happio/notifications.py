"""Best-effort notification emails.

Nothing in here may fail the request that triggered it: delivery problems are
logged, counted and dropped.
"""

from __future__ import annotations

from typing import Any

from .functions import EMAIL_FUNCTION, FunctionError, FunctionsClient
from .logging_config import get_logger
from .metrics import notifications_total
from .serializers import absolute_url, get_attr
from .urls import restaurant_path

logger = get_logger(__name__)


class Notifier:
    def __init__(self, functions: FunctionsClient) -> None:
        self._functions = functions

    async def send(self, kind: str, data: dict[str, Any]) -> bool:
        try:
            await self._functions.invoke(EMAIL_FUNCTION, {"type": kind, "data": data})
        except FunctionError as exc:
            notifications_total.labels(kind=kind, result="failed").inc()
            logger.warning("notification_failed", kind=kind, reason=exc.reason)
            return False
        notifications_total.labels(kind=kind, result="sent").inc()
        return True

    async def review_submitted(self, review: Any, restaurant: Any) -> bool:
        city = get_attr(restaurant, "city")
        return await self.send(
            "review",
            {
                "reviewerEmail": get_attr(review, "guest_email"),
                "reviewerName": get_attr(review, "guest_name"),
                "restaurantName": get_attr(restaurant, "name") or "Restaurant",
                "rating": get_attr(review, "rating"),
                "content": get_attr(review, "content"),
                "cityName": get_attr(city, "name") if city is not None else None,
            },
        )

    async def review_approved(self, review: Any, restaurant: Any) -> bool:
        """Thank the guest once their review is live. Account reviews have no address here."""
        email = get_attr(review, "guest_email")
        if not email:
            return False
        city = get_attr(restaurant, "city")
        city_slug = get_attr(city, "slug") if city is not None else None
        url = (
            absolute_url(restaurant_path(city_slug, get_attr(restaurant, "slug")))
            if city_slug
            else absolute_url("/")
        )
        return await self.send(
            "review_approved",
            {
                "email": email,
                "name": get_attr(review, "guest_name"),
                "restaurantName": get_attr(restaurant, "name"),
                "restaurantUrl": url,
                "rating": get_attr(review, "rating"),
            },
        )
