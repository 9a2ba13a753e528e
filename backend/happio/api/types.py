from __future__ import annotations

from typing import Annotated

from fastapi import Query

from ..contracts import PlacementType, ReviewStatusFilter
from ..query_builder import MAX_PAGE_SIZE

Latitude = Annotated[float | None, Query(ge=-90, le=90, description="Visitor latitude")]
Longitude = Annotated[float | None, Query(ge=-180, le=180, description="Visitor longitude")]

NearbyLimit = Annotated[int | None, Query(ge=1, le=100)]

SearchQuery = Annotated[
    str,
    Query(
        max_length=100,
        description="Restaurant, city or cuisine name fragment",
    ),
]

PageQuery = Annotated[int, Query(ge=1)]
LimitQuery = Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)]

PriceRangeQuery = Annotated[
    list[str] | None,
    Query(description="Repeat for several tiers (€, €€, €€€, €€€€)"),
]

ReviewStatusQuery = Annotated[ReviewStatusFilter, Query(alias="status")]
PlacementQuery = Annotated[PlacementType, Query()]
