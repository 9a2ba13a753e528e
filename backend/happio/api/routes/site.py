from __future__ import annotations

import uuid

from fastapi import APIRouter, Request, Response

from ...analytics import is_bot, truncate_user_agent, visitor_hash
from ...contracts import PageViewCreate
from ...metrics import page_views_recorded_total
from ...settings import settings
from ...sitemap import build_sitemap
from ..deps import DatabaseDep
from ..types import PlacementQuery

router = APIRouter(tags=["site"])
sitemap_router = APIRouter(tags=["site"])


@router.post("/page-views", status_code=202)
async def track_page_view(payload: PageViewCreate, request: Request, db: DatabaseDep):
    user_agent = request.headers.get("user-agent")
    if is_bot(user_agent):
        page_views_recorded_total.labels(result="bot").inc()
        return {"recorded": False}
    # the session id only lives in the visitor's tab; we keep its hash
    session_id = payload.session_id or str(uuid.uuid4())
    await db.record_page_view(
        restaurant_id=payload.restaurant_id,
        page_type=payload.page_type,
        page_slug=payload.page_slug,
        ip_hash=visitor_hash(session_id, user_agent),
        user_agent=truncate_user_agent(user_agent),
        referrer=payload.referrer or request.headers.get("referer"),
    )
    page_views_recorded_total.labels(result="recorded").inc()
    return {"recorded": True, "session_id": session_id}


@router.get("/ads")
async def active_ads(placement: PlacementQuery, db: DatabaseDep):
    return await db.active_ads(placement)


@sitemap_router.get("/sitemap.xml", include_in_schema=False)
async def sitemap(db: DatabaseDep):
    sources = await db.sitemap_sources()
    xml = build_sitemap(settings.site_url, **sources)
    return Response(
        content=xml,
        media_type="application/xml",
        headers={"Cache-Control": "public, max-age=3600"},
    )
