"""
Bulk import job control and the photo refresh loop.

The import itself runs in the ``bulk-import-restaurants`` function. This side owns the
``import_jobs`` rows: it refuses to start a second job while one is running, dispatches
new jobs, applies worker progress reports under the pending -> running ->
completed/failed lifecycle and lets admins watch a job until it finishes.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException
from pydantic import BaseModel, Field

from .contracts import PhotoRefreshPage
from .functions import BULK_IMPORT_FUNCTION, PHOTO_REFRESH_FUNCTION, FunctionError, FunctionsClient
from .logging_config import get_logger
from .metrics import import_jobs_total
from .settings import settings
from .storage import Database

logger = get_logger(__name__)

IMPORT_BUSY_MESSAGE = "Er is al een import bezig"
IMPORT_STARTED_MESSAGE = "Import gestart op de achtergrond"
TERMINAL_STATUSES = frozenset({"completed", "failed"})

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"running", "failed"}),
    "running": frozenset({"running", "completed", "failed"}),
    "completed": frozenset(),
    "failed": frozenset(),
}


class ImportProgress(BaseModel):
    """Progress report posted by the import worker."""

    status: str | None = Field(default=None, pattern="^(running|completed|failed)$")
    total_cities: int | None = Field(default=None, ge=0)
    processed_cities: int | None = Field(default=None, ge=0)
    imported_restaurants: int | None = Field(default=None, ge=0)
    imported_reviews: int | None = Field(default=None, ge=0)
    skipped_restaurants: int | None = Field(default=None, ge=0)
    last_city: str | None = None
    errors: list[str] = Field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def cap_errors(existing: list[str], new: list[str], limit: int | None = None) -> list[str]:
    """Append `new` and keep only the most recent `limit` messages."""
    keep = settings.IMPORT_ERROR_HISTORY if limit is None else limit
    merged = [*existing, *new]
    return merged[-keep:] if keep > 0 else []


class ImportJobService:
    def __init__(self, db: Database, functions: FunctionsClient) -> None:
        self._db = db
        self._functions = functions

    async def start(self) -> dict[str, Any]:
        running = await self._db.running_import_job()
        if running:
            import_jobs_total.labels(outcome="rejected_busy").inc()
            return {"success": False, "error": IMPORT_BUSY_MESSAGE, "jobId": running["id"]}

        total_cities = await self._db.count_cities()
        job = await self._db.create_import_job(total_cities)
        try:
            await self._functions.invoke(BULK_IMPORT_FUNCTION, {"action": "run", "jobId": job["id"]})
        except FunctionError as exc:
            import_jobs_total.labels(outcome="dispatch_failed").inc()
            await self.fail(job["id"], f"Dispatch failed: {exc.reason}")
            raise HTTPException(
                status_code=502, detail=f"{BULK_IMPORT_FUNCTION} unavailable"
            ) from exc

        import_jobs_total.labels(outcome="started").inc()
        logger.info("import_job_started", job_id=job["id"], total_cities=total_cities)
        return {
            "success": True,
            "message": IMPORT_STARTED_MESSAGE,
            "jobId": job["id"],
            "totalCities": total_cities,
        }

    async def get(self, job_id: str) -> dict[str, Any]:
        return await self._db.get_import_job(job_id)

    async def status(self) -> dict[str, Any]:
        return {"success": True, "job": await self._db.latest_import_job()}

    async def _transition(self, job_id: str, target: str, **fields: Any) -> dict[str, Any]:
        job = await self._db.get_import_job(job_id)
        if target not in ALLOWED_TRANSITIONS[job["status"]]:
            raise HTTPException(
                status_code=409,
                detail=f"Import job cannot move from {job['status']} to {target}",
            )
        if "errors" in fields:
            fields["errors"] = cap_errors(job["errors"], fields["errors"])
        return await self._db.update_import_job(job_id, status=target, **fields)

    async def mark_running(self, job_id: str, total_cities: int | None = None) -> dict[str, Any]:
        fields: dict[str, Any] = {"started_at": _utcnow()}
        if total_cities is not None:
            fields["total_cities"] = total_cities
        return await self._transition(job_id, "running", **fields)

    async def record_progress(self, job_id: str, progress: ImportProgress) -> dict[str, Any]:
        counters = progress.model_dump(exclude_none=True, exclude={"status", "errors"})
        target = progress.status or "running"
        if target == "failed":
            message = progress.errors[-1] if progress.errors else "Unknown error"
            return await self.fail(job_id, message, errors=progress.errors[:-1], **counters)
        job = await self._db.get_import_job(job_id)
        if job["status"] == "pending":
            # a worker that finishes before its first report still went through running
            await self.mark_running(job_id, counters.pop("total_cities", None))
        if target == "completed":
            return await self.complete(job_id, errors=progress.errors, **counters)
        return await self._transition(job_id, "running", errors=progress.errors, **counters)

    async def complete(self, job_id: str, errors: list[str] | None = None, **counters: Any) -> dict[str, Any]:
        job = await self._transition(
            job_id, "completed", completed_at=_utcnow(), errors=errors or [], **counters
        )
        import_jobs_total.labels(outcome="completed").inc()
        logger.info(
            "import_job_completed",
            job_id=job_id,
            restaurants=job["imported_restaurants"],
            reviews=job["imported_reviews"],
        )
        return job

    async def fail(
        self, job_id: str, message: str, errors: list[str] | None = None, **counters: Any
    ) -> dict[str, Any]:
        job = await self._transition(
            job_id,
            "failed",
            completed_at=_utcnow(),
            errors=[*(errors or []), message],
            **counters,
        )
        import_jobs_total.labels(outcome="failed").inc()
        logger.warning("import_job_failed", job_id=job_id, error=message)
        return job

    async def watch(
        self,
        job_id: str | None = None,
        *,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Yield the job snapshot each time it changes, ending after a terminal state.

        Without `job_id` the most recent job is followed. Nothing is yielded when no
        job exists. Watching stops after `timeout` seconds even when the job never
        finishes, so a dead worker cannot hold a stream open.
        """
        delay = settings.IMPORT_POLL_INTERVAL_SECONDS if interval is None else interval
        limit = settings.IMPORT_WATCH_TIMEOUT_SECONDS if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + limit
        last: dict[str, Any] | None = None
        while True:
            job = (
                await self._db.get_import_job(job_id)
                if job_id
                else await self._db.latest_import_job()
            )
            if job is None:
                return
            job_id = job["id"]
            if job != last:
                yield job
                last = job
            if job["status"] in TERMINAL_STATUSES:
                return
            if loop.time() >= deadline:
                logger.warning("import_watch_timed_out", job_id=job_id, status=job["status"])
                return
            await asyncio.sleep(delay)


async def refresh_photos_page(
    functions: FunctionsClient, batch_size: int, offset: int
) -> PhotoRefreshPage:
    try:
        data = await functions.invoke(
            PHOTO_REFRESH_FUNCTION, {"batchSize": batch_size, "offset": offset}
        )
    except FunctionError as exc:
        raise HTTPException(
            status_code=502, detail=f"{PHOTO_REFRESH_FUNCTION} unavailable"
        ) from exc
    return PhotoRefreshPage.model_validate(data)


async def refresh_all_photos(
    functions: FunctionsClient, batch_size: int = 10, *, max_pages: int | None = None
) -> dict[str, Any]:
    """Page through the photo refresher until it reports nothing left."""
    offset = 0
    pages = processed = downloaded = 0
    errors: list[str] = []
    while True:
        page = await refresh_photos_page(functions, batch_size, offset)
        pages += 1
        processed += page.processed
        downloaded += page.photos_downloaded
        errors.extend(page.errors)
        logger.info(
            "photo_refresh_page",
            offset=offset,
            processed=page.processed,
            downloaded=page.photos_downloaded,
            total=page.total_restaurants,
        )
        if not page.has_more or (max_pages is not None and pages >= max_pages):
            break
        if page.next_offset <= offset:
            # the refresher must advance or we would loop forever
            logger.warning("photo_refresh_stalled", offset=offset, next_offset=page.next_offset)
            break
        offset = page.next_offset
    return {
        "pages": pages,
        "processed": processed,
        "photosDownloaded": downloaded,
        "errors": errors,
    }


__all__ = [
    "IMPORT_BUSY_MESSAGE",
    "ImportJobService",
    "ImportProgress",
    "cap_errors",
    "refresh_all_photos",
    "refresh_photos_page",
]
