#!/usr/bin/env python3
"""Load cities and cuisine types from a JSON file into the directory database.

The file holds ``{"cities": [...], "cuisines": [...]}`` using the admin create
payloads. Rows whose slug already exists are left alone.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from backend.happio.contracts import CityCreate, CuisineCreate
from backend.happio.settings import settings
from backend.happio.storage import Database
from fastapi import HTTPException
from pydantic import ValidationError


async def _seed(payload: dict) -> tuple[int, int]:
    db = Database()
    await db.init()
    inserted_cities = inserted_cuisines = 0
    try:
        for row in payload.get("cities", []):
            try:
                await db.create_city(CityCreate.model_validate(row))
                inserted_cities += 1
            except ValidationError as exc:
                print(f"Skipping malformed city {row.get('slug')}: {exc.error_count()} error(s)")
            except HTTPException as exc:
                if exc.status_code != 409:
                    raise
        for row in payload.get("cuisines", []):
            try:
                await db.create_cuisine(CuisineCreate.model_validate(row))
                inserted_cuisines += 1
            except ValidationError as exc:
                print(f"Skipping malformed cuisine {row.get('slug')}: {exc.error_count()} error(s)")
            except HTTPException as exc:
                if exc.status_code != 409:
                    raise
    finally:
        await db.dispose()
    return inserted_cities, inserted_cuisines


def main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(description="Seed cities and cuisine types")
    parser.add_argument("path", type=Path, help="JSON file with cities and cuisines")
    args = parser.parse_args(argv)

    if not args.path.exists():
        print(f"No seed file found at {args.path}")
        return 1
    payload = json.loads(args.path.read_text(encoding="utf-8") or "{}")
    cities, cuisines = asyncio.run(_seed(payload))
    print(f"Inserted {cities} cities and {cuisines} cuisines into {settings.database_url}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
