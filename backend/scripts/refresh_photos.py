#!/usr/bin/env python3
"""Page through the photo refresh function until every restaurant has been visited."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from backend.happio.functions import create_functions_client
from backend.happio.imports import refresh_all_photos
from backend.happio.logging_config import configure_structlog
from fastapi import HTTPException


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Refresh restaurant photos in batches")
    parser.add_argument("--batch-size", type=int, default=10, help="Restaurants per call (1-100)")
    parser.add_argument("--max-pages", type=int, default=None, help="Stop after this many batches")
    return parser.parse_args(argv)


async def _run(batch_size: int, max_pages: int | None) -> dict:
    functions = create_functions_client()
    try:
        return await refresh_all_photos(functions, batch_size, max_pages=max_pages)
    finally:
        await functions.aclose()


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    if not 1 <= args.batch_size <= 100:
        print("--batch-size must be between 1 and 100", file=sys.stderr)
        return 2
    configure_structlog(json_logs=False)
    try:
        summary = asyncio.run(_run(args.batch_size, args.max_pages))
    except HTTPException as exc:
        print(f"Photo refresh failed: {exc.detail}", file=sys.stderr)
        return 1
    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
