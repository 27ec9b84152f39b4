"""
Evict staged imports older than the retention window.

Meant for cron. Orphaned keys (extraction results that arrived after the
client gave up) accumulate in the staging store until this runs.

Usage:
    # Durable backend: delete directly from the pending_imports table
    python scripts/evict_staged_imports.py --max-age-minutes 1440

    # Any backend: ask a running server to evict (required for memory staging)
    python scripts/evict_staged_imports.py --api-url http://localhost:8000
"""

import argparse
import os
import sys
from datetime import timedelta

import requests

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

from config import settings
from services.staging_store import get_staging_store
from exceptions import StagingUnavailableError


def evict_via_api(api_url: str, max_age_minutes: int) -> int:
    response = requests.post(
        f"{api_url.rstrip('/')}/api/pending-import/evict",
        params={"max_age_minutes": max_age_minutes},
        timeout=30,
    )
    response.raise_for_status()
    return response.json()["evicted_count"]


def evict_direct(max_age_minutes: int) -> int:
    return get_staging_store().evict_expired(timedelta(minutes=max_age_minutes))


def main():
    parser = argparse.ArgumentParser(
        description="Evict staged imports older than the retention window."
    )
    parser.add_argument(
        "--max-age-minutes",
        type=int,
        default=settings.staging_retention_minutes,
        help="Entries older than this are removed (default: STAGING_RETENTION_MINUTES)"
    )
    parser.add_argument(
        "--api-url",
        default="",
        help="Base URL of a running server; evicts through its API instead of the database"
    )
    args = parser.parse_args()

    if args.max_age_minutes < 1:
        parser.error("--max-age-minutes must be at least 1")

    if args.api_url:
        try:
            count = evict_via_api(args.api_url, args.max_age_minutes)
        except requests.exceptions.RequestException as e:
            print(f"Eviction request failed: {e}")
            sys.exit(1)
    else:
        if settings.staging_backend == "memory":
            print("Staging backend is 'memory': entries live in the server process. Use --api-url.")
            sys.exit(2)
        try:
            count = evict_direct(args.max_age_minutes)
        except StagingUnavailableError as e:
            print(f"{e.message} ({e.details.get('reason')})")
            sys.exit(1)

    print(f"Evicted {count} staged import(s) older than {args.max_age_minutes} minutes")


if __name__ == "__main__":
    main()
