#!/usr/bin/env python3
"""
Coordinate cache reconciliation tooling.
Re-derive every location entity's cache from its active address, page by page.

Usage:
  python -m location_sync.scripts.reconcile
  python -m location_sync.scripts.reconcile --page-size 200 --max-pages 10
  python -m location_sync.scripts.reconcile --resume 42
  python -m location_sync.scripts.reconcile --representation pair --trigger MIGRATION
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from location_sync import database
from location_sync.logging_config import setup_logging
from location_sync.models.reconciliation_run import RUN_COMPLETED
from location_sync.sync.reconciliation import TRIGGER_TYPES, ReconciliationJob
from location_sync.sync.representation import ADAPTERS, get_adapter

logger = logging.getLogger(__name__)


async def reconcile(
    page_size: Optional[int] = None,
    run_id: Optional[int] = None,
    max_pages: Optional[int] = None,
    trigger_type: str = "MANUAL",
    representation: Optional[str] = None,
    database_url: Optional[str] = None,
):
    """Run (or resume) one reconciliation; return the run."""
    database.init_engine(database_url)
    try:
        await database.init_db()
        job = ReconciliationJob(
            session_factory=database.get_session_factory(),
            page_size=page_size,
            adapter=get_adapter(representation),
        )
        return await job.run(run_id=run_id, max_pages=max_pages, trigger_type=trigger_type)
    finally:
        await database.close_db()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Reconcile location entity coordinate caches with their active addresses."
    )
    parser.add_argument("--page-size", type=int, default=None, help="Entities per page (default from settings)")
    parser.add_argument("--resume", type=int, default=None, metavar="RUN_ID", help="Resume this run from its cursor")
    parser.add_argument("--max-pages", type=int, default=None, help="Pause after this many pages")
    parser.add_argument("--trigger", type=str, default="MANUAL", choices=list(TRIGGER_TYPES), help="Trigger type")
    parser.add_argument(
        "--representation",
        type=str,
        default=None,
        choices=sorted(ADAPTERS),
        help="Stored point shape to write (default from settings)",
    )
    parser.add_argument("--database-url", type=str, default=None, help="Override DATABASE_URL")
    args = parser.parse_args()

    if args.page_size is not None and args.page_size < 1:
        parser.error("--page-size must be >= 1")
    if args.max_pages is not None and args.max_pages < 1:
        parser.error("--max-pages must be >= 1")

    setup_logging()
    run = asyncio.run(
        reconcile(
            page_size=args.page_size,
            run_id=args.resume,
            max_pages=args.max_pages,
            trigger_type=args.trigger,
            representation=args.representation,
            database_url=args.database_url,
        )
    )
    print(
        f"Run {run.id} {run.status}: pages={run.pages_processed} checked={run.rows_checked} "
        f"corrected={run.rows_corrected} failed={run.rows_failed} cursor={run.cursor} "
        f"addresses_rewritten={run.addresses_rewritten} addresses_failed={run.addresses_failed}"
    )
    if run.status != RUN_COMPLETED:
        print(f"Resume with: python -m location_sync.scripts.reconcile --resume {run.id}")
    sys.exit(1 if run.rows_failed or run.addresses_failed else 0)


if __name__ == "__main__":
    main()
