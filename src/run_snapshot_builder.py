"""
Neighborhood Intel - Snapshot Builder Job
Rebuilds the snapshot_cache table from stored observations

Usage:
    python src/run_snapshot_builder.py [--asof 2025-01-01] [--geo-id county:21111] [--skip-existing]

Steps:
    1. Check database connectivity and ensure schema
    2. Build one snapshot per geography for the as-of date
    3. Record the run in snapshot_refresh_log
"""

import argparse
import sys
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

# Ensure project root is on sys.path when running as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config.database import init_db, log_refresh, test_connection
from config.settings import get_settings
from src.ingest.employment_trends import (
    EmploymentTrendSource,
    QCEWEmploymentTrendSource,
    StaticEmploymentTrendSource,
)
from src.processing.snapshot_builder import BuildSummary, build_snapshots
from src.storage.sql_store import SqlSnapshotStore
from src.utils.logging import setup_logging
from src.utils.year_policy import default_asof_date, parse_asof_date

logger = setup_logging("snapshot_builder")
settings = get_settings()

JOB_NAME = "snapshot_builder"


def employment_source(use_qcew: bool) -> EmploymentTrendSource:
    if use_qcew and settings.QCEW_ENABLED:
        return QCEWEmploymentTrendSource()
    logger.info("QCEW disabled; snapshots will carry no industry trends")
    return StaticEmploymentTrendSource()


def run_snapshot_job(
    asof: date,
    geo_ids: Optional[List[str]] = None,
    force_rebuild: bool = True,
    lookback_years: Optional[int] = None,
    use_qcew: bool = True
) -> BuildSummary:
    """
    Run the snapshot build against the configured database.

    Args:
        asof: Snapshot date
        geo_ids: Restrict to these geographies
        force_rebuild: When False, keep snapshots that already exist for asof
        lookback_years: History window (default from settings)
        use_qcew: Fetch industry trends from BLS QCEW

    Returns:
        BuildSummary
    """
    logger.info(f"Building snapshots for {asof.isoformat()}")
    logger.info(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    init_db()
    store = SqlSnapshotStore()

    summary = build_snapshots(
        reader=store,
        writer=store,
        asof=asof,
        geo_ids=geo_ids,
        employment=employment_source(use_qcew),
        force_rebuild=force_rebuild,
        lookback_years=lookback_years
    )

    log_refresh(
        job_name=JOB_NAME,
        status=summary.status,
        records_processed=summary.processed,
        records_inserted=len(summary.built),
        error_message=(
            f"Failed geographies: {', '.join(summary.failed)}" if summary.failed else None
        ),
        metadata={
            "asof": asof.isoformat(),
            "skipped": len(summary.skipped),
            "force_rebuild": force_rebuild,
        }
    )

    return summary


def main():
    """Main execution with CLI argument parsing"""
    parser = argparse.ArgumentParser(
        description="Build cached KPI snapshots for each geography"
    )
    parser.add_argument(
        "--asof",
        type=parse_asof_date,
        default=None,
        help="Snapshot date YYYY-MM-DD (default: today)"
    )
    parser.add_argument(
        "--geo-id",
        dest="geo_ids",
        action="append",
        default=None,
        help="Geography to rebuild (repeatable, default: all)"
    )
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        help="Keep snapshots that already exist for the as-of date"
    )
    parser.add_argument(
        "--lookback-years",
        type=int,
        default=settings.SNAPSHOT_LOOKBACK_YEARS,
        help=f"Years of history per metric (default: {settings.SNAPSHOT_LOOKBACK_YEARS})"
    )
    parser.add_argument(
        "--no-qcew",
        action="store_true",
        help="Skip BLS QCEW industry trends"
    )

    args = parser.parse_args()
    asof = args.asof or default_asof_date()

    if not test_connection():
        logger.error("Database connection failed")
        sys.exit(1)

    try:
        summary = run_snapshot_job(
            asof=asof,
            geo_ids=args.geo_ids,
            force_rebuild=not args.skip_existing,
            lookback_years=args.lookback_years,
            use_qcew=not args.no_qcew
        )
    except Exception as e:
        logger.error(f"Snapshot building failed: {e}", exc_info=True)
        log_refresh(job_name=JOB_NAME, status="failed", error_message=str(e))
        sys.exit(1)

    logger.info(f"Snapshot building completed with status '{summary.status}'")
    sys.exit(0)


if __name__ == "__main__":
    main()
