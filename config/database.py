"""
Neighborhood Intel - Database Connection Management
SQLAlchemy configuration (PostgreSQL in production, SQLite locally)
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from config.settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_connect_args(database_url: str) -> dict:
    if database_url.startswith("postgresql"):
        return {"options": "-c timezone=utc"}
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


# For production use NullPool to avoid connection exhaustion from batch jobs
engine = create_engine(
    settings.DATABASE_URL,
    poolclass=NullPool if settings.ENVIRONMENT == "production" else None,
    echo=settings.DEBUG,
    connect_args=_engine_connect_args(settings.DATABASE_URL),
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Portable between PostgreSQL and SQLite (>= 3.24 for ON CONFLICT upserts)
SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS geo_area (
        geo_id TEXT PRIMARY KEY,
        geo_type TEXT NOT NULL,
        name TEXT NOT NULL,
        state_fips TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS metric_series (
        code TEXT PRIMARY KEY,
        unit TEXT,
        freq TEXT,
        source TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS metric_obs (
        series_code TEXT NOT NULL REFERENCES metric_series(code),
        geo_id TEXT NOT NULL,
        period INTEGER NOT NULL,
        value DOUBLE PRECISION,
        PRIMARY KEY (series_code, geo_id, period)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS snapshot_cache (
        geo_id TEXT NOT NULL,
        asof DATE NOT NULL,
        income_per_capita DOUBLE PRECISION,
        hh_income_median DOUBLE PRECISION,
        age_median DOUBLE PRECISION,
        net_migration_1834 DOUBLE PRECISION,
        emp_growth_5y DOUBLE PRECISION,
        top_growing TEXT,
        top_declining TEXT,
        proj10 TEXT,
        migration_signal TEXT,
        PRIMARY KEY (geo_id, asof)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS snapshot_refresh_log (
        job_name TEXT NOT NULL,
        refresh_date TIMESTAMP NOT NULL,
        status TEXT NOT NULL,
        records_processed INTEGER,
        records_inserted INTEGER,
        error_message TEXT,
        metadata TEXT
    )
    """,
]


@contextmanager
def session_scope(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    """
    Commit on success, roll back and re-raise on error, always close.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        db.close()


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db() as db:
            db.execute(...)
    """
    with session_scope(SessionLocal) as db:
        yield db


def test_connection() -> bool:
    """
    Test database connectivity.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        with get_db() as db:
            result = db.execute(text("SELECT 1"))
            assert result.scalar() == 1
            logger.info("Database connection successful")
            return True

    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


def init_db(bind: Optional[Engine] = None):
    """
    Create tables if they do not exist.
    Safe to run on every deployment.
    """
    bind = bind or engine
    logger.info("Initializing database schema...")

    with bind.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))

    logger.info("Database schema initialized")


def log_refresh(
    job_name: str,
    status: str,
    records_processed: int = 0,
    records_inserted: int = 0,
    error_message: str = None,
    metadata: dict = None,
    session_factory: Optional[Callable[[], Session]] = None,
):
    """
    Log a batch run to snapshot_refresh_log.

    Args:
        job_name: Job identifier (e.g., 'snapshot_builder')
        status: One of 'success', 'partial', 'failed'
        records_processed: Geographies processed
        records_inserted: Snapshots upserted
        error_message: Error description if status != 'success'
        metadata: Additional JSON metadata
    """
    try:
        with session_scope(session_factory or SessionLocal) as db:
            db.execute(
                text(
                    """
                    INSERT INTO snapshot_refresh_log (
                        job_name, refresh_date, status,
                        records_processed, records_inserted,
                        error_message, metadata
                    ) VALUES (
                        :job_name, :refresh_date, :status,
                        :records_processed, :records_inserted,
                        :error_message, :metadata
                    )
                """
                ),
                {
                    "job_name": job_name,
                    "refresh_date": datetime.utcnow().isoformat(sep=" "),
                    "status": status,
                    "records_processed": records_processed,
                    "records_inserted": records_inserted,
                    "error_message": error_message,
                    "metadata": json.dumps(metadata) if metadata else None,
                },
            )

            logger.info(
                f"Logged refresh: {job_name} - "
                f"Status: {status}, Processed: {records_processed}"
            )

    except Exception as e:
        logger.error(f"Failed to log refresh: {e}")
        # Don't raise - logging failure shouldn't break the batch


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if test_connection():
        print("✅ Database connection successful")
    else:
        print("❌ Database connection failed")
