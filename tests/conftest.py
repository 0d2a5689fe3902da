"""
Pytest configuration and shared fixtures for Neighborhood Intel tests.
"""

from typing import Dict, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config.database import init_db
from src.analytics.types import TimeSeriesPoint
from tests.fakes import InMemoryObservationStore, series


# Sample geographies for testing
SAMPLE_GEO_IDS = [
    "county:21111",  # Jefferson County, KY
    "place:2146000",  # Louisville, KY
    "zip:40211",
]


@pytest.fixture
def sample_geo_ids() -> list:
    return SAMPLE_GEO_IDS


@pytest.fixture
def sample_observations() -> Dict[str, List[TimeSeriesPoint]]:
    """Five years (2020-2024) of every snapshot metric for one county."""
    return {
        "hh_income_median": series([50000, 52000, 54000, 56000, 58000], start=2020),
        "income_per_capita": series([30000, 31000, 32000, 33000, 34000], start=2020),
        "age_median": series([37.0, 37.2, 37.4, 37.6, 37.8], start=2020),
        "net_migration_18_34": series([5, 10, 40, 60, 80], start=2020),
        "total_population": series([780000, 782000, 784000, 786000, 788000], start=2020),
    }


@pytest.fixture
def memory_store(sample_observations) -> InMemoryObservationStore:
    return InMemoryObservationStore({
        "county:21111": sample_observations,
        "zip:40211": {
            # One income point cannot be forecast
            "hh_income_median": series([41000], start=2024),
            "age_median": series([34.0], start=2024),
        },
    })


@pytest.fixture
def sqlite_session_factory():
    """In-memory SQLite shared across sessions, schema applied."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
