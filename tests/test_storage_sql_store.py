from datetime import date

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config.database import log_refresh
from config.settings import METRIC_SERIES
from src.analytics.types import TimeSeriesPoint
from src.processing.snapshot_builder import SnapshotMetrics, build_snapshots, neutral_projection
from src.storage.sql_store import SqlSnapshotStore
from tests.fakes import series

ASOF = date(2024, 6, 30)


@pytest.fixture
def store(sqlite_session_factory, sample_observations):
    store = SqlSnapshotStore(sqlite_session_factory)
    for code, (unit, freq, source) in METRIC_SERIES.items():
        store.register_metric_series(code, unit, freq, source)
    store.register_geo_area("county:21111", "county", "Jefferson County, KY", "21")
    store.register_geo_area("zip:40211", "zip", "Louisville, KY 40211", "21")
    for code, points in sample_observations.items():
        store.write_observations("county:21111", code, points)
    store.write_observations("zip:40211", "hh_income_median", series([41000], start=2024))
    return store


def make_snapshot(**overrides):
    values = dict(
        geo_id="county:21111",
        asof=ASOF,
        income_per_capita=34000.0,
        hh_income_median=58000.0,
        age_median=37.8,
        net_migration_1834=80.0,
        emp_growth_5y=0.021,
        top_growing=[{"code": "62", "name": "Health Care", "cagr": 0.037}],
        top_declining=[],
        proj10=neutral_projection(),
        migration_signal={"year": 2024, "trend": "stable", "confidence": "low",
                          "rolling_average": 3.5, "description": "Stable young adult population (limited data)"},
    )
    values.update(overrides)
    return SnapshotMetrics(**values)


def test_list_geo_ids(store):
    assert store.list_geo_ids() == ["county:21111", "zip:40211"]


def test_fetch_observations_window(store):
    points = store.fetch_observations("county:21111", "hh_income_median", lookback_years=3, as_of_year=2023)

    assert points == [
        TimeSeriesPoint(2021, 52000.0),
        TimeSeriesPoint(2022, 54000.0),
        TimeSeriesPoint(2023, 56000.0),
    ]


def test_fetch_observations_lookback_counts_years_inclusive_of_anchor(store):
    store.write_observations("county:21111", "total_population", series([776000, 778000], start=2018))

    points = store.fetch_observations("county:21111", "total_population", lookback_years=5, as_of_year=2024)

    assert [p.period for p in points] == [2020, 2021, 2022, 2023, 2024]


def test_fetch_observations_anchors_on_latest_period(store):
    points = store.fetch_observations("county:21111", "age_median", lookback_years=2)

    assert [p.period for p in points] == [2023, 2024]


def test_fetch_observations_unknown_series(store):
    assert store.fetch_observations("county:21111", "not_a_metric", lookback_years=5, as_of_year=2024) == []


def test_fetch_observations_no_data_for_geo(store):
    assert store.fetch_observations("zip:40211", "age_median", lookback_years=5) == []


def test_write_observations_overwrites_period(store):
    store.write_observations("county:21111", "hh_income_median", [TimeSeriesPoint(2024, 60000.0)])

    points = store.fetch_observations("county:21111", "hh_income_median", lookback_years=1, as_of_year=2024)
    assert points == [TimeSeriesPoint(2024, 60000.0)]


def test_upsert_and_read_back(store):
    snapshot = make_snapshot()

    assert store.upsert_snapshot(snapshot) is True
    assert store.get_snapshot("county:21111", ASOF) == snapshot


def test_upsert_replaces_existing_record(store):
    store.upsert_snapshot(make_snapshot())
    store.upsert_snapshot(make_snapshot(hh_income_median=61000.0, proj10={"age_median": None}))

    stored = store.get_snapshot("county:21111", ASOF)
    assert stored.hh_income_median == 61000.0
    assert stored.proj10 == {"age_median": None}

    with store.session_factory() as db:
        count = db.execute(text("SELECT COUNT(*) FROM snapshot_cache")).scalar()
    assert count == 1


def test_get_snapshot_missing(store):
    assert store.get_snapshot("county:21111", date(1999, 1, 1)) is None


def test_upsert_failure_returns_false():
    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    # No schema applied
    store = SqlSnapshotStore(sessionmaker(bind=engine))

    assert store.upsert_snapshot(make_snapshot()) is False


def test_build_snapshots_twice_is_idempotent(store):
    first_summary = build_snapshots(store, store, ASOF)
    first = store.get_snapshot("county:21111", ASOF)

    second_summary = build_snapshots(store, store, ASOF)
    second = store.get_snapshot("county:21111", ASOF)

    assert first_summary.built == second_summary.built == ["county:21111", "zip:40211"]
    assert first == second
    assert first.proj10["hh_income_idx"] == pytest.approx(1.56)
    assert store.get_snapshot("zip:40211", ASOF).proj10 == neutral_projection()


def test_log_refresh_writes_row(sqlite_session_factory):
    log_refresh(
        job_name="snapshot_builder",
        status="success",
        records_processed=2,
        records_inserted=2,
        metadata={"asof": "2024-06-30"},
        session_factory=sqlite_session_factory,
    )

    with sqlite_session_factory() as db:
        row = db.execute(text("SELECT job_name, status, records_inserted, metadata FROM snapshot_refresh_log")).one()

    assert row[0] == "snapshot_builder"
    assert row[1] == "success"
    assert row[2] == 2
    assert '"asof"' in row[3]
