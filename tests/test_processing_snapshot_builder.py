from datetime import date

import pytest

import src.processing.snapshot_builder as sb
from src.ingest.employment_trends import EmploymentTrends, StaticEmploymentTrendSource
from tests.fakes import InMemoryObservationStore, series

ASOF = date(2024, 6, 30)


class BrokenReader(InMemoryObservationStore):
    """Raises for one geography to exercise batch isolation."""

    def __init__(self, observations, broken_geo):
        super().__init__(observations)
        self.broken_geo = broken_geo

    def fetch_observations(self, geo_id, metric_code, lookback_years, as_of_year=None):
        if geo_id == self.broken_geo:
            raise RuntimeError("time-series store unavailable")
        return super().fetch_observations(geo_id, metric_code, lookback_years, as_of_year)


class ExplodingEmploymentSource(sb.EmploymentTrendSource):
    def get_employment_trends(self, geo_id, lookback_years, as_of_year):
        raise RuntimeError("QCEW outage")


class TestCalculateProjections:
    def test_indices_relative_to_earliest_observation(self):
        proj = sb.calculate_projections(
            "county:21111",
            income=series([50000, 52000, 54000, 56000, 58000]),
            population=series([100000, 101000, 102000]),
            age=series([37.0, 37.5, 38.0]),
            horizon=10,
        )

        # Linear income: 58000 + 10 * 2000 = 78000
        assert proj["hh_income_idx"] == pytest.approx(78000 / 50000)
        assert proj["p25"]["hh_income_idx"] == pytest.approx(78000 / 50000)
        assert proj["p75"]["hh_income_idx"] == pytest.approx(78000 / 50000)
        assert proj["population_idx"] == pytest.approx(112000 / 100000)
        assert proj["age_median"] == pytest.approx(43.0)

    def test_sub_metric_failures_fall_back_independently(self):
        proj = sb.calculate_projections(
            "zip:40211",
            income=series([41000]),
            population=[],
            age=series([34.0, 34.4]),
            horizon=10,
        )

        assert proj["hh_income_idx"] == 1.0
        assert proj["p25"] == {"hh_income_idx": 1.0}
        assert proj["p75"] == {"hh_income_idx": 1.0}
        assert proj["population_idx"] == 1.0
        assert proj["age_median"] == pytest.approx(34.4 + 10 * 0.4)

    def test_everything_missing_is_neutral(self):
        proj = sb.calculate_projections("zip:00000", income=[], population=[], age=[])
        assert proj == sb.neutral_projection()

    def test_non_positive_base_is_neutral(self):
        proj = sb.calculate_projections(
            "county:1",
            income=series([-5, 10, 20]),
            population=[],
            age=[],
        )
        assert proj["hh_income_idx"] == 1.0

    def test_explicit_zero_horizon_is_not_replaced_by_default(self):
        proj = sb.calculate_projections(
            "county:21111",
            income=series([50000, 52000, 54000]),
            population=series([100000, 101000]),
            age=series([37.0, 37.5]),
            horizon=0,
        )

        # A zero horizon cannot be forecast, so every metric stays neutral
        assert proj == sb.neutral_projection()

    def test_neutral_projection_is_a_fresh_copy(self):
        first = sb.neutral_projection()
        first["p25"]["hh_income_idx"] = 9.9
        assert sb.neutral_projection()["p25"]["hh_income_idx"] == 1.0


class TestBuildSnapshotForGeo:
    def test_full_history(self, memory_store):
        snapshot = sb.build_snapshot_for_geo("county:21111", ASOF, memory_store)

        assert snapshot.geo_id == "county:21111"
        assert snapshot.asof == ASOF
        assert snapshot.hh_income_median == 58000
        assert snapshot.income_per_capita == 34000
        assert snapshot.age_median == pytest.approx(37.8)
        assert snapshot.net_migration_1834 == 80
        assert snapshot.emp_growth_5y is None
        assert snapshot.top_growing == []
        assert snapshot.proj10["hh_income_idx"] == pytest.approx(1.56)
        assert snapshot.proj10["population_idx"] == pytest.approx(808000 / 780000)
        assert snapshot.proj10["age_median"] == pytest.approx(39.8)

        signal = snapshot.migration_signal
        assert signal["year"] == 2024
        assert signal["rolling_average"] == pytest.approx(60)
        assert signal["trend"] == "increasing"
        assert signal["confidence"] == "high"
        assert signal["description"] == "Significant influx of young adults (trending upward)"

    def test_insufficient_history_uses_fallbacks(self, memory_store):
        snapshot = sb.build_snapshot_for_geo("zip:40211", ASOF, memory_store)

        assert snapshot.hh_income_median == 41000
        assert snapshot.income_per_capita is None
        assert snapshot.net_migration_1834 is None
        assert snapshot.migration_signal is None
        assert snapshot.proj10 == sb.neutral_projection()

    def test_lookback_window_anchored_on_asof_year(self, memory_store):
        snapshot = sb.build_snapshot_for_geo("county:21111", date(2022, 1, 1), memory_store, lookback_years=2)

        # 2021-2022 only
        assert snapshot.hh_income_median == 54000
        assert snapshot.net_migration_1834 == 40

    def test_five_year_lookback_keeps_five_annual_points(self):
        store = InMemoryObservationStore({
            "county:21111": {
                "hh_income_median": series([46000, 48000, 50000, 52000, 54000, 56000, 58000], start=2018),
            },
        })

        points = store.fetch_observations("county:21111", "hh_income_median", 5, as_of_year=2024)
        snapshot = sb.build_snapshot_for_geo("county:21111", ASOF, store, lookback_years=5)

        assert [p.period for p in points] == [2020, 2021, 2022, 2023, 2024]
        # Index base is the 2020 value, not 2019
        assert snapshot.proj10["hh_income_idx"] == pytest.approx(78000 / 50000)

    def test_explicit_zero_lookback_reads_nothing(self, memory_store):
        snapshot = sb.build_snapshot_for_geo("county:21111", ASOF, memory_store, lookback_years=0)

        assert snapshot.hh_income_median is None
        assert snapshot.migration_signal is None
        assert snapshot.proj10 == sb.neutral_projection()

    def test_employment_trends_folded_in_unchanged(self, memory_store):
        trends = EmploymentTrends(
            total_growth=0.021,
            top_growing=[{"code": "62", "name": "Health Care", "cagr": 0.037}],
            top_declining=[{"code": "31-33", "name": "Manufacturing", "cagr": -0.015}],
        )

        snapshot = sb.build_snapshot_for_geo(
            "county:21111", ASOF, memory_store, employment=StaticEmploymentTrendSource(trends)
        )

        assert snapshot.emp_growth_5y == 0.021
        assert snapshot.top_growing == trends.top_growing
        assert snapshot.top_declining == trends.top_declining

    def test_employment_failure_keeps_other_fields(self, memory_store):
        snapshot = sb.build_snapshot_for_geo(
            "county:21111", ASOF, memory_store, employment=ExplodingEmploymentSource()
        )

        assert snapshot.emp_growth_5y is None
        assert snapshot.top_growing == []
        assert snapshot.hh_income_median == 58000

    def test_unordered_reader_output_is_sorted(self, sample_observations):
        shuffled = {code: list(reversed(points)) for code, points in sample_observations.items()}
        store = InMemoryObservationStore({"county:21111": shuffled})

        snapshot = sb.build_snapshot_for_geo("county:21111", ASOF, store)

        assert snapshot.hh_income_median == 58000
        assert snapshot.proj10["hh_income_idx"] == pytest.approx(1.56)


class TestBuildSnapshots:
    def test_builds_every_known_geography(self, memory_store):
        summary = sb.build_snapshots(memory_store, memory_store, ASOF)

        assert summary.built == ["county:21111", "zip:40211"]
        assert summary.failed == []
        assert summary.status == "success"
        assert memory_store.get_snapshot("zip:40211", ASOF).proj10 == sb.neutral_projection()

    def test_rerun_is_idempotent(self, memory_store):
        sb.build_snapshots(memory_store, memory_store, ASOF)
        first = memory_store.get_snapshot("county:21111", ASOF)

        sb.build_snapshots(memory_store, memory_store, ASOF)
        second = memory_store.get_snapshot("county:21111", ASOF)

        assert first == second
        assert memory_store.upserts == 4
        assert len(memory_store.snapshots) == 2

    def test_one_failing_geography_does_not_abort_batch(self, sample_observations):
        reader = BrokenReader(
            {
                "county:21111": sample_observations,
                "place:2146000": sample_observations,
                "zip:40211": {"hh_income_median": series([41000], start=2024)},
            },
            broken_geo="place:2146000",
        )

        summary = sb.build_snapshots(reader, reader, ASOF)

        assert summary.failed == ["place:2146000"]
        assert summary.built == ["county:21111", "zip:40211"]
        assert summary.status == "partial"
        assert reader.get_snapshot("place:2146000", ASOF) is None
        # Unaffected geography matches a standalone build
        expected = sb.build_snapshot_for_geo("county:21111", ASOF, InMemoryObservationStore({"county:21111": sample_observations}))
        assert reader.get_snapshot("county:21111", ASOF) == expected

    def test_restricts_to_requested_known_geographies(self, memory_store):
        summary = sb.build_snapshots(memory_store, memory_store, ASOF, geo_ids=["zip:40211", "zip:99999"])

        assert summary.processed == 1
        assert summary.built == ["zip:40211"]

    def test_existing_snapshots_skipped_without_force(self, memory_store):
        sb.build_snapshots(memory_store, memory_store, ASOF)

        summary = sb.build_snapshots(memory_store, memory_store, ASOF, force_rebuild=False)

        assert summary.skipped == ["county:21111", "zip:40211"]
        assert summary.built == []
        assert memory_store.upserts == 2

    def test_writer_rejection_counts_as_failure(self, memory_store):
        memory_store.fail_upsert_for = {"county:21111"}

        summary = sb.build_snapshots(memory_store, memory_store, ASOF)

        assert summary.failed == ["county:21111"]
        assert summary.built == ["zip:40211"]

    def test_all_failed_status(self, memory_store):
        memory_store.fail_upsert_for = {"county:21111", "zip:40211"}

        summary = sb.build_snapshots(memory_store, memory_store, ASOF)

        assert summary.status == "failed"
