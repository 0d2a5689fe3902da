"""
Neighborhood Intel - Snapshot Builder
Aggregates observation history into one cached KPI record per geography

For each geography and as-of date:
- Level: latest observed value of each metric in the lookback window
- Projections: 10-year income, population and median-age forecasts
- Migration: 18-34 net migration signal (rolling average, trend, confidence)
- Employment: top growing/declining industries from the employment source

Failure policy:
- One sub-metric projection failing falls back to neutral values
  (index 1.0, age None) without touching the other fields
- One geography failing is logged and skipped; the batch continues

Storage is reached only through ObservationReader / SnapshotWriter.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence

import pandas as pd

from config.settings import get_settings
from src.analytics.holt_winters import ForecastError, holt_winters_forecast
from src.analytics.migration_signal import (
    analyze_migration_signal,
    generate_migration_description,
    migration_points_from_series,
)
from src.analytics.types import TimeSeriesPoint
from src.ingest.employment_trends import EmploymentTrends, EmploymentTrendSource
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

HH_INCOME_MEDIAN = "hh_income_median"
INCOME_PER_CAPITA = "income_per_capita"
AGE_MEDIAN = "age_median"
NET_MIGRATION_18_34 = "net_migration_18_34"
TOTAL_POPULATION = "total_population"

SNAPSHOT_METRIC_CODES = [
    HH_INCOME_MEDIAN,
    INCOME_PER_CAPITA,
    AGE_MEDIAN,
    NET_MIGRATION_18_34,
    TOTAL_POPULATION,
]

NEUTRAL_INDEX = 1.0


@dataclass
class SnapshotMetrics:
    """Denormalized KPI record, unique per (geo_id, asof)."""
    geo_id: str
    asof: date
    income_per_capita: Optional[float] = None
    hh_income_median: Optional[float] = None
    age_median: Optional[float] = None
    net_migration_1834: Optional[float] = None
    emp_growth_5y: Optional[float] = None
    top_growing: List[Dict] = field(default_factory=list)
    top_declining: List[Dict] = field(default_factory=list)
    proj10: Dict = field(default_factory=dict)
    migration_signal: Optional[Dict] = None

    def to_record(self) -> Dict:
        return asdict(self)


@dataclass
class BuildSummary:
    asof: date
    processed: int = 0
    built: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.failed and not self.built:
            return "failed"
        if self.failed:
            return "partial"
        return "success"


class ObservationReader(ABC):
    """Read side of the time-series store."""

    @abstractmethod
    def list_geo_ids(self) -> List[str]:
        pass

    @abstractmethod
    def fetch_observations(
        self,
        geo_id: str,
        metric_code: str,
        lookback_years: int,
        as_of_year: Optional[int] = None
    ) -> List[TimeSeriesPoint]:
        """
        At most lookback_years annual observations ending at anchor, ascending
        (anchor - lookback_years < period <= anchor).

        anchor is as_of_year, or the latest stored period when omitted.
        Unknown metric codes yield an empty list.
        """
        pass


class SnapshotWriter(ABC):
    """Write side: snapshot upsert keyed by (geo_id, asof)."""

    @abstractmethod
    def upsert_snapshot(self, snapshot: SnapshotMetrics) -> bool:
        pass

    @abstractmethod
    def get_snapshot(self, geo_id: str, asof: date) -> Optional[SnapshotMetrics]:
        pass


def neutral_projection() -> Dict:
    return {
        "population_idx": NEUTRAL_INDEX,
        "hh_income_idx": NEUTRAL_INDEX,
        "age_median": None,
        "p25": {"hh_income_idx": NEUTRAL_INDEX},
        "p75": {"hh_income_idx": NEUTRAL_INDEX},
    }


def _base_value(series: Sequence[TimeSeriesPoint]) -> float:
    base = series[0].value if series else 0.0
    if base <= 0:
        raise ForecastError(f"Cannot index against non-positive base value {base}")
    return base


def calculate_projections(
    geo_id: str,
    income: Sequence[TimeSeriesPoint],
    population: Sequence[TimeSeriesPoint],
    age: Sequence[TimeSeriesPoint],
    horizon: Optional[int] = None
) -> Dict:
    """
    Build the 10-year projection sub-record.

    Indices are the final forecast (or band) point divided by the earliest
    observation in the window. Each metric is isolated: a failure leaves that
    metric at its neutral value.
    """
    if horizon is None:
        horizon = settings.PROJECTION_HORIZON_YEARS
    alpha = settings.FORECAST_ALPHA
    beta = settings.FORECAST_BETA
    proj = neutral_projection()

    try:
        result = holt_winters_forecast(income, horizon, alpha, beta)
        base = _base_value(income)
        proj["hh_income_idx"] = result.forecast[-1] / base
        proj["p25"]["hh_income_idx"] = result.lower[-1] / base
        proj["p75"]["hh_income_idx"] = result.upper[-1] / base
    except ForecastError as e:
        logger.warning(f"Income projection failed for {geo_id}: {e}")

    try:
        result = holt_winters_forecast(population, horizon, alpha, beta)
        proj["population_idx"] = result.forecast[-1] / _base_value(population)
    except ForecastError as e:
        logger.warning(f"Population projection failed for {geo_id}: {e}")

    try:
        result = holt_winters_forecast(age, horizon, alpha, beta)
        proj["age_median"] = result.forecast[-1]
    except ForecastError as e:
        logger.warning(f"Age projection failed for {geo_id}: {e}")

    return proj


def _latest_value(series: Sequence[TimeSeriesPoint]) -> Optional[float]:
    return float(series[-1].value) if series else None


def _migration_summary(series: Sequence[TimeSeriesPoint]) -> Optional[Dict]:
    points = migration_points_from_series(series)
    if not points:
        return None

    # Reference the latest observed year; migration estimates lag the calendar
    reference_year = max(p.year for p in points)
    signal = analyze_migration_signal(points, reference_year)

    return {
        "year": reference_year,
        "rolling_average": signal.rolling_average,
        "trend": signal.trend.value,
        "confidence": signal.confidence.value,
        "description": generate_migration_description(signal),
    }


def _employment_trends(
    geo_id: str,
    employment: Optional[EmploymentTrendSource],
    lookback_years: int,
    as_of_year: int
) -> EmploymentTrends:
    if employment is None:
        return EmploymentTrends()
    try:
        return employment.get_employment_trends(geo_id, lookback_years, as_of_year)
    except Exception as e:
        logger.warning(f"Employment trends unavailable for {geo_id}: {e}")
        return EmploymentTrends()


def build_snapshot_for_geo(
    geo_id: str,
    asof: date,
    reader: ObservationReader,
    employment: Optional[EmploymentTrendSource] = None,
    lookback_years: Optional[int] = None,
    horizon: Optional[int] = None
) -> SnapshotMetrics:
    """
    Build the snapshot for a single geography.

    Args:
        geo_id: Geography identifier
        asof: Snapshot date; its year anchors the lookback window
        reader: Observation source
        employment: Industry trend source (None = no employment data)
        lookback_years: History window (default from settings)
        horizon: Projection horizon (default from settings)

    Returns:
        SnapshotMetrics
    """
    if lookback_years is None:
        lookback_years = settings.SNAPSHOT_LOOKBACK_YEARS
    as_of_year = asof.year

    series = {
        code: sorted(
            reader.fetch_observations(geo_id, code, lookback_years, as_of_year=as_of_year),
            key=lambda p: p.period
        )
        for code in SNAPSHOT_METRIC_CODES
    }

    projections = calculate_projections(
        geo_id,
        income=series[HH_INCOME_MEDIAN],
        population=series[TOTAL_POPULATION],
        age=series[AGE_MEDIAN],
        horizon=horizon
    )

    trends = _employment_trends(geo_id, employment, lookback_years, as_of_year)

    return SnapshotMetrics(
        geo_id=geo_id,
        asof=asof,
        income_per_capita=_latest_value(series[INCOME_PER_CAPITA]),
        hh_income_median=_latest_value(series[HH_INCOME_MEDIAN]),
        age_median=_latest_value(series[AGE_MEDIAN]),
        net_migration_1834=_latest_value(series[NET_MIGRATION_18_34]),
        emp_growth_5y=trends.total_growth,
        top_growing=list(trends.top_growing),
        top_declining=list(trends.top_declining),
        proj10=projections,
        migration_signal=_migration_summary(series[NET_MIGRATION_18_34])
    )


def build_snapshots(
    reader: ObservationReader,
    writer: SnapshotWriter,
    asof: date,
    geo_ids: Optional[List[str]] = None,
    employment: Optional[EmploymentTrendSource] = None,
    force_rebuild: bool = True,
    lookback_years: Optional[int] = None,
    horizon: Optional[int] = None
) -> BuildSummary:
    """
    Build and upsert snapshots for many geographies, sequentially.

    Args:
        reader: Observation source
        writer: Snapshot sink
        asof: Snapshot date
        geo_ids: Restrict to these geographies (default: all known)
        employment: Industry trend source
        force_rebuild: When False, skip geographies that already have a
            snapshot for asof
        lookback_years: History window
        horizon: Projection horizon

    Returns:
        BuildSummary
    """
    logger.info("=" * 70)
    logger.info(f"SNAPSHOT BUILD for {asof.isoformat()}")
    logger.info("=" * 70)

    known = reader.list_geo_ids()
    if geo_ids:
        unknown = [g for g in geo_ids if g not in known]
        if unknown:
            logger.warning(f"Ignoring unknown geographies: {', '.join(unknown)}")
        targets = [g for g in geo_ids if g in known]
    else:
        targets = known

    logger.info(f"Processing {len(targets)} geographic areas")

    summary = BuildSummary(asof=asof)
    migration_trends = []

    for geo_id in targets:
        summary.processed += 1
        try:
            if not force_rebuild and writer.get_snapshot(geo_id, asof) is not None:
                logger.info(f"Snapshot exists for {geo_id}, skipping")
                summary.skipped.append(geo_id)
                continue

            snapshot = build_snapshot_for_geo(
                geo_id,
                asof,
                reader,
                employment=employment,
                lookback_years=lookback_years,
                horizon=horizon
            )

            if not writer.upsert_snapshot(snapshot):
                logger.error(f"✗ Failed to store snapshot for {geo_id}")
                summary.failed.append(geo_id)
                continue

            summary.built.append(geo_id)
            if snapshot.migration_signal:
                migration_trends.append(snapshot.migration_signal["trend"])
            logger.info(f"✓ Built snapshot for {geo_id}")

        except Exception as e:
            logger.error(f"✗ Failed to build snapshot for {geo_id}: {e}", exc_info=True)
            summary.failed.append(geo_id)
            continue

    logger.info(
        f"Snapshot building completed: {len(summary.built)} built, "
        f"{len(summary.skipped)} skipped, {len(summary.failed)} failed"
    )

    if migration_trends:
        logger.info("Migration trend distribution:")
        for trend, count in pd.Series(migration_trends).value_counts().items():
            logger.info(f"  {trend}: {count} areas")

    return summary
