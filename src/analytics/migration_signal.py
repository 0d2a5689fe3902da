"""
Neighborhood Intel - Migration Signal Analysis
Focus on 18-34 age cohort net migration patterns

Signal components:
- Rolling average: 3-year trailing mean ending at the reference year
- Trend: rolling average vs. the window ending 3 years earlier
- Confidence: data availability in a 5-year lookback and size of the change

The reference year is always passed in; callers decide what "now" is.
"""

from typing import Iterable, List, Sequence

from src.analytics.types import (
    MigrationDataPoint,
    MigrationSignal,
    MigrationTrend,
    SignalConfidence,
    TimeSeriesPoint,
)

ROLLING_WINDOW_YEARS = 3
TREND_THRESHOLD = 10  # people, absolute
HIGH_CONFIDENCE_CHANGE = 20
CONFIDENCE_LOOKBACK_YEARS = 4  # counts points with year >= reference - 4

SIGNIFICANT_FLOW = 50
MODERATE_FLOW = 10


def migration_points_from_series(series: Iterable[TimeSeriesPoint]) -> List[MigrationDataPoint]:
    """Convert net_migration_18_34 observations into migration data points."""
    return [
        MigrationDataPoint(year=int(point.period), net_migration_1834=float(point.value))
        for point in series
    ]


def calculate_rolling_average(data: Sequence[MigrationDataPoint], year: int) -> float:
    """
    Calculate 3-year rolling average of net migration ending at `year`.

    Returns 0.0 when no points fall in [year - 2, year].
    """
    window_start = year - (ROLLING_WINDOW_YEARS - 1)
    recent = [d.net_migration_1834 for d in data if window_start <= d.year <= year]

    if not recent:
        return 0.0

    return sum(recent) / len(recent)


def analyze_migration_signal(data: Sequence[MigrationDataPoint], year: int) -> MigrationSignal:
    """
    Analyze migration signal strength and trend.

    Args:
        data: Migration points for one geography (any order)
        year: Reference year

    Returns:
        MigrationSignal
    """
    current = next((d for d in data if d.year == year), None)

    recent_average = calculate_rolling_average(data, year)
    previous_average = calculate_rolling_average(data, year - ROLLING_WINDOW_YEARS)

    if recent_average > previous_average + TREND_THRESHOLD:
        trend = MigrationTrend.INCREASING
    elif recent_average < previous_average - TREND_THRESHOLD:
        trend = MigrationTrend.DECREASING
    else:
        trend = MigrationTrend.STABLE

    data_points = sum(1 for d in data if d.year >= year - CONFIDENCE_LOOKBACK_YEARS)

    if data_points >= 4 and abs(recent_average - previous_average) > HIGH_CONFIDENCE_CHANGE:
        confidence = SignalConfidence.HIGH
    elif data_points >= 3:
        confidence = SignalConfidence.MEDIUM
    else:
        confidence = SignalConfidence.LOW

    return MigrationSignal(
        net_migration=current.net_migration_1834 if current is not None else 0,
        rolling_average=recent_average,
        trend=trend,
        confidence=confidence
    )


def generate_migration_description(signal: MigrationSignal) -> str:
    """Human-readable sentence for a migration signal."""
    rolling_average = signal.rolling_average

    if rolling_average > SIGNIFICANT_FLOW:
        description = "Significant influx of young adults"
    elif rolling_average > MODERATE_FLOW:
        description = "Moderate influx of young adults"
    elif rolling_average < -SIGNIFICANT_FLOW:
        description = "Significant outflow of young adults"
    elif rolling_average < -MODERATE_FLOW:
        description = "Moderate outflow of young adults"
    else:
        description = "Stable young adult population"

    if signal.trend == MigrationTrend.INCREASING:
        description += " (trending upward)"
    elif signal.trend == MigrationTrend.DECREASING:
        description += " (trending downward)"

    if signal.confidence == SignalConfidence.LOW:
        description += " (limited data)"

    return description
