"""
Neighborhood Intel - Exponential Smoothing Projections

Double exponential smoothing (level + trend, no seasonal component) for
10-year population, income and median-age projections. Annual demographic
data has no intra-year cycle, so the seasonal term is omitted.

Confidence bands are a proportional MAPE band around the forecast, not a
statistical prediction interval. Display code depends on that shape.
"""

from typing import Dict, Optional, Sequence

import numpy as np

from src.analytics.types import ProjectionResult, TimeSeriesPoint
from src.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PERIODS = 10
DEFAULT_ALPHA = 0.3
DEFAULT_BETA = 0.1
MIN_POINTS = 2


class ForecastError(ValueError):
    """Raised when a series cannot be forecast"""
    pass


class InsufficientDataError(ForecastError):
    """Raised when fewer than MIN_POINTS observations are supplied"""
    pass


def holt_winters_forecast(
    data: Sequence[TimeSeriesPoint],
    periods: int = DEFAULT_PERIODS,
    alpha: float = DEFAULT_ALPHA,
    beta: float = DEFAULT_BETA
) -> ProjectionResult:
    """
    Forecast a chronologically ordered series.

    Args:
        data: Observations ordered by period (at least 2)
        periods: Forecast horizon
        alpha: Level smoothing parameter (0-1)
        beta: Trend smoothing parameter (0-1)

    Returns:
        ProjectionResult with forecast, confidence bands and MAPE

    Raises:
        InsufficientDataError: fewer than 2 observations
        ForecastError: invalid parameters, or a zero actual value makes MAPE undefined
    """
    if len(data) < MIN_POINTS:
        raise InsufficientDataError(
            f"Need at least {MIN_POINTS} data points for forecasting, got {len(data)}"
        )
    if not (0.0 <= alpha <= 1.0) or not (0.0 <= beta <= 1.0):
        raise ForecastError(f"Smoothing parameters must be in [0, 1] (alpha={alpha}, beta={beta})")
    if periods < 1:
        raise ForecastError(f"Forecast horizon must be positive, got {periods}")

    values = np.array([point.value for point in data], dtype=float)
    n = len(values)

    level = values[0]
    trend = values[1] - values[0]

    smoothed = np.empty(n)
    smoothed[0] = level
    for i in range(1, n):
        prev_level = level
        level = alpha * values[i] + (1 - alpha) * (level + trend)
        trend = beta * (level - prev_level) + (1 - beta) * trend
        smoothed[i] = level

    steps = np.arange(1, periods + 1)
    forecast = level + steps * trend

    # MAPE over the fitted history; the seed point has nothing to compare against
    actuals = values[1:]
    if np.any(actuals == 0):
        raise ForecastError("MAPE is undefined for a series containing zero values")
    errors = np.abs((actuals - smoothed[1:]) / actuals) * 100
    mape = float(np.mean(errors))

    return ProjectionResult(
        forecast=forecast.tolist(),
        confidence_bands={
            "lower": (forecast * (1 - mape / 100)).tolist(),
            "upper": (forecast * (1 + mape / 100)).tolist(),
        },
        mape=mape
    )


def generate_projections(
    income_data: Sequence[TimeSeriesPoint],
    population_data: Sequence[TimeSeriesPoint],
    age_data: Sequence[TimeSeriesPoint],
    periods: int = DEFAULT_PERIODS
) -> Dict[str, Optional[ProjectionResult]]:
    """
    Generate 10-year projections for key metrics.

    Each series is forecast independently; a series that cannot be forecast
    maps to None without affecting the others.
    """
    series = {
        "income": income_data,
        "population": population_data,
        "age": age_data,
    }

    projections: Dict[str, Optional[ProjectionResult]] = {}
    for name, points in series.items():
        try:
            projections[name] = holt_winters_forecast(points, periods)
        except ForecastError as e:
            logger.warning(f"Projection skipped for {name}: {e}")
            projections[name] = None

    return projections


def format_projection_for_api(result: ProjectionResult) -> Dict:
    """
    Repackage the final forecast and band points into named indices.

    Pure reshaping: the final forecast value is reported under each index
    name, the final lower/upper band points under p25/p75.
    """
    final_forecast = result.forecast[-1]
    final_lower = result.lower[-1]
    final_upper = result.upper[-1]

    return {
        "population_idx": final_forecast,
        "hh_income_idx": final_forecast,
        "age_median": final_forecast,
        "p25": {"hh_income_idx": final_lower},
        "p75": {"hh_income_idx": final_upper},
    }
