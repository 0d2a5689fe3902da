"""
Neighborhood Intel - Analytics Value Types

Inputs are immutable observation points; results are transient values that
the snapshot builder folds into a SnapshotMetrics record.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List


class GrowthTrend(str, Enum):
    """CAGR classification"""
    GROWING = "growing"
    DECLINING = "declining"
    STABLE = "stable"


class MigrationTrend(str, Enum):
    """Direction of the 3-year rolling average versus the prior window"""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class SignalConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class TimeSeriesPoint:
    """One observation of a metric: period is a year."""
    period: int
    value: float


@dataclass(frozen=True)
class CAGRResult:
    cagr: float
    years: int
    start_value: float
    end_value: float


@dataclass(frozen=True)
class MigrationDataPoint:
    year: int
    net_migration_1834: float


@dataclass(frozen=True)
class MigrationSignal:
    net_migration: float
    rolling_average: float
    trend: MigrationTrend
    confidence: SignalConfidence


@dataclass
class ProjectionResult:
    """
    Output of the exponential-smoothing forecaster.

    confidence_bands holds 'lower' and 'upper' lists with the same length
    as forecast. mape is a percentage over the fitted history.
    """
    forecast: List[float]
    confidence_bands: Dict[str, List[float]]
    mape: float

    @property
    def lower(self) -> List[float]:
        return self.confidence_bands["lower"]

    @property
    def upper(self) -> List[float]:
        return self.confidence_bands["upper"]
