"""
Neighborhood Intel - Compound Annual Growth Rate utilities

Degenerate inputs (non-positive values or elapsed years) yield a CAGR of 0
rather than an error, so aggregation code never branches on them.
"""

from src.analytics.types import CAGRResult, GrowthTrend

GROWTH_THRESHOLD = 0.02  # 2% annual
DECLINE_THRESHOLD = -0.02


def calculate_cagr(start_value: float, end_value: float, years: float) -> float:
    """
    Calculate Compound Annual Growth Rate.

    Args:
        start_value: Starting value
        end_value: Ending value
        years: Elapsed years

    Returns:
        CAGR as a decimal (e.g., 0.05 for 5% growth), 0.0 for degenerate input
    """
    if start_value <= 0 or end_value <= 0 or years <= 0:
        return 0.0

    return (end_value / start_value) ** (1 / years) - 1


def calculate_cagr_with_metadata(
    start_value: float,
    end_value: float,
    years: int
) -> CAGRResult:
    """Calculate CAGR and keep the source values for audit/display."""
    return CAGRResult(
        cagr=calculate_cagr(start_value, end_value, years),
        years=years,
        start_value=start_value,
        end_value=end_value
    )


def classify_growth_trend(cagr: float) -> GrowthTrend:
    """Classify growth trend based on CAGR."""
    if cagr > GROWTH_THRESHOLD:
        return GrowthTrend.GROWING
    if cagr < DECLINE_THRESHOLD:
        return GrowthTrend.DECLINING
    return GrowthTrend.STABLE


def format_cagr(cagr: float) -> str:
    """Format CAGR as a signed percentage string, e.g. 0.037 -> '+3.7%'."""
    percentage = cagr * 100
    sign = "+" if percentage >= 0 else ""
    return f"{sign}{percentage:.1f}%"
