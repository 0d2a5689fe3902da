"""
Neighborhood Intel - Employment Trends by Industry
Derives top growing/declining NAICS sectors from BLS QCEW employment

Data Sources:
- BLS QCEW annual averages (county, NAICS sector level, private ownership)
- BLS QCEW county totals (all industries, all ownerships)

Method:
- Employment summed per industry per year
- CAGR between the latest year at or before (as_of - 4) and the latest
  year at or before as_of
- Growth classification via the shared 2% CAGR thresholds

The snapshot builder consumes EmploymentTrends through EmploymentTrendSource
and folds it into the snapshot unchanged.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd

from config.settings import NAICS_SECTOR_NAMES, get_settings
from src.analytics.cagr import calculate_cagr, classify_growth_trend
from src.analytics.types import GrowthTrend
from src.utils.data_sources import QCEWFetchError, fetch_bls_qcew_annual
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

TREND_SPAN_YEARS = 4

# QCEW aggregation/ownership codes
AGGLVL_COUNTY_TOTAL = "70"
AGGLVL_COUNTY_SECTOR = "74"
OWN_ALL = "0"
OWN_PRIVATE = "5"
INDUSTRY_TOTAL = "10"


@dataclass
class IndustryTrend:
    naics_code: str
    industry_name: str
    cagr: float
    current_employment: float
    trend: GrowthTrend

    def to_summary(self) -> Dict:
        """Compact form stored on snapshots."""
        return {"code": self.naics_code, "name": self.industry_name, "cagr": self.cagr}


@dataclass
class EmploymentTrends:
    total_growth: Optional[float] = None
    top_growing: List[Dict] = field(default_factory=list)
    top_declining: List[Dict] = field(default_factory=list)


class EmploymentTrendSource(ABC):
    """Supplies industry employment trends for a geography."""

    @abstractmethod
    def get_employment_trends(
        self,
        geo_id: str,
        lookback_years: int,
        as_of_year: int
    ) -> EmploymentTrends:
        """
        Args:
            geo_id: Geography identifier (e.g., 'county:21111')
            lookback_years: Years of history to consider
            as_of_year: Reference year

        Returns:
            EmploymentTrends (empty when the geography has no coverage)
        """
        pass


class StaticEmploymentTrendSource(EmploymentTrendSource):
    """Returns the same trends for every geography."""

    def __init__(self, trends: Optional[EmploymentTrends] = None):
        self.trends = trends or EmploymentTrends()

    def get_employment_trends(self, geo_id: str, lookback_years: int, as_of_year: int) -> EmploymentTrends:
        return self.trends


def _trend_window(years: List[int], current_year: int) -> Optional[Tuple[int, int]]:
    """Start/end years for a CAGR window, or None if either end is missing."""
    start_candidates = [y for y in years if y <= current_year - TREND_SPAN_YEARS]
    end_candidates = [y for y in years if y <= current_year]
    if not start_candidates or not end_candidates:
        return None
    return max(start_candidates), max(end_candidates)


def calculate_industry_trends(df: pd.DataFrame, current_year: int) -> List[IndustryTrend]:
    """
    Calculate industry trends from employment observations.

    Args:
        df: Columns year, naics_code, industry_name, employment
        current_year: Reference year

    Returns:
        IndustryTrend list sorted by CAGR, highest first
    """
    if df.empty:
        return []

    trends = []

    for naics_code, sub in df.groupby("naics_code", sort=True):
        annual = sub.groupby("year")["employment"].sum()
        years = sorted(int(y) for y in annual.index)
        if len(years) < 2:
            continue

        window = _trend_window(years, current_year)
        if window is None:
            continue
        start_year, end_year = window

        start_employment = float(annual.loc[start_year])
        end_employment = float(annual.loc[end_year])
        years_diff = end_year - start_year

        if years_diff > 0 and start_employment > 0:
            cagr = calculate_cagr(start_employment, end_employment, years_diff)
            trends.append(IndustryTrend(
                naics_code=str(naics_code),
                industry_name=str(sub["industry_name"].iloc[0]),
                cagr=cagr,
                current_employment=end_employment,
                trend=classify_growth_trend(cagr)
            ))

    return sorted(trends, key=lambda t: t.cagr, reverse=True)


def get_top_industry_trends(
    trends: List[IndustryTrend],
    top_n: int = 5
) -> Tuple[List[IndustryTrend], List[IndustryTrend]]:
    """
    Top growing (highest CAGR first) and top declining (most negative first).
    """
    growing = [t for t in trends if t.trend == GrowthTrend.GROWING]
    growing.sort(key=lambda t: t.cagr, reverse=True)

    declining = [t for t in trends if t.trend == GrowthTrend.DECLINING]
    declining.sort(key=lambda t: t.cagr)

    return growing[:top_n], declining[:top_n]


def shape_qcew_sectors(df: pd.DataFrame) -> pd.DataFrame:
    """
    Reduce raw QCEW rows to private-ownership county sector employment.

    Returns:
        DataFrame with columns year, naics_code, industry_name, employment
    """
    columns = ["year", "naics_code", "industry_name", "employment"]
    if df.empty:
        return pd.DataFrame(columns=columns)

    sectors = df[
        (df["agglvl_code"] == AGGLVL_COUNTY_SECTOR) &
        (df["own_code"] == OWN_PRIVATE)
    ].copy()

    sectors["naics_code"] = sectors["industry_code"].astype(str)
    sectors["industry_name"] = sectors["naics_code"].map(NAICS_SECTOR_NAMES).fillna(sectors["naics_code"])
    sectors["year"] = pd.to_numeric(sectors["year"], errors="coerce")
    sectors["employment"] = pd.to_numeric(sectors["annual_avg_emplvl"], errors="coerce")
    sectors = sectors.dropna(subset=["year", "employment"])
    sectors["year"] = sectors["year"].astype(int)

    return sectors[columns].reset_index(drop=True)


def calculate_total_growth(df: pd.DataFrame, current_year: int) -> Optional[float]:
    """CAGR of total covered employment (all industries, all ownerships)."""
    if df.empty:
        return None

    totals = df[
        (df["agglvl_code"] == AGGLVL_COUNTY_TOTAL) &
        (df["own_code"] == OWN_ALL) &
        (df["industry_code"] == INDUSTRY_TOTAL)
    ]
    if totals.empty:
        return None

    annual = (
        pd.to_numeric(totals["annual_avg_emplvl"], errors="coerce")
        .groupby(pd.to_numeric(totals["year"], errors="coerce"))
        .sum()
    )
    window = _trend_window(sorted(int(y) for y in annual.index), current_year)
    if window is None or window[1] == window[0]:
        return None

    start_year, end_year = window
    return calculate_cagr(float(annual.loc[start_year]), float(annual.loc[end_year]), end_year - start_year)


class QCEWEmploymentTrendSource(EmploymentTrendSource):
    """
    Employment trends from BLS QCEW annual averages.

    Only county geographies ('county:SSCCC') have QCEW coverage; other
    geography types return empty trends.
    """

    def __init__(
        self,
        fetcher: Callable[[int, str], pd.DataFrame] = fetch_bls_qcew_annual,
        top_n: Optional[int] = None
    ):
        self.fetcher = fetcher
        self.top_n = top_n if top_n is not None else settings.INDUSTRY_TOP_N

    def fetch_history(self, area_code: str, lookback_years: int, as_of_year: int) -> pd.DataFrame:
        frames = []
        for year in range(as_of_year - lookback_years + 1, as_of_year + 1):
            try:
                df = self.fetcher(year, area_code)
            except QCEWFetchError as e:
                # Recent years are published with a lag
                logger.warning(f"QCEW {year} unavailable for {area_code}: {e}")
                continue
            if not df.empty:
                frames.append(df)

        if not frames:
            return pd.DataFrame()
        return pd.concat(frames, ignore_index=True)

    def get_employment_trends(self, geo_id: str, lookback_years: int, as_of_year: int) -> EmploymentTrends:
        geo_type, _, code = geo_id.partition(":")
        if geo_type != "county" or not code:
            logger.debug(f"No QCEW coverage for {geo_id}")
            return EmploymentTrends()

        raw = self.fetch_history(code, lookback_years, as_of_year)
        if raw.empty:
            logger.warning(f"No QCEW data for {geo_id}")
            return EmploymentTrends()

        trends = calculate_industry_trends(shape_qcew_sectors(raw), as_of_year)
        top_growing, top_declining = get_top_industry_trends(trends, self.top_n)

        logger.info(
            f"QCEW trends for {geo_id}: {len(trends)} sectors, "
            f"{len(top_growing)} growing, {len(top_declining)} declining"
        )

        return EmploymentTrends(
            total_growth=calculate_total_growth(raw, as_of_year),
            top_growing=[t.to_summary() for t in top_growing],
            top_declining=[t.to_summary() for t in top_declining]
        )
