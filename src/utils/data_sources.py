"""
Neighborhood Intel - Data Source Utilities
Helper functions for accessing open data APIs with rate limiting
"""

import io
import time
from functools import wraps

import pandas as pd
import requests

from config.settings import get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

# QCEW CSV slices encode these as zero-padded strings
QCEW_STRING_COLUMNS = {
    "area_fips": str,
    "own_code": str,
    "industry_code": str,
    "agglvl_code": str,
    "size_code": str,
    "disclosure_code": str,
}


class QCEWFetchError(Exception):
    """Raised when a QCEW slice cannot be downloaded"""
    pass


class RateLimiter:
    """Simple rate limiter for API requests"""

    def __init__(self, calls_per_minute: int):
        self.calls_per_minute = calls_per_minute
        self.min_interval = 60.0 / calls_per_minute
        self.last_call = 0

    def __call__(self, func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            elapsed = time.time() - self.last_call
            if elapsed < self.min_interval:
                time.sleep(self.min_interval - elapsed)
            self.last_call = time.time()
            return func(*args, **kwargs)
        return wrapper


bls_limiter = RateLimiter(settings.BLS_API_RATE_LIMIT)


def qcew_area_url(year: int, area_code: str) -> str:
    """Annual-average CSV slice for one area."""
    return f"{settings.BLS_QCEW_API_BASE_URL}/{year}/a/area/{area_code}.csv"


@bls_limiter
def fetch_bls_qcew_annual(year: int, area_code: str) -> pd.DataFrame:
    """
    Fetch BLS QCEW annual averages for a single area.

    Args:
        year: Data year (e.g., 2023)
        area_code: 5-digit QCEW area code (county FIPS, e.g. '21111')

    Returns:
        DataFrame with one row per ownership/industry/aggregation level

    Raises:
        QCEWFetchError: request failed or returned a non-2xx status
    """
    url = qcew_area_url(year, area_code)

    logger.info(f"Fetching BLS QCEW: {year} annual, area {area_code}")

    try:
        response = requests.get(url, timeout=30)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.error(f"BLS QCEW request failed for {area_code} ({year}): {e}")
        raise QCEWFetchError(f"QCEW {year} area {area_code}: {e}") from e

    if not response.text.strip():
        logger.warning(f"Empty QCEW response: {url}")
        return pd.DataFrame()

    df = pd.read_csv(io.StringIO(response.text), dtype=QCEW_STRING_COLUMNS)

    logger.info(f"Fetched {len(df)} QCEW records for area {area_code} ({year})")
    return df
