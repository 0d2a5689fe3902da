"""
Neighborhood Intel - Application Settings
Manages environment variables and configuration using Pydantic
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional
import os


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Optional:
        - DATABASE_URL (defaults to a local SQLite file)
        - BLS_API_KEY (improves rate limits)
    """

    # Database
    DATABASE_URL: str = "sqlite:///neighborhood_intel.db"

    # External APIs
    BLS_API_KEY: Optional[str] = None

    # Application
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # Rate limiting (requests per minute)
    BLS_API_RATE_LIMIT: int = 8

    # Data sources
    BLS_QCEW_API_BASE_URL: str = "https://data.bls.gov/cew/data/api"
    QCEW_ENABLED: bool = True

    # File storage
    LOG_DIR: str = "logs"

    # Snapshot builder
    SNAPSHOT_LOOKBACK_YEARS: int = 5
    PROJECTION_HORIZON_YEARS: int = 10
    INDUSTRY_TOP_N: int = 5

    # Double exponential smoothing parameters
    FORECAST_ALPHA: float = 0.3  # Level
    FORECAST_BETA: float = 0.1   # Trend

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.LOG_DIR:
            os.makedirs(self.LOG_DIR, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """
    Returns cached settings instance.
    Uses lru_cache to avoid re-reading .env on every call.
    """
    return Settings()


# Metric series consumed by the snapshot builder: code -> (unit, frequency, source)
METRIC_SERIES = {
    "hh_income_median": ("USD", "annual", "ACS"),
    "income_per_capita": ("USD", "annual", "ACS"),
    "age_median": ("years", "annual", "ACS"),
    "net_migration_18_34": ("people", "annual", "IRS"),
    "total_population": ("people", "annual", "ACS"),
}

# NAICS 2-digit sectors as published by BLS QCEW (county sector level)
NAICS_SECTOR_NAMES = {
    "11": "Agriculture, Forestry, Fishing and Hunting",
    "21": "Mining, Quarrying, and Oil and Gas Extraction",
    "22": "Utilities",
    "23": "Construction",
    "31-33": "Manufacturing",
    "42": "Wholesale Trade",
    "44-45": "Retail Trade",
    "48-49": "Transportation and Warehousing",
    "51": "Information",
    "52": "Finance and Insurance",
    "53": "Real Estate and Rental and Leasing",
    "54": "Professional, Scientific, and Technical Services",
    "55": "Management of Companies and Enterprises",
    "56": "Administrative and Support and Waste Management",
    "61": "Educational Services",
    "62": "Health Care and Social Assistance",
    "71": "Arts, Entertainment, and Recreation",
    "72": "Accommodation and Food Services",
    "81": "Other Services (except Public Administration)",
    "92": "Public Administration"
}
