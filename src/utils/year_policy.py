"""Wall-clock reads for job entry points.

Analytics functions take the reference year explicitly; only callers at the
process boundary consult the clock, through these helpers.
"""

from __future__ import annotations

from datetime import date, datetime


def default_asof_date() -> date:
    """As-of date used when the snapshot job is started without --asof."""
    return date.today()


def parse_asof_date(value: str) -> date:
    """Parse a YYYY-MM-DD string from the command line."""
    return datetime.strptime(value, "%Y-%m-%d").date()
