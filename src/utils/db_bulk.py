"""Helpers for preparing rows and batching SQLAlchemy writes."""

from __future__ import annotations

import json
from itertools import islice
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence

import numpy as np
import pandas as pd


def _chunks(
    items: Sequence[Mapping[str, Any]], chunk_size: int
) -> Iterator[List[Mapping[str, Any]]]:
    it = iter(items)
    while True:
        chunk = list(islice(it, chunk_size))
        if not chunk:
            return
        yield chunk


def sanitize_value(value: Any) -> Any:
    """Convert NaN/NA to None and numpy scalars to Python scalars."""
    if value is None:
        return None
    if isinstance(value, (list, dict, tuple)):
        return value
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and np.isnan(value):
        return None
    if pd.isna(value):
        return None
    return value


def sanitize_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Sanitize every value of a row for DB compatibility."""
    return {key: sanitize_value(value) for key, value in record.items()}


def encode_json(value: Any) -> str | None:
    """Deterministic JSON text for list/dict columns (sorted keys)."""
    if value is None:
        return None
    return json.dumps(value, sort_keys=True)


def execute_batch(db, sql, rows: Iterable[Mapping[str, Any]], chunk_size: int = 1000) -> int:
    """Execute SQL with batched parameter sets.

    Returns the number of rows submitted.
    """
    row_list = [sanitize_record(row) for row in rows]
    if not row_list:
        return 0

    submitted = 0
    for chunk in _chunks(row_list, chunk_size):
        db.execute(sql, chunk)
        submitted += len(chunk)
    return submitted
