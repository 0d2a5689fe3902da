"""
Neighborhood Intel - SQL Snapshot Store
Observation reads and snapshot upserts over SQLAlchemy text() statements
"""

import json
from datetime import date
from typing import Callable, Iterable, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.database import SessionLocal, session_scope
from src.analytics.types import TimeSeriesPoint
from src.processing.snapshot_builder import ObservationReader, SnapshotMetrics, SnapshotWriter
from src.utils.db_bulk import encode_json, execute_batch, sanitize_record
from src.utils.logging import get_logger

logger = get_logger(__name__)

SNAPSHOT_COLUMNS = [
    "geo_id", "asof",
    "income_per_capita", "hh_income_median", "age_median",
    "net_migration_1834", "emp_growth_5y",
    "top_growing", "top_declining", "proj10", "migration_signal",
]
JSON_COLUMNS = {"top_growing", "top_declining", "proj10", "migration_signal"}


def _to_date(value) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _decode_json(value):
    if value is None:
        return None
    return json.loads(value)


class SqlSnapshotStore(ObservationReader, SnapshotWriter):
    """
    Reader/writer backed by the geo_area, metric_series, metric_obs and
    snapshot_cache tables.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    # Reference data

    def register_geo_area(self, geo_id: str, geo_type: str, name: str, state_fips: Optional[str] = None):
        with session_scope(self.session_factory) as db:
            db.execute(
                text("""
                    INSERT INTO geo_area (geo_id, geo_type, name, state_fips)
                    VALUES (:geo_id, :geo_type, :name, :state_fips)
                    ON CONFLICT (geo_id) DO UPDATE SET
                        geo_type = EXCLUDED.geo_type,
                        name = EXCLUDED.name,
                        state_fips = EXCLUDED.state_fips
                """),
                {"geo_id": geo_id, "geo_type": geo_type, "name": name, "state_fips": state_fips},
            )

    def register_metric_series(self, code: str, unit: str, freq: str, source: str):
        with session_scope(self.session_factory) as db:
            db.execute(
                text("""
                    INSERT INTO metric_series (code, unit, freq, source)
                    VALUES (:code, :unit, :freq, :source)
                    ON CONFLICT (code) DO NOTHING
                """),
                {"code": code, "unit": unit, "freq": freq, "source": source},
            )

    def write_observations(self, geo_id: str, metric_code: str, points: Iterable[TimeSeriesPoint]) -> int:
        """Upsert observations for one (geo, series). Returns rows submitted."""
        rows = [
            {"series_code": metric_code, "geo_id": geo_id, "period": int(p.period), "value": p.value}
            for p in points
        ]
        sql = text("""
            INSERT INTO metric_obs (series_code, geo_id, period, value)
            VALUES (:series_code, :geo_id, :period, :value)
            ON CONFLICT (series_code, geo_id, period) DO UPDATE SET value = EXCLUDED.value
        """)
        with session_scope(self.session_factory) as db:
            submitted = execute_batch(db, sql, rows)

        logger.debug(f"Stored {submitted} {metric_code} observations for {geo_id}")
        return submitted

    # ObservationReader

    def list_geo_ids(self) -> List[str]:
        with session_scope(self.session_factory) as db:
            result = db.execute(text("SELECT geo_id FROM geo_area ORDER BY geo_id"))
            return [row[0] for row in result]

    def fetch_observations(
        self,
        geo_id: str,
        metric_code: str,
        lookback_years: int,
        as_of_year: Optional[int] = None
    ) -> List[TimeSeriesPoint]:
        with session_scope(self.session_factory) as db:
            series = db.execute(
                text("SELECT code FROM metric_series WHERE code = :code"),
                {"code": metric_code},
            ).scalar()
            if series is None:
                return []

            anchor = as_of_year
            if anchor is None:
                anchor = db.execute(
                    text("""
                        SELECT MAX(period) FROM metric_obs
                        WHERE series_code = :code AND geo_id = :geo_id
                    """),
                    {"code": metric_code, "geo_id": geo_id},
                ).scalar()
                if anchor is None:
                    return []

            result = db.execute(
                text("""
                    SELECT period, value FROM metric_obs
                    WHERE series_code = :code
                      AND geo_id = :geo_id
                      AND period >= :min_period
                      AND period <= :max_period
                      AND value IS NOT NULL
                    ORDER BY period
                """),
                {
                    "code": metric_code,
                    "geo_id": geo_id,
                    "min_period": int(anchor) - lookback_years + 1,
                    "max_period": int(anchor),
                },
            )
            return [TimeSeriesPoint(period=int(row[0]), value=float(row[1])) for row in result]

    # SnapshotWriter

    def upsert_snapshot(self, snapshot: SnapshotMetrics) -> bool:
        record = snapshot.to_record()
        params = {}
        for column in SNAPSHOT_COLUMNS:
            value = record[column]
            if column in JSON_COLUMNS:
                params[column] = encode_json(value)
            elif column == "asof":
                params[column] = value.isoformat()
            else:
                params[column] = value
        params = sanitize_record(params)

        updates = ",\n".join(
            f"{c} = EXCLUDED.{c}" for c in SNAPSHOT_COLUMNS if c not in ("geo_id", "asof")
        )
        sql = text(f"""
            INSERT INTO snapshot_cache ({", ".join(SNAPSHOT_COLUMNS)})
            VALUES ({", ".join(":" + c for c in SNAPSHOT_COLUMNS)})
            ON CONFLICT (geo_id, asof) DO UPDATE SET
            {updates}
        """)

        try:
            with session_scope(self.session_factory) as db:
                db.execute(sql, params)
            return True
        except SQLAlchemyError as e:
            logger.error(f"Snapshot upsert failed for {snapshot.geo_id} ({snapshot.asof}): {e}")
            return False

    def get_snapshot(self, geo_id: str, asof: date) -> Optional[SnapshotMetrics]:
        with session_scope(self.session_factory) as db:
            row = db.execute(
                text(f"""
                    SELECT {", ".join(SNAPSHOT_COLUMNS)} FROM snapshot_cache
                    WHERE geo_id = :geo_id AND asof = :asof
                """),
                {"geo_id": geo_id, "asof": asof.isoformat()},
            ).mappings().first()

        if row is None:
            return None

        values = dict(row)
        for column in JSON_COLUMNS:
            values[column] = _decode_json(values[column])
        values["asof"] = _to_date(values["asof"])
        values["top_growing"] = values["top_growing"] or []
        values["top_declining"] = values["top_declining"] or []
        values["proj10"] = values["proj10"] or {}
        return SnapshotMetrics(**values)
