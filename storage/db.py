"""DuckDB persistence utilities for finalized case data points."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Sequence

import duckdb

from pipelines.model import (
    CaseCounts,
    FinalizedDataPoint,
    HospitalisationCounts,
    MetricCounts,
)

DB_ENV_VAR = "CASE_SIGNALS_DB_PATH"
DEFAULT_DB_PATH = Path("data/case_signals.duckdb")

DATA_POINTS_TABLE = "data_points"
LOAD_STATUS_TABLE = "load_status"
CACHE_STATUS_KEY = "data_points"

DATA_POINT_COLUMNS: tuple[str, ...] = (
    "date",
    "object_id",
    "source",
    "date_range",
    "show_indicator",
    "reported_incidence",
    "incidence",
    "cases_total",
    "cases_increase",
    "cases_reported",
    "deaths_total",
    "deaths_increase",
    "recoveries_total",
    "recoveries_increase",
    "hospitalisations_total",
    "hospitalisations_increase",
    "hospitalisations_beds_in_use",
)


def _ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def get_database_path(override: str | os.PathLike[str] | None = None) -> Path:
    """Resolve the DuckDB file path from an explicit override or environment variable."""

    if override is not None:
        return Path(override)
    env_value = os.getenv(DB_ENV_VAR)
    if env_value:
        return Path(env_value)
    return DEFAULT_DB_PATH


def connect(
    path: str | os.PathLike[str] | None = None,
    *,
    read_only: bool = False,
    ensure: bool = True,
) -> duckdb.DuckDBPyConnection:
    """Create a DuckDB connection, optionally ensuring schema availability.

    DuckDB locks the database file per process: read-only connections may be
    shared between processes, a read-write connection is exclusive.
    """

    db_path = get_database_path(path)
    if not read_only:
        _ensure_parent_dir(db_path)
    conn = duckdb.connect(str(db_path), read_only=read_only)
    if ensure and not read_only:
        try:
            ensure_tables(conn)
        except duckdb.Error:
            conn.close()
            raise
    return conn


def ensure_tables(conn: duckdb.DuckDBPyConnection) -> None:
    """Create the storage tables if they do not already exist."""

    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {DATA_POINTS_TABLE} (
            date DATE PRIMARY KEY,
            object_id INTEGER NOT NULL,
            source TEXT NOT NULL,
            date_range TEXT,
            show_indicator BOOLEAN NOT NULL,
            reported_incidence DOUBLE NOT NULL,
            incidence DOUBLE NOT NULL,
            cases_total BIGINT NOT NULL,
            cases_increase BIGINT NOT NULL,
            cases_reported BIGINT NOT NULL,
            deaths_total BIGINT NOT NULL,
            deaths_increase BIGINT NOT NULL,
            recoveries_total BIGINT NOT NULL,
            recoveries_increase BIGINT NOT NULL,
            hospitalisations_total BIGINT NOT NULL,
            hospitalisations_increase BIGINT NOT NULL,
            hospitalisations_beds_in_use BIGINT NOT NULL
        )
        """
    )
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {LOAD_STATUS_TABLE} (
            status_key TEXT PRIMARY KEY,
            loaded_at TIMESTAMP NOT NULL
        )
        """
    )


def _serialize_point(point: FinalizedDataPoint) -> tuple:
    return (
        point.date,
        point.object_id,
        point.source,
        point.date_range,
        point.show,
        point.reported_incidence,
        point.incidence,
        point.cases.total,
        point.cases.increase,
        point.cases.reported,
        point.deaths.total,
        point.deaths.increase,
        point.recoveries.total,
        point.recoveries.increase,
        point.hospitalisations.total,
        point.hospitalisations.increase,
        point.hospitalisations.beds_in_use,
    )


def _deserialize_point(row: Sequence) -> FinalizedDataPoint:
    values = dict(zip(DATA_POINT_COLUMNS, row, strict=True))
    return FinalizedDataPoint(
        date=values["date"],
        object_id=values["object_id"],
        source=values["source"],
        date_range=values["date_range"],
        show=values["show_indicator"],
        reported_incidence=values["reported_incidence"],
        incidence=values["incidence"],
        cases=CaseCounts(
            total=values["cases_total"],
            increase=values["cases_increase"],
            reported=values["cases_reported"],
        ),
        deaths=MetricCounts(
            total=values["deaths_total"], increase=values["deaths_increase"]
        ),
        recoveries=MetricCounts(
            total=values["recoveries_total"], increase=values["recoveries_increase"]
        ),
        hospitalisations=HospitalisationCounts(
            total=values["hospitalisations_total"],
            increase=values["hospitalisations_increase"],
            beds_in_use=values["hospitalisations_beds_in_use"],
        ),
    )


def replace_data_points(
    conn: duckdb.DuckDBPyConnection,
    points: Iterable[FinalizedDataPoint],
    *,
    loaded_at: datetime | None = None,
) -> int:
    """Replace the stored series with ``points`` and stamp the load time.

    Returns
    -------
    int
        Number of data points written to the database.
    """

    serialized = [_serialize_point(point) for point in points]
    stamp = (loaded_at or datetime.now(timezone.utc)).astimezone(timezone.utc)
    placeholders = ", ".join("?" for _ in DATA_POINT_COLUMNS)

    conn.execute("BEGIN TRANSACTION")
    try:
        conn.execute(f"DELETE FROM {DATA_POINTS_TABLE}")
        if serialized:
            conn.executemany(
                f"INSERT INTO {DATA_POINTS_TABLE} ({', '.join(DATA_POINT_COLUMNS)}) "
                f"VALUES ({placeholders})",
                serialized,
            )
        conn.execute(
            f"INSERT OR REPLACE INTO {LOAD_STATUS_TABLE} VALUES (?, ?)",
            (CACHE_STATUS_KEY, stamp.replace(tzinfo=None)),
        )
        conn.execute("COMMIT")
    except duckdb.Error:
        conn.execute("ROLLBACK")
        raise
    return len(serialized)


def fetch_data_points(
    conn: duckdb.DuckDBPyConnection,
    *,
    where: str | None = None,
    params: Sequence[object] | None = None,
    limit: int | None = None,
    descending: bool = False,
) -> list[FinalizedDataPoint]:
    """Query stored points in date order and reconstruct the models."""

    sql = f"SELECT {', '.join(DATA_POINT_COLUMNS)} FROM {DATA_POINTS_TABLE}"
    if where:
        sql += f" WHERE {where}"
    sql += " ORDER BY date DESC" if descending else " ORDER BY date"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    cursor = conn.execute(sql, params or [])
    return [_deserialize_point(row) for row in cursor.fetchall()]


def fetch_loaded_at(conn: duckdb.DuckDBPyConnection) -> datetime | None:
    """Return the UTC time the stored series was written, if any."""

    row = conn.execute(
        f"SELECT loaded_at FROM {LOAD_STATUS_TABLE} WHERE status_key = ?",
        [CACHE_STATUS_KEY],
    ).fetchone()
    if row is None or row[0] is None:
        return None
    return row[0].replace(tzinfo=timezone.utc)


def clear_data_points(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(f"DELETE FROM {DATA_POINTS_TABLE}")
    conn.execute(f"DELETE FROM {LOAD_STATUS_TABLE} WHERE status_key = ?", [CACHE_STATUS_KEY])


__all__ = [
    "connect",
    "ensure_tables",
    "replace_data_points",
    "fetch_data_points",
    "fetch_loaded_at",
    "clear_data_points",
    "DATA_POINTS_TABLE",
    "DATA_POINT_COLUMNS",
    "LOAD_STATUS_TABLE",
    "get_database_path",
]
