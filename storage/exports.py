"""Export the stored case series to files or DataFrames."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Mapping

import duckdb
import pandas as pd

from storage.db import DATA_POINT_COLUMNS, DATA_POINTS_TABLE

ACTIVE_CASES_EXPR = "cases_total - deaths_total - recoveries_total AS active_cases"

# format -> DuckDB COPY options
COPY_OPTIONS: Mapping[str, str] = {
    "csv": "FORMAT CSV, HEADER TRUE",
    "parquet": "FORMAT PARQUET",
}


def build_series_query(*, since: date | None = None, limit: int | None = None) -> str:
    """SQL for the series in date order, optionally windowed to the newest rows.

    ``since`` is inlined as a DATE literal; the query carries no bound parameters.
    """

    sql = f"SELECT {', '.join(DATA_POINT_COLUMNS)}, {ACTIVE_CASES_EXPR} FROM {DATA_POINTS_TABLE}"
    if since is not None:
        sql += f" WHERE date >= DATE '{since.isoformat()}'"
    if limit is not None:
        # keep the newest ``limit`` rows but still return them oldest first
        sql = f"SELECT * FROM ({sql} ORDER BY date DESC LIMIT {int(limit)})"
    sql += " ORDER BY date"
    return sql


def export_series(
    conn: duckdb.DuckDBPyConnection,
    destination: str | Path,
    *,
    fmt: str = "csv",
    since: date | None = None,
    limit: int | None = None,
) -> Path:
    """Write the (windowed) series to ``destination`` with DuckDB's COPY command."""

    try:
        options = COPY_OPTIONS[fmt]
    except KeyError as exc:
        raise ValueError(f"Unsupported export format '{fmt}'.") from exc

    dest_path = Path(destination)
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    sql = build_series_query(since=since, limit=limit)
    sanitized_path = str(dest_path).replace("'", "''")
    conn.execute(f"COPY ({sql}) TO '{sanitized_path}' ({options})")
    return dest_path


def fetch_dataframe(
    conn: duckdb.DuckDBPyConnection,
    *,
    since: date | None = None,
    limit: int | None = None,
) -> pd.DataFrame:
    """Return the series as a DataFrame indexed by date."""

    frame = conn.execute(build_series_query(since=since, limit=limit)).df()
    return frame.set_index("date")


__all__ = ["COPY_OPTIONS", "build_series_query", "export_series", "fetch_dataframe"]
