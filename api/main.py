"""FastAPI service exposing the reconciled case series in multiple formats."""

from __future__ import annotations

import os
import tempfile
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path
from typing import Any, Sequence

import duckdb
from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from dotenv import load_dotenv

from jobs.config import APP_VERSION
from pipelines.model import FinalizedDataPoint
from storage.db import connect, fetch_data_points, fetch_loaded_at
from storage.exports import export_series

DEFAULT_LIMIT = 200
MAX_LIMIT = 5000
ALLOWED_FORMATS = {"json", "csv", "parquet"}
MEDIA_TYPES = {"csv": "text/csv", "parquet": "application/vnd.apache.parquet"}
load_dotenv()


@asynccontextmanager
async def lifespan(_: FastAPI):
    conn = connect()
    conn.close()
    yield


app = FastAPI(title="Case Signals API", version=APP_VERSION, lifespan=lifespan)


def _configure_cors() -> None:
    raw_origins = os.getenv("API_CORS_ORIGINS", "*")
    origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )


_configure_cors()


def _serialize_point(point: FinalizedDataPoint) -> dict[str, Any]:
    payload = point.model_dump(mode="json")
    payload["active_cases"] = point.active_cases
    return payload


def _serialize_points(points: Sequence[FinalizedDataPoint]) -> list[dict[str, Any]]:
    return [_serialize_point(point) for point in points]


def _open_read_only() -> duckdb.DuckDBPyConnection:
    try:
        return connect(read_only=True)
    except duckdb.Error as exc:
        raise HTTPException(status_code=503, detail="Case data store unavailable") from exc


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/data-points")
def get_data_points(
    background_tasks: BackgroundTasks,
    format: str = Query("json", description="Response format: json, csv, or parquet"),
    since: date | None = Query(None, description="Only points on or after this date"),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT, description="Newest N points"),
):
    fmt = format.lower()
    if fmt not in ALLOWED_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported format '{format}'.")

    conn = _open_read_only()
    try:
        if fmt == "json":
            points = fetch_data_points(
                conn,
                where="date >= ?" if since else None,
                params=[since] if since else None,
                limit=limit,
                descending=True,
            )
            points.reverse()
            loaded_at = fetch_loaded_at(conn)
            payload = {
                "count": len(points),
                "loaded_at": loaded_at.isoformat() if loaded_at else None,
                "items": _serialize_points(points),
            }
            return JSONResponse(content=payload)

        suffix = f".{fmt}"
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
            dest = Path(tmp.name)
        export_series(conn, dest, fmt=fmt, since=since, limit=limit)

        def _cleanup(path: Path) -> None:
            try:
                path.unlink()
            except FileNotFoundError:
                pass

        background_tasks.add_task(_cleanup, dest)
        return FileResponse(
            dest,
            media_type=MEDIA_TYPES[fmt],
            filename=f"data_points{suffix}",
            background=background_tasks,
        )
    except duckdb.Error as exc:  # pragma: no cover - defensive
        raise HTTPException(status_code=500, detail="Database query failed") from exc
    finally:
        conn.close()


@app.get("/summary")
def get_summary() -> dict[str, Any]:
    conn = _open_read_only()
    try:
        latest_two = fetch_data_points(conn, limit=2, descending=True)
    finally:
        conn.close()
    if not latest_two:
        raise HTTPException(status_code=404, detail="No case data loaded yet")

    latest = latest_two[0]
    previous = latest_two[1] if len(latest_two) > 1 else None
    return {
        "latest": _serialize_point(latest),
        "change": {
            "active_cases": latest.active_cases - previous.active_cases if previous else None,
            "incidence": latest.incidence - previous.incidence if previous else None,
        },
    }
