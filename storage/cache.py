"""Cache collaborator over the DuckDB store.

The cache is an optimization, never a source of truth: read and write
failures (missing file, lock held by another process, permissions, corrupt
file) are logged and reported as "no cache" / "not stored".
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Sequence

import duckdb

from pipelines.model import FinalizedDataPoint
from storage.db import (
    clear_data_points,
    connect,
    fetch_data_points,
    fetch_loaded_at,
    get_database_path,
    replace_data_points,
)

logger = logging.getLogger(__name__)

CachedSeries = tuple[datetime, list[FinalizedDataPoint]]


def is_stale(created_at: datetime, stale_after: timedelta, now: datetime | None = None) -> bool:
    """Return ``True`` when cached data is at least ``stale_after`` old."""

    current = now or datetime.now(timezone.utc)
    age = current - created_at
    logger.debug("Cached data: created=%s age=%s stale_after=%s", created_at, age, stale_after)
    return age >= stale_after


class DataCache:
    """Load and store the finalized series in a DuckDB file."""

    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self._path = get_database_path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> CachedSeries | None:
        if not self._path.exists():
            logger.debug("No cache file at %s.", self._path)
            return None
        try:
            conn = connect(self._path, read_only=True)
        except duckdb.IOException as exc:
            logger.warning(
                "Did not read the cached data at [%s], another process holds the file: %s",
                self._path,
                exc,
            )
            return None
        except (duckdb.Error, OSError) as exc:
            logger.warning("Could not open the cached data at [%s]: %s", self._path, exc)
            return None
        try:
            created_at = fetch_loaded_at(conn)
            if created_at is None:
                return None
            return created_at, fetch_data_points(conn)
        except duckdb.Error as exc:
            logger.warning("Could not read the cached data at [%s]: %s", self._path, exc)
            return None
        finally:
            conn.close()

    def store(self, points: Sequence[FinalizedDataPoint]) -> bool:
        """Persist ``points``; returns ``False`` when the write was skipped."""

        try:
            conn = connect(self._path)
        except (duckdb.Error, OSError) as exc:
            logger.warning("Could not write the cached data to [%s]: %s", self._path, exc)
            return False
        try:
            written = replace_data_points(conn, points)
        except duckdb.Error as exc:
            logger.warning("Could not write the cached data to [%s]: %s", self._path, exc)
            return False
        finally:
            conn.close()
        logger.debug("Cached %s data points at %s.", written, self._path)
        return True

    def remove(self) -> bool:
        """Drop cached data; a missing cache counts as removed."""

        if not self._path.exists():
            return True
        try:
            conn = connect(self._path)
        except (duckdb.Error, OSError) as exc:
            logger.warning("Could not remove the cached data at [%s]: %s", self._path, exc)
            return False
        try:
            clear_data_points(conn)
        except duckdb.Error as exc:
            logger.warning("Could not remove the cached data at [%s]: %s", self._path, exc)
            return False
        finally:
            conn.close()
        return True

    def describe(self) -> tuple[Path, datetime, int] | None:
        cached = self.load()
        if cached is None:
            return None
        created_at, points = cached
        return self._path, created_at, len(points)


__all__ = ["CachedSeries", "DataCache", "is_stale"]
