"""Historical bulk export ingestor.

Downloads the semicolon-delimited case-count export from the city open-data
portal and turns every row into a ``RawRecord`` carrying cumulative totals.
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

import pandas as pd

from pipelines.common import DEFAULT_TIMEOUT_SECONDS, fetch_text, user_agent_headers
from pipelines.csv_text import read_semicolon_csv
from pipelines.errors import MalformedFieldError
from pipelines.model import (
    RawCases,
    RawDeaths,
    RawHospitalisations,
    RawRecord,
    RawRecoveries,
)

HISTORICAL_CSV_URL = (
    "https://opendata.dresden.de/duva2ckan/files/"
    "de-sn-dresden-corona_-_covid-19_-_fallzahlen_md1_dresden_2020/content"
)
SOURCE_NAME = "historical"

# Canonical field -> column position in the export
HISTORICAL_COLUMNS: Mapping[str, int] = {
    "date": 0,
    "cases.reported": 4,
    "cases.total": 5,
    "hospitalisations.increase": 6,
    "hospitalisations.total": 7,
    "deaths.increase": 8,
    "deaths.total": 9,
    "recoveries.increase": 10,
    "recoveries.total": 11,
}
_REQUIRED_WIDTH = max(HISTORICAL_COLUMNS.values()) + 1

logger = logging.getLogger(__name__)


def _row_to_record(object_id: int, row: Sequence[str]) -> RawRecord:
    if len(row) < _REQUIRED_WIDTH:
        raise MalformedFieldError("row", list(row), object_id)
    # a truncated row leaves NaN in the trailing columns, an empty cell is ""
    for name, position in HISTORICAL_COLUMNS.items():
        if pd.isna(row[position]):
            raise MalformedFieldError(name, list(row), object_id)

    def cell(name: str) -> str:
        return row[HISTORICAL_COLUMNS[name]]

    return RawRecord(
        object_id=object_id,
        source=SOURCE_NAME,
        date=cell("date"),
        cases=RawCases(total=cell("cases.total"), reported=cell("cases.reported")),
        deaths=RawDeaths(total=cell("deaths.total"), increase=cell("deaths.increase")),
        recoveries=RawRecoveries(
            total=cell("recoveries.total"), increase=cell("recoveries.increase")
        ),
        hospitalisations=RawHospitalisations(
            total=cell("hospitalisations.total"),
            increase=cell("hospitalisations.increase"),
        ),
    )


def parse_historical_csv(text: str) -> list[RawRecord]:
    """Parse the export body, oldest row first; ``object_id`` is the 1-based row index."""

    frame = read_semicolon_csv(text, fill_missing=False)
    if frame.empty:
        return []
    rows = frame.itertuples(index=False, name=None)
    return [_row_to_record(index, row) for index, row in enumerate(rows, start=1)]


async def fetch_historical(
    *,
    url: str = HISTORICAL_CSV_URL,
    user_agent: str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[RawRecord]:
    """Fetch the historical export and return its rows as raw records."""

    logger.debug("Reading historical CSV from %s", url)
    text = await fetch_text(url, headers=user_agent_headers(user_agent), timeout=timeout)
    records = parse_historical_csv(text)
    logger.info("Fetched %s historical records.", len(records))
    return records


__all__ = [
    "HISTORICAL_COLUMNS",
    "HISTORICAL_CSV_URL",
    "fetch_historical",
    "parse_historical_csv",
]
