"""Population ingestor: sums per-district residents into one denominator."""

from __future__ import annotations

import logging

from pipelines.common import DEFAULT_TIMEOUT_SECONDS, fetch_text, user_agent_headers
from pipelines.csv_text import read_semicolon_csv
from pipelines.errors import InvalidPopulationError
from pipelines.normalize import parse_count

POPULATION_CSV_URL = (
    "https://opendata.dresden.de/duva2ckan/files/"
    "de-sn-dresden-einwohner___md_34e_2020_-_3006_od_bevoelkerung_ab_stadtteil_"
    "hauptwohner_geschlecht_deutsche__auslaender/content"
)

logger = logging.getLogger(__name__)


def parse_population_csv(text: str) -> int:
    """Sum the last column of every data row."""

    frame = read_semicolon_csv(text)
    if frame.empty:
        raise InvalidPopulationError(0)
    column = frame.columns[-1]
    total = sum(
        parse_count(value, field=f"population.{column}", object_id=row)
        for row, value in enumerate(frame[column], start=1)
    )
    if total <= 0:
        raise InvalidPopulationError(total)
    return total


async def fetch_population(
    *,
    url: str = POPULATION_CSV_URL,
    user_agent: str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> int:
    logger.debug("Reading population info from %s", url)
    text = await fetch_text(url, headers=user_agent_headers(user_agent), timeout=timeout)
    population = parse_population_csv(text)
    logger.info("Population resolved to %s.", population)
    return population


__all__ = ["POPULATION_CSV_URL", "fetch_population", "parse_population_csv"]
