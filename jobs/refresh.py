"""End-to-end job that fetches, reconciles and caches the case-data series."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from httpx import HTTPError

from jobs.config import Settings
from pipelines.combine import combine_sources
from pipelines.errors import CacheUnavailableError
from pipelines.model import FinalizedDataPoint, NormalizedRecord
from pipelines.normalize import normalize_records
from pipelines.reconcile import ResumeState, reconcile
from pipelines.sources.feed import fetch_feed
from pipelines.sources.historical import fetch_historical
from pipelines.sources.population import fetch_population
from storage.cache import DataCache, is_stale

logger = logging.getLogger(__name__)


async def read_from_sources(settings: Settings) -> list[FinalizedDataPoint]:
    """Fetch every source and reconcile the full series from scratch."""

    population, historical_raw = await asyncio.gather(
        fetch_population(
            url=settings.population_url,
            user_agent=settings.user_agent,
            timeout=settings.timeout_seconds,
        ),
        fetch_historical(
            url=settings.historical_url,
            user_agent=settings.user_agent,
            timeout=settings.timeout_seconds,
        ),
    )
    historical = normalize_records(historical_raw)

    feed_raw = await fetch_feed(
        offset=len(historical),
        url=settings.feed_url,
        user_agent=settings.user_agent,
        timeout=settings.timeout_seconds,
    )
    incremental = normalize_records(feed_raw)

    combined = combine_sources(historical, incremental)
    return reconcile(combined, population, policy=settings.increase_policy)


def extend_series(
    points: Sequence[FinalizedDataPoint],
    records: Sequence[NormalizedRecord],
    population: float,
    settings: Settings,
) -> list[FinalizedDataPoint]:
    """Append newly fetched normalized records to an already reconciled series."""

    fresh = combine_sources(points, records)[len(points):]
    seed = ResumeState.from_points(points)
    extension = reconcile(fresh, population, seed=seed, policy=settings.increase_policy)
    logger.info("Extended cached series by %s data points.", len(extension))
    return [*points, *extension]


async def top_up_from_feed(
    settings: Settings, points: Sequence[FinalizedDataPoint]
) -> list[FinalizedDataPoint]:
    """Fetch only feed records newer than ``points`` and continue the pass."""

    population, feed_raw = await asyncio.gather(
        fetch_population(
            url=settings.population_url,
            user_agent=settings.user_agent,
            timeout=settings.timeout_seconds,
        ),
        fetch_feed(
            offset=len(points),
            url=settings.feed_url,
            user_agent=settings.user_agent,
            timeout=settings.timeout_seconds,
        ),
    )
    return extend_series(points, normalize_records(feed_raw), population, settings)


async def current_data_async(
    settings: Settings,
    *,
    force: bool = False,
    offline: bool = False,
    incremental: bool = False,
    cache: DataCache | None = None,
) -> list[FinalizedDataPoint]:
    """Return the current series, from cache when it is fresh enough.

    ``force`` ignores the cache, ``offline`` never touches the network and
    fails when nothing is cached, ``incremental`` extends a stale cache from
    the feed instead of rebuilding the whole series.
    """

    cache = cache or DataCache(settings.db_path)

    cached = None
    if force:
        logger.debug("Ignoring cache since a download was forced.")
    else:
        cached = cache.load()
        logger.debug("Found data in cache: %s", cached is not None)

    if offline:
        if cached is None:
            raise CacheUnavailableError(
                f"Cache-only mode requested, but no cached data is available at {cache.path}. "
                "Run `python -m jobs cache refresh` first."
            )
        logger.debug("Using data from cache from %s", cached[0])
        return cached[1]

    if cached is not None and not is_stale(cached[0], settings.stale_after):
        logger.debug("Using data from cache from %s", cached[0])
        return cached[1]

    try:
        if incremental and cached is not None and cached[1]:
            logger.debug("Extending stale cache from %s with feed data", cached[0])
            points = await top_up_from_feed(settings, cached[1])
        else:
            logger.debug("Calling sources for new data")
            points = await read_from_sources(settings)
    except HTTPError as exc:
        if cached is None:
            raise
        logger.warning(
            "Could not refresh data (%s); falling back to cached data from %s.", exc, cached[0]
        )
        return cached[1]

    cache.store(points)
    return points


def current_data(settings: Settings, **options) -> list[FinalizedDataPoint]:
    return asyncio.run(current_data_async(settings, **options))


__all__ = [
    "current_data",
    "current_data_async",
    "extend_series",
    "read_from_sources",
    "top_up_from_feed",
]
