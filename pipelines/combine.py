"""Merge historical and incremental record streams into one timeline."""

from __future__ import annotations

import logging
from typing import Iterable

from pipelines.model import NormalizedRecord

logger = logging.getLogger(__name__)


def combine_sources(
    historical: Iterable[NormalizedRecord],
    incremental: Iterable[NormalizedRecord],
) -> list[NormalizedRecord]:
    """Concatenate historical-then-incremental records with strictly rising dates.

    A record whose date is not after the last kept date overlaps something
    already on the timeline and is dropped, so historical records win.
    """

    combined: list[NormalizedRecord] = []
    for record in (*historical, *incremental):
        if combined and record.date <= combined[-1].date:
            logger.debug(
                "Dropping %s record %s dated %s (timeline already at %s).",
                record.source,
                record.object_id,
                record.date,
                combined[-1].date,
            )
            continue
        combined.append(record)
    return combined


__all__ = ["combine_sources"]
