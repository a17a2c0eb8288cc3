"""Incremental feature-service feed ingestor.

The feed publishes one feature per day with German attribute names. Depending
on the feed version a day carries cumulative totals, day-over-day increases,
or both; everything is forwarded as-is and resolved by the normalizer and the
reconciliation engine.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from httpx import HTTPError, HTTPStatusError

from pipelines.common import DEFAULT_TIMEOUT_SECONDS, fetch_json, user_agent_headers
from pipelines.model import (
    RawCases,
    RawDeaths,
    RawHospitalisations,
    RawRecord,
    RawRecoveries,
)

FEED_URL = (
    "https://services.arcgis.com/ORpvigFPJUhb8RDF/arcgis/rest/services/"
    "corona_DD_7_Sicht/FeatureServer/0/query"
)
SOURCE_NAME = "feed"

# Canonical field -> candidate attribute names (first present wins)
FEED_FIELDS: Mapping[str, tuple[str, ...]] = {
    "object_id": ("ObjectId", "OBJECTID"),
    "date": ("Datum",),
    "date_ts": ("Datum_neu",),
    "date_range": ("Zeitraum",),
    "show": ("Anzeige_Indikator",),
    "reported_incidence": ("Inzidenz",),
    "cases.total": ("Fallzahl",),
    "cases.increase": ("Zuwachs_Fallzahl",),
    # the service has been seen returning this name double-encoded
    "cases.reported": ("Fälle_Meldedatum", "FÃ¤lle_Meldedatum"),
    "deaths.total": ("Sterbefall",),
    "deaths.increase": ("Zuwachs_Sterbefall",),
    "recoveries.total": ("Genesungsfall",),
    "recoveries.increase": ("Zuwachs_Genesung",),
    "hospitalisations.total": ("Hospitalisierung",),
    "hospitalisations.increase": ("Zuwachs_Krankenhauseinweisung",),
    "hospitalisations.beds_in_use": ("BelegteBetten",),
}

logger = logging.getLogger(__name__)


def _attr(attributes: Mapping[str, Any], name: str) -> Any:
    for key in FEED_FIELDS[name]:
        if key in attributes:
            return attributes[key]
    return None


def attributes_to_record(attributes: Mapping[str, Any], fallback_id: int) -> RawRecord:
    """Map one feature's attribute dictionary onto a ``RawRecord``."""

    object_id = _attr(attributes, "object_id")
    date_range = _attr(attributes, "date_range")
    return RawRecord(
        object_id=object_id if isinstance(object_id, int) else fallback_id,
        source=SOURCE_NAME,
        date=_attr(attributes, "date"),
        date_ts=_attr(attributes, "date_ts"),
        date_range=str(date_range) if date_range is not None else None,
        show=_attr(attributes, "show") is not None,
        reported_incidence=_attr(attributes, "reported_incidence"),
        cases=RawCases(
            total=_attr(attributes, "cases.total"),
            increase=_attr(attributes, "cases.increase"),
            reported=_attr(attributes, "cases.reported"),
        ),
        deaths=RawDeaths(
            total=_attr(attributes, "deaths.total"),
            increase=_attr(attributes, "deaths.increase"),
        ),
        recoveries=RawRecoveries(
            total=_attr(attributes, "recoveries.total"),
            increase=_attr(attributes, "recoveries.increase"),
        ),
        hospitalisations=RawHospitalisations(
            total=_attr(attributes, "hospitalisations.total"),
            increase=_attr(attributes, "hospitalisations.increase"),
            beds_in_use=_attr(attributes, "hospitalisations.beds_in_use"),
        ),
    )


def _iter_attributes(payload: Any) -> Iterable[Mapping[str, Any]]:
    features = payload.get("features") if isinstance(payload, Mapping) else None
    if not isinstance(features, list):
        return
    for feature in features:
        if not isinstance(feature, Mapping):
            continue
        attributes = feature.get("attributes")
        if isinstance(attributes, Mapping):
            yield attributes


def parse_feed_payload(payload: Any, *, offset: int = 0) -> list[RawRecord]:
    """Turn a feature-service response into raw records in feed order."""

    return [
        attributes_to_record(attributes, fallback_id=offset + position)
        for position, attributes in enumerate(_iter_attributes(payload), start=1)
    ]


def build_feed_params(offset: int) -> dict[str, Any]:
    return {
        "f": "json",
        "where": "ObjectId>=0",
        "outFields": "*",
        "orderByFields": "ObjectId ASC",
        "resultOffset": max(offset, 0),
    }


async def fetch_feed(
    *,
    offset: int = 0,
    url: str = FEED_URL,
    user_agent: str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[RawRecord]:
    """Fetch feed records, skipping the first ``offset`` already-known records.

    The feed only tops up the historical export, so failures are logged and
    produce an empty list instead of aborting the run.
    """

    try:
        payload = await fetch_json(
            url,
            headers={"Accept": "application/json", **user_agent_headers(user_agent)},
            params=build_feed_params(offset),
            timeout=timeout,
        )
    except HTTPStatusError as exc:
        status = exc.response.status_code if exc.response is not None else "?"
        logger.warning("Feed request failed (offset=%s status=%s). Skipping.", offset, status)
        return []
    except HTTPError as exc:
        logger.warning("Feed request failed (offset=%s): %s. Skipping.", offset, exc)
        return []
    except ValueError as exc:
        logger.warning("Feed returned an unreadable payload: %s. Skipping.", exc)
        return []

    if isinstance(payload, Mapping) and "error" in payload:
        logger.warning("Feed reported an error: %s. Skipping.", payload["error"])
        return []

    records = parse_feed_payload(payload, offset=offset)
    logger.info("Fetched %s feed records (offset=%s).", len(records), offset)
    return records


__all__ = [
    "FEED_FIELDS",
    "FEED_URL",
    "attributes_to_record",
    "build_feed_params",
    "fetch_feed",
    "parse_feed_payload",
]
