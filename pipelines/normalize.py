"""Record normalizer.

Turns partially-populated ``RawRecord`` instances from any upstream source
into fully-populated ``NormalizedRecord`` instances. Absent numeric fields
resolve to zero; values that are present but unparsable abort with
``MalformedFieldError``. Records without any date raise ``MissingDateError``.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Iterable

from pipelines.errors import MalformedFieldError, MissingDateError
from pipelines.model import (
    CaseCounts,
    HospitalisationCounts,
    MetricCounts,
    NormalizedRecord,
    RawRecord,
)

logger = logging.getLogger(__name__)

# Textual date formats in order of preference: feed labels first, then ISO exports.
DATE_FORMATS: tuple[str, ...] = ("%d.%m.%Y", "%Y-%m-%d")


def _is_absent(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_count(value: Any, *, field: str, object_id: int | None = None) -> int:
    """Parse an upstream count, returning 0 when the value is absent."""

    if _is_absent(value):
        return 0
    if isinstance(value, bool):
        raise MalformedFieldError(field, value, object_id)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        raise MalformedFieldError(field, value, object_id)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise MalformedFieldError(field, value, object_id) from exc
    raise MalformedFieldError(field, value, object_id)


def parse_rate(value: Any, *, field: str, object_id: int | None = None) -> float:
    """Parse a floating point value such as a published incidence."""

    if _is_absent(value):
        return 0.0
    if isinstance(value, bool):
        raise MalformedFieldError(field, value, object_id)
    try:
        if isinstance(value, str):
            numeric = float(value.strip().replace(",", "."))
        else:
            numeric = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedFieldError(field, value, object_id) from exc
    if math.isnan(numeric) or math.isinf(numeric):
        raise MalformedFieldError(field, value, object_id)
    return numeric


def _parse_text_date(raw: str, *, field: str, object_id: int | None) -> date:
    text = raw.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise MalformedFieldError(field, raw, object_id)


def parse_date(value: Any, *, field: str, object_id: int | None = None) -> date | None:
    """Parse one of the supported date representations.

    Returns ``None`` for an absent value so the caller can try the next candidate.
    """

    if _is_absent(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise MalformedFieldError(field, value, object_id)
    if isinstance(value, int):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date()
        except (OverflowError, OSError, ValueError) as exc:
            raise MalformedFieldError(field, value, object_id) from exc
    if isinstance(value, str):
        return _parse_text_date(value, field=field, object_id=object_id)
    raise MalformedFieldError(field, value, object_id)


def _resolve_date(raw: RawRecord) -> date:
    resolved = parse_date(raw.date, field="date", object_id=raw.object_id)
    if resolved is None:
        resolved = parse_date(raw.date_ts, field="date_ts", object_id=raw.object_id)
    if resolved is None:
        raise MissingDateError(raw.object_id)
    return resolved


def normalize_record(raw: RawRecord) -> NormalizedRecord:
    """Resolve every optional field of ``raw`` into a concrete value."""

    oid = raw.object_id

    def count(group: str, name: str, value: Any) -> int:
        return parse_count(value, field=f"{group}.{name}", object_id=oid)

    return NormalizedRecord(
        object_id=oid,
        source=raw.source,
        date=_resolve_date(raw),
        date_range=raw.date_range or None,
        show=raw.show,
        reported_incidence=parse_rate(
            raw.reported_incidence, field="reported_incidence", object_id=oid
        ),
        cases=CaseCounts(
            total=count("cases", "total", raw.cases.total),
            increase=count("cases", "increase", raw.cases.increase),
            reported=count("cases", "reported", raw.cases.reported),
        ),
        deaths=MetricCounts(
            total=count("deaths", "total", raw.deaths.total),
            increase=count("deaths", "increase", raw.deaths.increase),
        ),
        recoveries=MetricCounts(
            total=count("recoveries", "total", raw.recoveries.total),
            increase=count("recoveries", "increase", raw.recoveries.increase),
        ),
        hospitalisations=HospitalisationCounts(
            total=count("hospitalisations", "total", raw.hospitalisations.total),
            increase=count("hospitalisations", "increase", raw.hospitalisations.increase),
            beds_in_use=count(
                "hospitalisations", "beds_in_use", raw.hospitalisations.beds_in_use
            ),
        ),
    )


def normalize_records(
    records: Iterable[RawRecord], *, drop_missing_dates: bool = True
) -> list[NormalizedRecord]:
    """Normalize a batch of records.

    Records without a date are skipped (with a warning) when
    ``drop_missing_dates`` is set. Malformed fields always propagate because a
    silently skipped record would corrupt every later running total.
    """

    normalized: list[NormalizedRecord] = []
    for raw in records:
        try:
            normalized.append(normalize_record(raw))
        except MissingDateError:
            if not drop_missing_dates:
                raise
            logger.warning(
                "Dropping %s record %s without a date.", raw.source, raw.object_id
            )
    return normalized


__all__ = [
    "DATE_FORMATS",
    "normalize_record",
    "normalize_records",
    "parse_count",
    "parse_date",
    "parse_rate",
]
