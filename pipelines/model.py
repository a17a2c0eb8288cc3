"""Canonical data models for epidemiological case records."""

from __future__ import annotations

import datetime as dt
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

METRIC_GROUPS: tuple[str, ...] = ("cases", "deaths", "recoveries", "hospitalisations")

RawScalar = Optional[Union[str, int, float]]
RawDate = Optional[Union[dt.date, str, int]]


class _RawGroup(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    total: RawScalar = Field(
        default=None, description="Cumulative all-time count as published upstream."
    )
    increase: RawScalar = Field(
        default=None, description="Day-over-day delta as published upstream."
    )


class RawCases(_RawGroup):
    reported: RawScalar = Field(
        default=None, description="Cases reported for this specific day."
    )


class RawDeaths(_RawGroup):
    pass


class RawRecoveries(_RawGroup):
    pass


class RawHospitalisations(_RawGroup):
    beds_in_use: RawScalar = Field(
        default=None, description="Hospital beds occupied by patients on this day."
    )


class RawRecord(BaseModel):
    """A partially-populated record as delivered by one upstream source.

    Different feeds populate different subsets of fields, so every value is
    optional and kept in its upstream representation until normalization.
    """

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    object_id: int = Field(..., description="Upstream object id or 1-based row index.")
    source: str = Field(
        default="feed", description="Source identifier (e.g. 'historical', 'feed')."
    )
    date: RawDate = Field(
        default=None,
        description="Record date: 'dd.mm.YYYY' text, ISO text, epoch millis or a date.",
    )
    date_ts: RawDate = Field(
        default=None, description="Alternative date sent as epoch milliseconds."
    )
    date_range: Optional[str] = Field(
        default=None, description="Free-text reporting period label."
    )
    show: bool = Field(default=False, description="Upstream display indicator flag.")
    reported_incidence: RawScalar = Field(
        default=None, description="Incidence as published upstream, if any."
    )
    cases: RawCases = Field(default_factory=RawCases)
    deaths: RawDeaths = Field(default_factory=RawDeaths)
    recoveries: RawRecoveries = Field(default_factory=RawRecoveries)
    hospitalisations: RawHospitalisations = Field(default_factory=RawHospitalisations)


class MetricCounts(BaseModel):
    """Total/increase pair for one metric group."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    increase: int = 0


class CaseCounts(MetricCounts):
    reported: int = 0


class HospitalisationCounts(MetricCounts):
    beds_in_use: int = 0


class NormalizedRecord(BaseModel):
    """Fully-populated record: absent numbers resolved to zero, date required."""

    model_config = ConfigDict(frozen=True)

    object_id: int
    source: str = "feed"
    date: dt.date
    date_range: Optional[str] = None
    show: bool = False
    reported_incidence: float = 0.0
    cases: CaseCounts = Field(default_factory=CaseCounts)
    deaths: MetricCounts = Field(default_factory=MetricCounts)
    recoveries: MetricCounts = Field(default_factory=MetricCounts)
    hospitalisations: HospitalisationCounts = Field(default_factory=HospitalisationCounts)


class FinalizedDataPoint(NormalizedRecord):
    """Reconciled record with consistent totals/increases and computed incidence."""

    incidence: float = Field(
        default=0.0,
        description="New reported cases per 100,000 inhabitants over the 7 prior days.",
    )

    @property
    def active_cases(self) -> int:
        return self.cases.total - self.deaths.total - self.recoveries.total


__all__ = [
    "METRIC_GROUPS",
    "RawCases",
    "RawDeaths",
    "RawRecoveries",
    "RawHospitalisations",
    "RawRecord",
    "MetricCounts",
    "CaseCounts",
    "HospitalisationCounts",
    "NormalizedRecord",
    "FinalizedDataPoint",
]
