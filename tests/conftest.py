from datetime import date, timedelta

import pytest

from pipelines.model import CaseCounts, HospitalisationCounts, MetricCounts, NormalizedRecord

START = date(2021, 3, 1)


def build_record(
    day: int,
    *,
    reported: int = 0,
    cases: tuple[int, int] = (0, 0),
    deaths: tuple[int, int] = (0, 0),
    recoveries: tuple[int, int] = (0, 0),
    hospitalisations: tuple[int, int] = (0, 0),
    beds_in_use: int = 0,
    source: str = "historical",
) -> NormalizedRecord:
    return NormalizedRecord(
        object_id=day + 1,
        source=source,
        date=START + timedelta(days=day),
        cases=CaseCounts(total=cases[0], increase=cases[1], reported=reported),
        deaths=MetricCounts(total=deaths[0], increase=deaths[1]),
        recoveries=MetricCounts(total=recoveries[0], increase=recoveries[1]),
        hospitalisations=HospitalisationCounts(
            total=hospitalisations[0],
            increase=hospitalisations[1],
            beds_in_use=beds_in_use,
        ),
    )


@pytest.fixture()
def make_record():
    return build_record
