import logging
from datetime import date

import pytest

from pipelines.errors import MalformedFieldError, MissingDateError
from pipelines.model import RawCases, RawDeaths, RawHospitalisations, RawRecord
from pipelines.normalize import normalize_record, normalize_records, parse_count


def test_absent_numeric_fields_default_to_zero():
    raw = RawRecord(object_id=7, date="03.11.2020", cases=RawCases(total=120))

    record = normalize_record(raw)

    assert record.date == date(2020, 11, 3)
    assert record.cases.total == 120
    assert record.cases.increase == 0
    assert record.cases.reported == 0
    assert record.deaths.total == 0
    assert record.hospitalisations.beds_in_use == 0
    assert record.reported_incidence == 0.0


def test_textual_counts_and_dates_from_the_export_are_parsed():
    raw = RawRecord(
        object_id=1,
        source="historical",
        date="2020-03-06",
        cases=RawCases(total="3", reported=" 2 "),
        deaths=RawDeaths(total="0", increase=""),
        hospitalisations=RawHospitalisations(total="1", beds_in_use="4"),
    )

    record = normalize_record(raw)

    assert record.source == "historical"
    assert record.date == date(2020, 3, 6)
    assert (record.cases.total, record.cases.reported) == (3, 2)
    assert record.deaths.increase == 0
    assert record.hospitalisations.beds_in_use == 4


def test_epoch_milliseconds_date_is_used_when_text_date_is_absent():
    raw = RawRecord(object_id=3, date=None, date_ts=1604361600000)

    assert normalize_record(raw).date == date(2020, 11, 3)


def test_record_without_any_date_raises_missing_date():
    with pytest.raises(MissingDateError) as excinfo:
        normalize_record(RawRecord(object_id=9))

    assert excinfo.value.object_id == 9


def test_unparsable_count_is_a_malformed_field():
    raw = RawRecord(object_id=4, date="04.11.2020", cases=RawCases(total="12a"))

    with pytest.raises(MalformedFieldError) as excinfo:
        normalize_record(raw)

    assert excinfo.value.field == "cases.total"
    assert excinfo.value.value == "12a"


def test_unparsable_date_is_a_malformed_field():
    with pytest.raises(MalformedFieldError) as excinfo:
        normalize_record(RawRecord(object_id=5, date="2020/03/06"))

    assert excinfo.value.field == "date"


def test_negative_values_are_accepted_as_is():
    raw = RawRecord(object_id=6, date="05.11.2020", recoveries={"increase": "-3"})

    assert normalize_record(raw).recoveries.increase == -3


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, 0), ("", 0), (" 17 ", 17), (17, 17), (12.0, 12)],
)
def test_parse_count_accepts_integral_values(value, expected):
    assert parse_count(value, field="cases.total") == expected


@pytest.mark.parametrize("value", [12.5, "1.5", "n/a", True])
def test_parse_count_rejects_non_integral_values(value):
    with pytest.raises(MalformedFieldError):
        parse_count(value, field="cases.total")


def test_published_incidence_accepts_decimal_comma():
    raw = RawRecord(object_id=8, date="06.11.2020", reported_incidence="12,5")

    assert normalize_record(raw).reported_incidence == pytest.approx(12.5)


def test_batch_drops_undated_records_with_warning(caplog):
    raws = [
        RawRecord(object_id=1, date="01.11.2020"),
        RawRecord(object_id=2),
        RawRecord(object_id=3, date="03.11.2020"),
    ]

    with caplog.at_level(logging.WARNING, logger="pipelines.normalize"):
        records = normalize_records(raws)

    assert [r.object_id for r in records] == [1, 3]
    assert "without a date" in caplog.text


def test_batch_can_be_strict_about_missing_dates():
    with pytest.raises(MissingDateError):
        normalize_records([RawRecord(object_id=2)], drop_missing_dates=False)


def test_batch_aborts_on_malformed_field():
    raws = [
        RawRecord(object_id=1, date="01.11.2020"),
        RawRecord(object_id=2, date="02.11.2020", deaths=RawDeaths(total="x")),
    ]

    with pytest.raises(MalformedFieldError):
        normalize_records(raws)
