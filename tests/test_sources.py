import asyncio
from datetime import date

import httpx
import pytest

from pipelines.errors import InvalidPopulationError, MalformedFieldError
from pipelines.normalize import normalize_records
from pipelines.sources import feed, historical, population

HISTORICAL_CSV = (
    "Datum;Zeitraum;Meldewoche;Anzeige;Faelle_Meldedatum;Fallzahl;Zuwachs_Hosp;"
    "Hospitalisierung;Zuwachs_Tote;Sterbefall;Zuwachs_Genesen;Genesungsfall\n"
    "2020-03-06;w10;10;x;2;3;0;1;0;0;0;0\n"
    "2020-03-07;w10;10;x;4;7;1;2;1;1;2;2\n"
)

POPULATION_CSV = "Stadtteil;Geschlecht;Anzahl\n01;m;100\n01;w;250\n02;m;150\n"


def test_historical_rows_map_columns_by_position():
    records = historical.parse_historical_csv(HISTORICAL_CSV)

    assert [r.object_id for r in records] == [1, 2]
    assert all(r.source == "historical" for r in records)

    second = normalize_records(records)[1]
    assert second.date == date(2020, 3, 7)
    assert (second.cases.total, second.cases.reported) == (7, 4)
    assert (second.hospitalisations.total, second.hospitalisations.increase) == (2, 1)
    assert (second.deaths.total, second.deaths.increase) == (1, 1)
    assert (second.recoveries.total, second.recoveries.increase) == (2, 2)


def test_historical_export_without_enough_columns_is_malformed():
    with pytest.raises(MalformedFieldError):
        historical.parse_historical_csv("Datum;Fallzahl\n2020-03-06;3\n")


def test_empty_historical_export_has_no_records():
    assert historical.parse_historical_csv("") == []


def test_fetch_historical_uses_the_configured_user_agent(monkeypatch):
    calls = {}

    async def fake_fetch_text(url, *, headers=None, timeout=None, **_):
        calls.update(url=url, headers=headers, timeout=timeout)
        return HISTORICAL_CSV

    monkeypatch.setattr(historical, "fetch_text", fake_fetch_text)

    records = asyncio.run(
        historical.fetch_historical(url="https://example.test/export.csv", user_agent="ua/1", timeout=3)
    )

    assert len(records) == 2
    assert calls == {
        "url": "https://example.test/export.csv",
        "headers": {"User-Agent": "ua/1"},
        "timeout": 3,
    }


def test_population_sums_the_last_column():
    assert population.parse_population_csv(POPULATION_CSV) == 500


def test_population_must_be_positive():
    with pytest.raises(InvalidPopulationError):
        population.parse_population_csv("Stadtteil;Anzahl\n01;0\n")


def test_population_with_unparsable_cell_is_malformed():
    with pytest.raises(MalformedFieldError):
        population.parse_population_csv("Stadtteil;Anzahl\n01;viele\n")


def _payload(*attributes):
    return {"features": [{"attributes": attrs} for attrs in attributes]}


def test_feed_attributes_are_mapped_onto_raw_records():
    payload = _payload(
        {
            "ObjectId": 41,
            "Datum": "03.11.2020",
            "Datum_neu": 1604361600000,
            "Zeitraum": "KW 45",
            "Anzeige_Indikator": "x",
            "Inzidenz": 112.4,
            "Fallzahl": None,
            "Zuwachs_Fallzahl": 90,
            "FÃ¤lle_Meldedatum": 85,
            "Sterbefall": 30,
            "BelegteBetten": 12,
        },
        {"ObjectId": 42, "Datum": "04.11.2020", "Anzeige_Indikator": None},
    )

    first, second = feed.parse_feed_payload(payload)

    assert first.object_id == 41
    assert first.source == "feed"
    assert first.show is True
    assert first.date_range == "KW 45"
    assert first.cases.increase == 90
    assert first.cases.reported == 85
    assert first.deaths.total == 30
    assert first.hospitalisations.beds_in_use == 12
    assert second.show is False

    normalized = normalize_records([first, second])
    assert normalized[0].cases.total == 0
    assert normalized[0].reported_incidence == pytest.approx(112.4)


def test_feed_payload_without_features_is_empty():
    assert feed.parse_feed_payload({"error": "nope"}) == []
    assert feed.parse_feed_payload(["unexpected"]) == []


def test_fetch_feed_skips_already_known_records(monkeypatch):
    seen = {}

    async def fake_fetch_json(url, *, headers=None, params=None, timeout=None, **_):
        seen.update(params=params, headers=headers)
        return _payload({"ObjectId": 13, "Datum": "13.03.2020"})

    monkeypatch.setattr(feed, "fetch_json", fake_fetch_json)

    records = asyncio.run(feed.fetch_feed(offset=12, user_agent="ua/1"))

    assert seen["params"]["resultOffset"] == 12
    assert seen["headers"]["User-Agent"] == "ua/1"
    assert [r.object_id for r in records] == [13]


def test_fetch_feed_degrades_to_empty_on_http_errors(monkeypatch, caplog):
    async def failing_fetch_json(url, **_):
        request = httpx.Request("GET", url)
        response = httpx.Response(503, request=request)
        raise httpx.HTTPStatusError("unavailable", request=request, response=response)

    monkeypatch.setattr(feed, "fetch_json", failing_fetch_json)

    assert asyncio.run(feed.fetch_feed(offset=3)) == []
    assert "status=503" in caplog.text


def test_fetch_feed_treats_service_errors_as_empty(monkeypatch):
    async def error_payload(url, **_):
        return {"error": {"code": 400, "message": "Invalid query"}}

    monkeypatch.setattr(feed, "fetch_json", error_payload)

    assert asyncio.run(feed.fetch_feed()) == []


def test_truncated_historical_row_under_a_full_header_is_malformed():
    truncated = HISTORICAL_CSV + "2020-03-08;w10;10;x;4\n"

    with pytest.raises(MalformedFieldError) as excinfo:
        historical.parse_historical_csv(truncated)

    assert excinfo.value.object_id == 3
    assert excinfo.value.field == "cases.total"


def test_empty_cells_in_a_complete_historical_row_stay_absent():
    records = historical.parse_historical_csv(HISTORICAL_CSV + "2020-03-08;;;;;9;;;;;;\n")

    third = normalize_records(records)[2]
    assert third.cases.total == 9
    assert third.deaths.total == 0


def test_historical_row_with_extra_fields_is_malformed():
    with pytest.raises(MalformedFieldError) as excinfo:
        historical.parse_historical_csv(HISTORICAL_CSV + "2020-03-08;w10;10;x;4;7;1;2;1;1;2;2;9\n")

    assert excinfo.value.field == "csv"


def test_present_but_empty_display_indicator_counts_as_shown():
    (record,) = feed.parse_feed_payload(
        _payload({"ObjectId": 7, "Datum": "07.11.2020", "Anzeige_Indikator": ""})
    )

    assert record.show is True
