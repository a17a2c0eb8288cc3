from datetime import datetime, timedelta, timezone

import duckdb
import pytest

from pipelines.reconcile import reconcile
from storage import db
from storage.cache import DataCache, is_stale


@pytest.fixture()
def points(make_record):
    records = [
        make_record(day, reported=day + 1, cases=(0, day + 1), deaths=(day, 0), beds_in_use=3)
        for day in range(9)
    ]
    return reconcile(records, 100_000)


def test_missing_cache_loads_as_none(tmp_path):
    assert DataCache(tmp_path / "absent.duckdb").load() is None


def test_store_then_load_returns_the_same_points(tmp_path, points):
    cache = DataCache(tmp_path / "cache.duckdb")

    assert cache.store(points) is True
    created_at, loaded = cache.load()

    assert loaded == points
    assert created_at.tzinfo is not None
    assert datetime.now(timezone.utc) - created_at < timedelta(minutes=5)


def test_store_replaces_previous_series(tmp_path, points):
    cache = DataCache(tmp_path / "cache.duckdb")
    cache.store(points)
    cache.store(points[:2])

    _, loaded = cache.load()

    assert loaded == points[:2]


def test_remove_drops_the_cached_series(tmp_path, points):
    cache = DataCache(tmp_path / "cache.duckdb")
    cache.store(points)

    assert cache.remove() is True
    assert cache.load() is None
    assert DataCache(tmp_path / "never-written.duckdb").remove() is True


def test_describe_reports_path_and_size(tmp_path, points):
    cache = DataCache(tmp_path / "cache.duckdb")
    cache.store(points)

    path, _, count = cache.describe()

    assert path == tmp_path / "cache.duckdb"
    assert count == len(points)


def test_unreadable_cache_is_treated_as_missing(tmp_path, caplog):
    path = tmp_path / "cache.duckdb"
    path.write_text("not a database")

    assert DataCache(path).load() is None
    assert "cached data" in caplog.text


def test_display_fields_survive_a_store_and_load(tmp_path, points):
    flagged = [point.model_copy(update={"show": True, "date_range": "KW 10"}) for point in points]
    cache = DataCache(tmp_path / "cache.duckdb")

    assert cache.store(flagged) is True
    _, loaded = cache.load()

    assert loaded[0].show is True
    assert loaded[0].date_range == "KW 10"


def test_failed_write_does_not_block_a_later_load(tmp_path, points, monkeypatch):
    path = tmp_path / "cache.duckdb"
    cache = DataCache(path)
    cache.store(points)

    def broken_schema(conn):
        raise duckdb.CatalogException("schema unavailable")

    monkeypatch.setattr(db, "ensure_tables", broken_schema)

    assert cache.store(points[:1]) is False
    _, loaded = cache.load()
    assert loaded == points


def test_cache_held_by_a_writer_is_treated_as_missing(tmp_path, points):
    path = tmp_path / "cache.duckdb"
    DataCache(path).store(points)

    writer = duckdb.connect(str(path))
    try:
        assert DataCache(path).load() is None
    finally:
        writer.close()


@pytest.mark.parametrize(
    ("age", "expected"),
    [(timedelta(minutes=30), False), (timedelta(hours=1), True), (timedelta(hours=2), True)],
)
def test_staleness_is_decided_by_age(age, expected):
    now = datetime(2021, 3, 1, 12, tzinfo=timezone.utc)

    assert is_stale(now - age, timedelta(hours=1), now=now) is expected
