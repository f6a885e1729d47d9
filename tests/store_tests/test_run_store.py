import asyncio
import math
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from syntaxfitness.db.db_models import RunRecord
from syntaxfitness.location.fix import Fix
from syntaxfitness.store.run_store import RunAggregates, RunStore
from syntaxfitness.utils.exceptions import (
    InvalidRunRecordException,
    MissingDatabaseRecordException,
    RunStoreException,
)
from tests.conftest import EQUATOR_ONE_DEGREE_EAST, EQUATOR_ORIGIN, MOCK_START_TIME

# 100 m and 300 m due north of the origin, on a 6371 km sphere
_NORTH_100M = Fix(latitude=100.0 / 6371000.0 * 180.0 / math.pi, longitude=0.0)
_NORTH_300M = Fix(latitude=300.0 / 6371000.0 * 180.0 / math.pi, longitude=0.0)


def test_insert_assigns_increasing_ids(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    first_id = run_store.insert(make_record())
    second_id = run_store.insert(make_record(start_time=MOCK_START_TIME + timedelta(days=1)))
    assert first_id == 1
    assert second_id > first_id


def test_insert_does_not_mutate_input(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    record = make_record()
    run_id = run_store.insert(record)
    assert record.id is None
    stored = run_store.get_by_id(run_id)
    assert stored is not None
    assert stored.id == run_id
    assert stored.distance_meters == record.distance_meters
    assert stored.duration_millis == record.duration_millis
    assert stored.start_time == record.start_time


def test_insert_rejects_invalid_record(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    bad_record = RunRecord(**(make_record().model_dump(exclude={"id"}) | {"distance_meters": 1.0}))
    with pytest.raises(InvalidRunRecordException):
        run_store.insert(bad_record)
    assert run_store.total_count().current() == 0


def test_insert_rejects_timezone_aware_times(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    aware_start = MOCK_START_TIME.replace(tzinfo=UTC)
    with pytest.raises(InvalidRunRecordException, match="Invalid RunRecord"):
        run_store.insert(make_record(start_time=aware_start))
    assert run_store.total_count().current() == 0


def test_get_by_id_missing(run_store: RunStore) -> None:
    assert run_store.get_by_id(404) is None


def test_get_all_orders_newest_first(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    oldest_id = run_store.insert(make_record(start_time=MOCK_START_TIME))
    newest_id = run_store.insert(make_record(start_time=MOCK_START_TIME + timedelta(days=2)))
    middle_id = run_store.insert(make_record(start_time=MOCK_START_TIME + timedelta(days=1)))
    actual_ids = [r.id for r in run_store.get_all().current()]
    assert actual_ids == [newest_id, middle_id, oldest_id]


def test_get_last_run(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    assert run_store.get_last_run() is None
    run_store.insert(make_record(start_time=MOCK_START_TIME + timedelta(days=3)))
    run_store.insert(make_record(start_time=MOCK_START_TIME))
    last_run = run_store.get_last_run()
    assert last_run is not None
    assert last_run.start_time == MOCK_START_TIME + timedelta(days=3)


def test_get_by_date(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    day = MOCK_START_TIME.date()
    run_store.insert(make_record(start_time=datetime.combine(day, datetime.min.time())))
    run_store.insert(make_record(start_time=datetime.combine(day, datetime.max.time()) - timedelta(seconds=1)))
    run_store.insert(make_record(start_time=datetime.combine(day + timedelta(days=1), datetime.min.time())))
    run_store.insert(make_record(start_time=datetime.combine(day, datetime.min.time()) - timedelta(seconds=1)))
    actual = run_store.get_by_date(day).current()
    assert len(actual) == 2
    assert all(r.start_time.date() == day for r in actual)
    assert actual[0].start_time > actual[1].start_time
    assert run_store.get_by_date(date(1999, 1, 1)).current() == []


def test_get_longest_runs(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    short_id = run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=_NORTH_100M))
    long_id = run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=EQUATOR_ONE_DEGREE_EAST))
    mid_id = run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=_NORTH_300M))
    assert [r.id for r in run_store.get_longest_runs().current()] == [long_id, mid_id, short_id]
    assert [r.id for r in run_store.get_longest_runs(limit=1).current()] == [long_id]


def test_get_longest_duration_runs(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    ids_by_minutes = {
        minutes: run_store.insert(make_record(duration=timedelta(minutes=minutes))) for minutes in (5, 45, 20)
    }
    actual = [r.id for r in run_store.get_longest_duration_runs(limit=2).current()]
    assert actual == [ids_by_minutes[45], ids_by_minutes[20]]


def test_get_longest_runs_on_day(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    next_day = MOCK_START_TIME + timedelta(days=1)
    run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=EQUATOR_ONE_DEGREE_EAST))
    run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=_NORTH_300M, duration=timedelta(hours=2)))
    short_id = run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=_NORTH_100M, start_time=next_day))
    mid_id = run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=_NORTH_300M, start_time=next_day))
    assert [r.id for r in run_store.get_longest_runs(limit=1, day=next_day.date()).current()] == [mid_id]
    assert [r.id for r in run_store.get_longest_runs(limit=5, day=next_day.date()).current()] == [mid_id, short_id]
    assert [r.id for r in run_store.get_longest_duration_runs(limit=1, day=next_day.date()).current()] == [mid_id]
    assert run_store.get_longest_runs(limit=1, day=date(1999, 1, 1)).current() == []


def test_aggregates_empty(run_store: RunStore) -> None:
    assert run_store.total_count().current() == 0
    assert run_store.total_distance().current() == 0.0
    assert run_store.average_distance().current() == 0.0
    assert run_store.aggregates().current() == RunAggregates(
        total_count=0, total_distance_meters=0.0, average_distance_meters=0.0
    )


def test_aggregates(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=_NORTH_100M))
    run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=_NORTH_300M))
    assert run_store.total_count().current() == 2
    assert run_store.total_distance().current() == pytest.approx(400.0)
    assert run_store.average_distance().current() == pytest.approx(200.0)
    aggregates = run_store.aggregates().current()
    assert aggregates.total_count == 2
    assert aggregates.total_distance_meters == pytest.approx(400.0)
    assert aggregates.average_distance_meters == pytest.approx(200.0)


def test_today_aggregates(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=_NORTH_100M, start_time=datetime.now()))
    run_store.insert(make_record(start_fix=EQUATOR_ORIGIN, end_fix=_NORTH_300M, start_time=datetime(2001, 1, 1)))
    assert run_store.today_count().current() == 1
    assert run_store.today_distance().current() == pytest.approx(100.0)


def test_delete(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    keep_id = run_store.insert(make_record())
    delete_id = run_store.insert(make_record())
    to_delete = run_store.get_by_id(delete_id)
    assert to_delete is not None
    run_store.delete(to_delete)
    assert run_store.get_by_id(delete_id) is None
    assert [r.id for r in run_store.get_all().current()] == [keep_id]


def test_delete_missing_raises(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    with pytest.raises(MissingDatabaseRecordException):
        run_store.delete_by_id(run_id=12345)
    with pytest.raises(MissingDatabaseRecordException):
        run_store.delete(make_record())


def test_delete_all(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    for _ in range(3):
        run_store.insert(make_record())
    assert run_store.delete_all() == 3
    assert run_store.total_count().current() == 0
    assert run_store.total_distance().current() == 0.0
    assert run_store.get_all().current() == []
    assert run_store.delete_all() == 0


def test_live_queries_are_shared(run_store: RunStore) -> None:
    assert run_store.total_count() is run_store.total_count()
    assert run_store.get_longest_runs(limit=3) is run_store.get_longest_runs(limit=3)
    assert run_store.get_longest_runs(limit=3) is not run_store.get_longest_runs(limit=4)


def test_sqlalchemy_errors_are_wrapped(run_store: RunStore, make_record: Callable[..., RunRecord]) -> None:
    with patch.object(Session, "commit", side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))):
        with pytest.raises(RunStoreException, match="RunStore insert failed"):
            run_store.insert(make_record())
    assert run_store.total_count().current() == 0


@pytest.mark.asyncio
async def test_live_query_subscription_receives_updates(
    run_store: RunStore, make_record: Callable[..., RunRecord]
) -> None:
    with run_store.total_count().subscribe() as count_sub, run_store.get_all().subscribe() as all_sub:
        assert await asyncio.wait_for(count_sub.get(), timeout=1) == 0
        assert await asyncio.wait_for(all_sub.get(), timeout=1) == []
        run_id = run_store.insert(make_record())
        assert await asyncio.wait_for(count_sub.get(), timeout=1) == 1
        assert [r.id for r in await asyncio.wait_for(all_sub.get(), timeout=1)] == [run_id]
        run_store.delete_all()
        assert await asyncio.wait_for(count_sub.get(), timeout=1) == 0


@pytest.mark.asyncio
async def test_live_query_subscription_conflates_to_latest(
    run_store: RunStore, make_record: Callable[..., RunRecord]
) -> None:
    with run_store.total_count().subscribe() as sub:
        for _ in range(3):
            run_store.insert(make_record())
        # Only the most recent value is pending for a slow reader
        assert await asyncio.wait_for(sub.get(), timeout=1) == 3
        assert run_store.total_count().current() == 3


def test_live_query_refresh_skipped_without_subscribers(
    run_store: RunStore, make_record: Callable[..., RunRecord]
) -> None:
    live_query = run_store.total_distance()
    with patch.object(live_query, "current", wraps=live_query.current) as mock_current:
        run_store.insert(make_record())
        mock_current.assert_not_called()
