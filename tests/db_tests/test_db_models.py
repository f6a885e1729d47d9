import re
from collections.abc import Callable
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, select

from syntaxfitness.db.db_models import RunRecord, duration_between_millis, get_engine
from syntaxfitness.geo.geo_math import distance_meters
from syntaxfitness.utils.exceptions import InvalidRunRecordException
from tests.conftest import BERLIN_END, BERLIN_START, EQUATOR_ONE_DEGREE_EAST, EQUATOR_ORIGIN, MOCK_START_TIME


@pytest.mark.parametrize(
    "delta, expected",
    [
        (timedelta(0), 0),
        (timedelta(milliseconds=1), 1),
        (timedelta(seconds=90, microseconds=999), 90_000),
        (timedelta(hours=1, milliseconds=250), 3_600_250),
    ],
)
def test_duration_between_millis(delta: timedelta, expected: int) -> None:
    assert duration_between_millis(start_time=MOCK_START_TIME, end_time=MOCK_START_TIME + delta) == expected


def test_from_fixes_derives_distance_and_duration() -> None:
    end_time = MOCK_START_TIME + timedelta(minutes=12, seconds=3)
    actual = RunRecord.from_fixes(
        start_fix=BERLIN_START, end_fix=BERLIN_END, start_time=MOCK_START_TIME, end_time=end_time
    )
    assert actual.id is None
    assert actual.start_latitude == BERLIN_START.latitude
    assert actual.start_longitude == BERLIN_START.longitude
    assert actual.end_latitude == BERLIN_END.latitude
    assert actual.end_longitude == BERLIN_END.longitude
    assert actual.distance_meters == distance_meters(
        BERLIN_START.latitude, BERLIN_START.longitude, BERLIN_END.latitude, BERLIN_END.longitude
    )
    assert actual.duration_millis == 723_000
    assert actual.start_time == MOCK_START_TIME
    assert actual.end_time == end_time


def test_from_fixes_with_run_id() -> None:
    actual = RunRecord.from_fixes(
        start_fix=EQUATOR_ORIGIN,
        end_fix=EQUATOR_ONE_DEGREE_EAST,
        start_time=MOCK_START_TIME,
        end_time=MOCK_START_TIME,
        run_id=7,
    )
    assert actual.id == 7
    assert actual.duration_millis == 0


def test_from_fixes_rejects_end_before_start() -> None:
    with pytest.raises(InvalidRunRecordException, match="is before start_time"):
        RunRecord.from_fixes(
            start_fix=BERLIN_START,
            end_fix=BERLIN_END,
            start_time=MOCK_START_TIME,
            end_time=MOCK_START_TIME - timedelta(seconds=1),
        )


def _valid_record_kwargs() -> dict:
    record = RunRecord.from_fixes(
        start_fix=BERLIN_START,
        end_fix=BERLIN_END,
        start_time=MOCK_START_TIME,
        end_time=MOCK_START_TIME + timedelta(minutes=1),
    )
    return record.model_dump(exclude={"id"})


@pytest.mark.parametrize(
    "overrides, expected_msg",
    [
        ({"start_latitude": 95.0}, "Invalid start coordinates"),
        ({"end_longitude": -181.0}, "Invalid end coordinates"),
        ({"duration_millis": 1}, "does not match the run's start and end times"),
        ({"distance_meters": 5.0}, "does not match the haversine distance"),
        ({"end_time": datetime(2000, 1, 1)}, "is before start_time"),
    ],
)
def test_check_invariants_raises(overrides: dict, expected_msg: str) -> None:
    # Table models skip validation on init, so invalid rows can be constructed directly.
    record = RunRecord(**(_valid_record_kwargs() | overrides))
    with pytest.raises(InvalidRunRecordException, match=re.escape(expected_msg)):
        record.check_invariants()


def test_check_invariants_passes_for_valid_record() -> None:
    RunRecord(**_valid_record_kwargs()).check_invariants()


def test_derived_speed_and_pace() -> None:
    record = RunRecord.from_fixes(
        start_fix=EQUATOR_ORIGIN,
        end_fix=EQUATOR_ONE_DEGREE_EAST,
        start_time=MOCK_START_TIME,
        end_time=MOCK_START_TIME + timedelta(hours=10),
    )
    assert record.average_speed_mps == pytest.approx(record.distance_meters / 36_000.0)
    assert record.pace_seconds_per_km == pytest.approx(36_000.0 / (record.distance_meters / 1000.0))


def test_pace_is_none_without_distance() -> None:
    record = RunRecord.from_fixes(
        start_fix=BERLIN_START,
        end_fix=BERLIN_START,
        start_time=MOCK_START_TIME,
        end_time=MOCK_START_TIME + timedelta(minutes=3),
    )
    assert record.distance_meters == 0.0
    assert record.pace_seconds_per_km is None
    assert record.average_speed_mps == 0.0


def test_get_engine_is_cached(tmp_path) -> None:
    db_filepath = str(tmp_path / "runs.db")
    assert get_engine(db_filepath) is get_engine(db_filepath)


def test_timestamps_stored_as_local_wall_clock(mock_session: Session, make_record: Callable[..., RunRecord]) -> None:
    columns = RunRecord.__table__.columns  # type: ignore[attr-defined]
    assert columns["start_time"].type.timezone is False
    assert columns["end_time"].type.timezone is False
    record = make_record()
    mock_session.add(record)
    mock_session.commit()
    mock_session.expire_all()
    actual = mock_session.exec(select(RunRecord)).one()
    assert actual.start_time == MOCK_START_TIME
    assert actual.start_time.tzinfo is None
    assert actual.end_time == MOCK_START_TIME + timedelta(minutes=10)
