"""
Collection of db models, per the SQLModel docs at the links below:
https://sqlmodel.tiangolo.com/
https://fastapi.tiangolo.com/tutorial/sql-databases/#create-models
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from functools import cache
from typing import TYPE_CHECKING

from pydantic import NaiveDatetime
from sqlmodel import Field, SQLModel, create_engine

from syntaxfitness.geo.geo_math import (
    average_speed_mps,
    distance_meters,
    pace_seconds_per_km,
    validate_coordinates,
)
from syntaxfitness.utils.constants import MAX_LATITUDE, MAX_LONGITUDE, MIN_LATITUDE, MIN_LONGITUDE
from syntaxfitness.utils.exceptions import InvalidRunRecordException

if TYPE_CHECKING:
    from sqlalchemy.engine.base import Engine

    from syntaxfitness.location.fix import Fix


def duration_between_millis(start_time: datetime, end_time: datetime) -> int:
    return (end_time - start_time) // timedelta(milliseconds=1)


class RunRecord(SQLModel, table=True):
    """
    Model for the `runrecord` table, which contains one row per COMPLETED run.
    In-progress runs are never written to this table. Rows should be built with `RunRecord.from_fixes(...)`,
    which derives the distance and duration fields from the two fixes and the run's timestamps.
    """

    id: int | None = Field(default=None, primary_key=True)
    start_latitude: float = Field(ge=MIN_LATITUDE, le=MAX_LATITUDE)
    start_longitude: float = Field(ge=MIN_LONGITUDE, le=MAX_LONGITUDE)
    end_latitude: float = Field(ge=MIN_LATITUDE, le=MAX_LATITUDE)
    end_longitude: float = Field(ge=MIN_LONGITUDE, le=MAX_LONGITUDE)
    distance_meters: float = Field(ge=0.0)
    # Local wall-clock times; calendar-date queries compare against naive local day bounds.
    start_time: NaiveDatetime = Field(index=True)
    end_time: NaiveDatetime
    duration_millis: int = Field(ge=0)

    @classmethod
    def from_fixes(
        cls, start_fix: Fix, end_fix: Fix, start_time: datetime, end_time: datetime, run_id: int | None = None
    ) -> RunRecord:
        record = cls(
            id=run_id,
            start_latitude=start_fix.latitude,
            start_longitude=start_fix.longitude,
            end_latitude=end_fix.latitude,
            end_longitude=end_fix.longitude,
            distance_meters=distance_meters(
                start_fix.latitude, start_fix.longitude, end_fix.latitude, end_fix.longitude
            ),
            start_time=start_time,
            end_time=end_time,
            duration_millis=duration_between_millis(start_time=start_time, end_time=end_time),
        )
        record.check_invariants()
        return record

    def check_invariants(self) -> None:
        """Raises an `InvalidRunRecordException` if this record could not have come from two valid fixes."""
        if not validate_coordinates(self.start_latitude, self.start_longitude):
            raise InvalidRunRecordException(f"Invalid start coordinates: {self.start_latitude}, {self.start_longitude}")
        if not validate_coordinates(self.end_latitude, self.end_longitude):
            raise InvalidRunRecordException(f"Invalid end coordinates: {self.end_latitude}, {self.end_longitude}")
        if self.end_time < self.start_time:
            raise InvalidRunRecordException(f"end_time {self.end_time} is before start_time {self.start_time}")
        if self.duration_millis != duration_between_millis(start_time=self.start_time, end_time=self.end_time):
            raise InvalidRunRecordException(
                f"duration_millis={self.duration_millis} does not match the run's start and end times."
            )
        expected_distance = distance_meters(
            self.start_latitude, self.start_longitude, self.end_latitude, self.end_longitude
        )
        if not math.isclose(self.distance_meters, expected_distance, rel_tol=1e-9, abs_tol=1e-6):
            raise InvalidRunRecordException(
                f"distance_meters={self.distance_meters} does not match the haversine distance {expected_distance}"
            )

    @property
    def average_speed_mps(self) -> float:
        return average_speed_mps(self.distance_meters, self.duration_millis)

    @property
    def pace_seconds_per_km(self) -> float | None:
        return pace_seconds_per_km(self.distance_meters, self.duration_millis)


@cache
def get_engine(db_filepath: str) -> Engine:
    """Returns the (cached) SQLite engine for the given db filepath."""
    return create_engine(f"sqlite:///{db_filepath}", connect_args={"check_same_thread": False})
