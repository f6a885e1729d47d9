from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from syntaxfitness.tracker.session import session_to_dict

if TYPE_CHECKING:
    from syntaxfitness.db.db_models import RunRecord
    from syntaxfitness.tracker.run_tracker import RunTracker


class RunResponse(BaseModel):
    """FastAPI response model for a single stored run, including its derived speed and pace."""

    id: int | None
    start_latitude: float
    start_longitude: float
    end_latitude: float
    end_longitude: float
    distance_meters: float
    start_time: datetime
    end_time: datetime
    duration_millis: int
    average_speed_mps: float
    pace_seconds_per_km: float | None = Field(default=None)

    @classmethod
    def from_record(cls, record: RunRecord) -> RunResponse:
        return cls(
            **record.model_dump(),
            average_speed_mps=record.average_speed_mps,
            pace_seconds_per_km=record.pace_seconds_per_km,
        )


class RunListResponse(BaseModel):
    runs: list[RunResponse]
    count: int

    @classmethod
    def from_records(cls, records: list[RunRecord]) -> RunListResponse:
        return cls(runs=[RunResponse.from_record(r) for r in records], count=len(records))


class DeleteResponse(BaseModel):
    deleted: int


class TrackerResponse(BaseModel):
    """Snapshot of the RunTracker's current phase, session data and status text."""

    phase: str
    status_message: str
    session: dict[str, Any]
    derived_distance_meters: float | None = Field(default=None)
    last_completed_run: RunResponse | None = Field(default=None)

    @classmethod
    def from_tracker(cls, tracker: RunTracker) -> TrackerResponse:
        session = tracker.session
        last_run = tracker.last_completed_run
        return cls(
            phase=session.phase.value,
            status_message=tracker.status_message,
            session=session_to_dict(session),
            derived_distance_meters=tracker.derived_distance(),
            last_completed_run=RunResponse.from_record(last_run) if last_run else None,
        )
