"""
The transient state of the run currently being tracked. Each phase is its own frozen dataclass holding exactly
the data that phase knows about, so e.g. an `Active` session always has a start fix and never an end fix.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum, unique
from typing import ClassVar

from syntaxfitness.geo.geo_math import distance_meters
from syntaxfitness.location.fix import Fix


@unique
class Phase(StrEnum):
    IDLE = "idle"
    ACQUIRING_START = "acquiring_start"
    ACTIVE = "active"
    ACQUIRING_END = "acquiring_end"
    PENDING_COMMIT = "pending_commit"


@dataclass(frozen=True)
class Idle:
    phase: ClassVar[Phase] = Phase.IDLE


@dataclass(frozen=True)
class AcquiringStart:
    phase: ClassVar[Phase] = Phase.ACQUIRING_START


@dataclass(frozen=True)
class Active:
    phase: ClassVar[Phase] = Phase.ACTIVE
    start_fix: Fix
    start_time: datetime


@dataclass(frozen=True)
class AcquiringEnd:
    phase: ClassVar[Phase] = Phase.ACQUIRING_END
    start_fix: Fix
    start_time: datetime

    def revert(self) -> Active:
        return Active(start_fix=self.start_fix, start_time=self.start_time)


@dataclass(frozen=True)
class PendingCommit:
    """Both fixes resolved, but the completed run has not (yet) been written to the RunStore."""

    phase: ClassVar[Phase] = Phase.PENDING_COMMIT
    start_fix: Fix
    start_time: datetime
    end_fix: Fix
    end_time: datetime

    @property
    def distance_meters(self) -> float:
        return distance_meters(
            self.start_fix.latitude, self.start_fix.longitude, self.end_fix.latitude, self.end_fix.longitude
        )


RunSession = Idle | AcquiringStart | Active | AcquiringEnd | PendingCommit


def session_to_dict(session: RunSession) -> dict[str, object]:
    """JSON-friendly view of a session, as returned by the HTTP API and its event stream."""
    data: dict[str, object] = {"phase": session.phase.value}
    match session:
        case Active(start_fix=start_fix, start_time=start_time) | AcquiringEnd(
            start_fix=start_fix, start_time=start_time
        ):
            data["start_fix"] = start_fix.model_dump()
            data["start_time"] = start_time.isoformat()
        case PendingCommit():
            data["start_fix"] = session.start_fix.model_dump()
            data["start_time"] = session.start_time.isoformat()
            data["end_fix"] = session.end_fix.model_dump()
            data["end_time"] = session.end_time.isoformat()
            data["distance_meters"] = session.distance_meters
    return data
