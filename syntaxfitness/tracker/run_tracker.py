"""
The run tracking state machine:

    Idle -> AcquiringStart -> Active -> AcquiringEnd -> PendingCommit -> Idle

A failed start acquisition returns to Idle and a failed stop acquisition returns to Active, so either action
can simply be retried. A failed write of the completed run leaves the session at PendingCommit, from where the
write can be retried (`retry_commit`) or the run abandoned (`discard_pending`).

`start()` and `stop()` must be called from a running event loop. They validate and apply the first transition
synchronously, then hand the location request off to a background task which is returned to the caller.

Writing a completed run happens on the event loop, with no await between the write and the transition out of
PendingCommit, so no other request can observe or act on a half-saved run. The RunStore is a local SQLite file
whose single-row inserts are expected to be fast.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum, unique
from typing import Any, TypeVar

from syntaxfitness.db.db_models import RunRecord
from syntaxfitness.location.fix import Fix
from syntaxfitness.location.location_source import LocationSource
from syntaxfitness.store.run_store import RunStore
from syntaxfitness.tracker.session import AcquiringEnd, AcquiringStart, Active, Idle, PendingCommit, Phase, RunSession
from syntaxfitness.utils.channel import Channel
from syntaxfitness.utils.constants import (
    STATUS_ACQUIRING,
    STATUS_COMMIT_FAILED,
    STATUS_DISCARDED,
    STATUS_FINISHED,
    STATUS_READY,
    STATUS_RUNNING,
    STATUS_SAVING,
    STATUS_START_FAILED,
    STATUS_STOP_FAILED,
)
from syntaxfitness.utils.exceptions import InvalidTransitionError, LocationAcquisitionError, RunStoreException

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@unique
class FailureKind(StrEnum):
    ACQUISITION = "acquisition"
    STORAGE = "storage"


@dataclass(frozen=True)
class TrackerFailure:
    """Published on `RunTracker.failures` whenever a start, stop or commit attempt fails."""

    kind: FailureKind
    action: str
    message: str
    phase: Phase


class RunTracker:
    def __init__(
        self, location_source: LocationSource, run_store: RunStore, clock: Callable[[], datetime] | None = None
    ):
        self._location_source = location_source
        self._run_store = run_store
        self._clock = clock or datetime.now
        # Reentrant so that a commit can hold the lock across the whole write + transition.
        self._lock = threading.RLock()
        self._session: RunSession = Idle()
        self._status_message = STATUS_READY
        self._last_completed_run: RunRecord | None = None
        self._in_flight: asyncio.Task | None = None
        self._sessions: Channel[RunSession] = Channel(name="tracker-sessions", initial=self._session)
        self._failures: Channel[TrackerFailure] = Channel(name="tracker-failures")

    @property
    def session(self) -> RunSession:
        return self._session

    @property
    def phase(self) -> Phase:
        return self._session.phase

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def last_completed_run(self) -> RunRecord | None:
        return self._last_completed_run

    @property
    def sessions(self) -> Channel[RunSession]:
        """Latest-value channel of session changes. New subscribers immediately receive the current session."""
        return self._sessions

    @property
    def failures(self) -> Channel[TrackerFailure]:
        return self._failures

    def derived_distance(self) -> float | None:
        """Distance between the current start and end fixes, or None until both are known."""
        session = self._session
        if isinstance(session, PendingCommit):
            return session.distance_meters
        return None

    def start(self) -> asyncio.Task[RunSession]:
        """
        Begins a run. Only valid from Idle; raises `InvalidTransitionError` otherwise. The returned task resolves
        to the `Active` session, or raises `LocationAcquisitionError` after reverting to Idle.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            if not isinstance(self._session, Idle):
                raise InvalidTransitionError(action="start", phase=self._session.phase)
            self._set_session(AcquiringStart(), STATUS_ACQUIRING)
            return self._launch(loop, self._acquire_start(), name="run-tracker-start")

    def stop(self) -> asyncio.Task[RunRecord]:
        """
        Ends the active run. Only valid from Active; raises `InvalidTransitionError` otherwise. The returned task
        resolves to the stored `RunRecord`. It raises `LocationAcquisitionError` after reverting to Active, or
        `RunStoreException` after moving to PendingCommit.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            session = self._session
            if not isinstance(session, Active):
                raise InvalidTransitionError(action="stop", phase=session.phase)
            acquiring = AcquiringEnd(start_fix=session.start_fix, start_time=session.start_time)
            self._set_session(acquiring, STATUS_ACQUIRING)
            return self._launch(loop, self._acquire_end(acquiring), name="run-tracker-stop")

    def retry_commit(self) -> RunRecord:
        """Re-attempts writing a completed run which previously failed to store. Does not re-acquire location."""
        with self._lock:
            session = self._session
            if not isinstance(session, PendingCommit):
                raise InvalidTransitionError(action="commit", phase=session.phase)
            return self._commit(session)

    def discard_pending(self) -> None:
        """Abandons a completed run which failed to store, returning to Idle."""
        with self._lock:
            session = self._session
            if not isinstance(session, PendingCommit):
                raise InvalidTransitionError(action="discard", phase=session.phase)
            _LOGGER.warning(f"Discarding unsaved run started at {session.start_time}")
            self._set_session(Idle(), STATUS_DISCARDED)

    async def aclose(self) -> None:
        """Cancels any in-flight acquisition. The session is left in the phase that preceded the request."""
        task = self._in_flight
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait([task])

    def _launch(self, loop: asyncio.AbstractEventLoop, coro: Coroutine[Any, Any, T], name: str) -> asyncio.Task[T]:
        task = loop.create_task(coro, name=name)
        self._in_flight = task
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        owned = self._in_flight is task
        if owned:
            self._in_flight = None
        if task.cancelled():
            _LOGGER.debug(f"Task '{task.get_name()}' was cancelled.")
            if not owned:
                # A newer request already replaced this one, and owns the current session.
                return
            # A task cancelled before it ever ran never reached its own revert handling.
            with self._lock:
                session = self._session
                if isinstance(session, AcquiringStart):
                    self._set_session(Idle(), STATUS_READY)
                elif isinstance(session, AcquiringEnd):
                    self._set_session(session.revert(), STATUS_RUNNING)
            return
        # Retrieving the exception here means callers which never await the task do not trigger asyncio's
        # "exception was never retrieved" warning. Failures are already reported on the failures channel.
        ex = task.exception()
        if ex is not None:
            _LOGGER.debug(f"Task '{task.get_name()}' failed: {ex!r}")

    def _set_session(self, session: RunSession, status_message: str) -> None:
        with self._lock:
            _LOGGER.debug(f"RunTracker transition: {self._session.phase} -> {session.phase}")
            self._session = session
            self._status_message = status_message
        self._sessions.publish(session)

    def _publish_failure(self, kind: FailureKind, action: str, message: str) -> None:
        self._failures.publish(TrackerFailure(kind=kind, action=action, message=message, phase=self._session.phase))

    async def _request_fix(self, action: str) -> Fix:
        try:
            return await self._location_source.request_current_fix()
        except LocationAcquisitionError as ex:
            _LOGGER.warning(f"Location acquisition for '{action}' failed: {ex}")
            raise
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            _LOGGER.warning(f"Location source raised an unexpected error during '{action}'", exc_info=True)
            raise LocationAcquisitionError(f"Location source failed: {ex!r}") from ex

    async def _acquire_start(self) -> RunSession:
        try:
            fix = await self._request_fix(action="start")
        except asyncio.CancelledError:
            self._set_session(Idle(), STATUS_READY)
            raise
        except LocationAcquisitionError as ex:
            self._set_session(Idle(), STATUS_START_FAILED)
            self._publish_failure(FailureKind.ACQUISITION, action="start", message=str(ex))
            raise
        session = Active(start_fix=fix, start_time=self._clock())
        self._set_session(session, STATUS_RUNNING)
        _LOGGER.info(f"Run started at {session.start_time} from {fix}")
        return session

    async def _acquire_end(self, acquiring: AcquiringEnd) -> RunRecord:
        try:
            fix = await self._request_fix(action="stop")
        except asyncio.CancelledError:
            self._set_session(acquiring.revert(), STATUS_RUNNING)
            raise
        except LocationAcquisitionError as ex:
            self._set_session(acquiring.revert(), STATUS_STOP_FAILED)
            self._publish_failure(FailureKind.ACQUISITION, action="stop", message=str(ex))
            raise
        # Wall clock adjustments must never produce a negative duration.
        end_time = max(self._clock(), acquiring.start_time)
        pending = PendingCommit(
            start_fix=acquiring.start_fix, start_time=acquiring.start_time, end_fix=fix, end_time=end_time
        )
        with self._lock:
            self._set_session(pending, STATUS_SAVING)
            return self._commit(pending)

    def _commit(self, pending: PendingCommit) -> RunRecord:
        try:
            record = RunRecord.from_fixes(
                start_fix=pending.start_fix,
                end_fix=pending.end_fix,
                start_time=pending.start_time,
                end_time=pending.end_time,
            )
            run_id = self._run_store.insert(record)
        except RunStoreException as ex:
            _LOGGER.error(f"Failed to store completed run: {ex}")
            self._set_session(pending, STATUS_COMMIT_FAILED)
            self._publish_failure(FailureKind.STORAGE, action="commit", message=str(ex))
            raise
        record.id = run_id
        self._last_completed_run = record
        self._set_session(Idle(), STATUS_FINISHED)
        _LOGGER.info(f"Run {run_id} finished: {record.distance_meters:.1f} m in {record.duration_millis} ms")
        return record
