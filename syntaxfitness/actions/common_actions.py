import json
import logging
import os
from datetime import date
from enum import StrEnum, unique
from typing import Any

import questionary
from pydantic import BaseModel, ConfigDict
from rich.console import Console

from syntaxfitness.config.app_settings import AppSettings
from syntaxfitness.db.db_models import RunRecord, get_engine
from syntaxfitness.db.db_utils import db_startup
from syntaxfitness.store.run_store import RunAggregates, RunStore
from syntaxfitness.tracker.run_tracker import RunTracker
from syntaxfitness.tracker.session import Active, Idle, PendingCommit
from syntaxfitness.utils.exceptions import (
    LocationAcquisitionError,
    MissingDatabaseRecordException,
    RunStoreException,
)

_LOGGER = logging.getLogger(__name__)


@unique
class TrackChoice(StrEnum):
    """Menu entries offered by the interactive `track` command."""

    START = "Start run"
    STOP = "Stop run"
    RETRY_SAVE = "Retry saving run"
    DISCARD = "Discard run"
    QUIT = "Quit"


class RunStatsSummary(BaseModel):
    model_config = ConfigDict(frozen=True)
    aggregates: RunAggregates
    today_count: int
    today_distance_meters: float


def open_run_store(app_settings: AppSettings) -> RunStore:
    """Creates (if needed) the configured run database and returns a RunStore on top of it."""
    db_filepath = app_settings.get_db_filepath()
    os.makedirs(db_filepath.parent, exist_ok=True)
    engine = get_engine(str(db_filepath))
    db_startup(engine)
    return RunStore(engine=engine)


def show_config_action(app_settings: AppSettings) -> dict[str, Any]:
    """Wrapper function for entrypoint of read-only config actions."""
    return json.loads(app_settings.model_dump_json())


def run_history_action(
    run_store: RunStore, day: date | None = None, longest: int | None = None, by_duration: bool = False
) -> list[RunRecord]:
    """
    Returns stored runs, newest first. When `day` is set, only runs started on that date are returned. When
    `longest` is set, the top N runs by distance (or by duration, with `by_duration`) are returned instead,
    ranked among that day's runs when `day` is also set.
    """
    if longest is not None:
        if longest <= 0:
            raise ValueError(f"longest must be a positive integer. Got: {longest}")
        live_query = (
            run_store.get_longest_duration_runs(limit=longest, day=day)
            if by_duration
            else run_store.get_longest_runs(limit=longest, day=day)
        )
        return live_query.current()
    if day is not None:
        return run_store.get_by_date(day).current()
    return run_store.get_all().current()


def run_stats_action(run_store: RunStore) -> RunStatsSummary:
    return RunStatsSummary(
        aggregates=run_store.aggregates().current(),
        today_count=run_store.today_count().current(),
        today_distance_meters=run_store.today_distance().current(),
    )


def show_run_action(run_store: RunStore, run_id: int) -> RunRecord:
    """Returns the stored run with the given id, or raises `MissingDatabaseRecordException`."""
    record = run_store.get_by_id(run_id)
    if record is None:
        raise MissingDatabaseRecordException(run_id)
    return record


def delete_runs_action(run_store: RunStore, run_id: int | None = None, delete_all: bool = False) -> int:
    """Deletes a single run, or every run. Returns the number of deleted runs."""
    if (run_id is None) == (not delete_all):
        raise ValueError("Exactly one of run_id or delete_all must be provided.")
    if delete_all:
        return run_store.delete_all()
    run_store.delete_by_id(run_id=run_id)  # type: ignore[arg-type]
    return 1


async def _ask(tracker: RunTracker, choices: list[TrackChoice]) -> TrackChoice:
    answer = await questionary.select(tracker.status_message, choices=[c.value for c in choices]).ask_async()
    # Ctrl-C on a questionary prompt yields None
    return TrackChoice(answer) if answer is not None else TrackChoice.QUIT


async def track_action(tracker: RunTracker, console: Console | None = None) -> RunRecord | None:
    """
    Interactive start / stop loop for a single run. Failed acquisitions and failed saves are reported and offered
    again, so the user decides whether to retry. Returns the stored run, or None if the user quit first.
    """
    console = console or Console()
    while True:
        match tracker.session:
            case Idle():
                if await _ask(tracker, [TrackChoice.START, TrackChoice.QUIT]) != TrackChoice.START:
                    return None
                try:
                    session = await tracker.start()
                except LocationAcquisitionError as ex:
                    console.print(f"[red]{tracker.status_message}[/red] ({ex})")
                    continue
                console.print(f"[green]Run started[/green] at {session.start_fix}")  # type: ignore[union-attr]
            case Active():
                if await _ask(tracker, [TrackChoice.STOP, TrackChoice.QUIT]) != TrackChoice.STOP:
                    _LOGGER.warning("Quitting with a run in progress. The run will not be saved.")
                    return None
                try:
                    return await tracker.stop()
                except LocationAcquisitionError as ex:
                    console.print(f"[red]{tracker.status_message}[/red] ({ex})")
                except RunStoreException as ex:
                    console.print(f"[red]{tracker.status_message}[/red] ({ex})")
            case PendingCommit():
                if await _ask(tracker, [TrackChoice.RETRY_SAVE, TrackChoice.DISCARD]) != TrackChoice.RETRY_SAVE:
                    tracker.discard_pending()
                    return None
                try:
                    return tracker.retry_commit()
                except RunStoreException as ex:
                    console.print(f"[red]{tracker.status_message}[/red] ({ex})")
            case _:  # pragma: no cover
                raise RuntimeError(f"Unexpected tracker phase while no request is in flight: {tracker.phase}")
