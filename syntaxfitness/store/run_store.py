"""
Durable storage of completed runs, backed by SQLModel, along with the reactive aggregate reads consumed by
the CLI, the HTTP API and the tracker.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, delete, desc, func, select

from syntaxfitness.db.db_models import RunRecord
from syntaxfitness.db.db_utils import add_record
from syntaxfitness.store.live_query import LiveQuery
from syntaxfitness.utils.constants import DEFAULT_RUN_LIST_LIMIT
from syntaxfitness.utils.exceptions import (
    InvalidRunRecordException,
    MissingDatabaseRecordException,
    RunStoreException,
)

if TYPE_CHECKING:
    from sqlalchemy.engine.base import Engine

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class RunAggregates(BaseModel):
    """Scalars derived from the full set of stored runs. All zero when no runs are stored."""

    model_config = ConfigDict(frozen=True)
    total_count: int = 0
    total_distance_meters: float = 0.0
    average_distance_meters: float = 0.0


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class RunStore:
    """
    Read / write access to the `runrecord` table. Each write runs in its own session and transaction and is
    serialized with the other writes. Every successful write refreshes the live queries handed out by this store.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._write_lock = threading.Lock()
        self._live_queries: dict[tuple[Any, ...], LiveQuery[Any]] = {}
        self._live_queries_lock = threading.Lock()

    @contextmanager
    def _session(self, action: str) -> Generator[Session, None, None]:
        try:
            with Session(self._engine, expire_on_commit=False) as session:
                yield session
        except SQLAlchemyError as ex:
            _LOGGER.error(f"RunStore {action} failed.", exc_info=True)
            raise RunStoreException(f"RunStore {action} failed: {ex}") from ex

    def _live(self, key: tuple[Any, ...], query_fn: Callable[[], T]) -> LiveQuery[T]:
        with self._live_queries_lock:
            if key not in self._live_queries:
                self._live_queries[key] = LiveQuery(name=":".join(str(k) for k in key), query_fn=query_fn)
            return self._live_queries[key]

    def _notify(self) -> None:
        with self._live_queries_lock:
            live_queries = list(self._live_queries.values())
        for live_query in live_queries:
            live_query.refresh()

    # Writes

    def insert(self, record: RunRecord) -> int:
        """Persists a copy of the given completed run and returns its newly assigned id."""
        record.check_invariants()
        try:
            row = RunRecord.model_validate(record.model_dump(exclude={"id"}))
        except ValidationError as ex:
            raise InvalidRunRecordException(f"Invalid RunRecord: {ex}") from ex
        with self._write_lock:
            with self._session(action="insert") as session:
                add_record(session=session, model_inst=row)
        if row.id is None:  # pragma: no cover
            raise RunStoreException("Inserted RunRecord was not assigned an id.")
        _LOGGER.info(f"Stored run id={row.id}: {row.distance_meters:.1f} m in {row.duration_millis} ms")
        self._notify()
        return row.id

    def delete(self, record: RunRecord) -> None:
        if record.id is None:
            raise MissingDatabaseRecordException(record.id)
        self.delete_by_id(run_id=record.id)

    def delete_by_id(self, run_id: int) -> None:
        with self._write_lock:
            with self._session(action="delete") as session:
                row = session.get(RunRecord, run_id)
                if row is None:
                    raise MissingDatabaseRecordException(run_id)
                session.delete(row)
                session.commit()
        _LOGGER.info(f"Deleted run id={run_id}")
        self._notify()

    def delete_all(self) -> int:
        with self._write_lock:
            with self._session(action="delete_all") as session:
                result = session.exec(delete(RunRecord))  # type: ignore[call-overload]
                session.commit()
                num_deleted = result.rowcount
        _LOGGER.info(f"Deleted all runs ({num_deleted} removed).")
        self._notify()
        return num_deleted

    # Point reads

    def get_by_id(self, run_id: int) -> RunRecord | None:
        with self._session(action="get_by_id") as session:
            return session.get(RunRecord, run_id)

    def get_last_run(self) -> RunRecord | None:
        """The run with the most recent start time, if any."""
        with self._session(action="get_last_run") as session:
            return session.exec(
                select(RunRecord).order_by(desc(RunRecord.start_time), desc(RunRecord.id)).limit(1)
            ).first()

    # Reactive reads

    def get_all(self) -> LiveQuery[list[RunRecord]]:
        """All stored runs, newest start time first."""
        return self._live(("get_all",), self._query_all)

    def get_by_date(self, day: date) -> LiveQuery[list[RunRecord]]:
        """Runs whose (local) start time falls on the given calendar date, newest first."""
        return self._live(("get_by_date", day.isoformat()), lambda: self._query_by_date(day))

    def get_longest_runs(
        self, limit: int = DEFAULT_RUN_LIST_LIMIT, day: date | None = None
    ) -> LiveQuery[list[RunRecord]]:
        """The `limit` longest runs by distance, optionally restricted to runs started on `day`."""
        return self._live(
            ("get_longest_runs", limit, day),
            lambda: self._query_ordered(col(RunRecord.distance_meters), limit, day=day),
        )

    def get_longest_duration_runs(
        self, limit: int = DEFAULT_RUN_LIST_LIMIT, day: date | None = None
    ) -> LiveQuery[list[RunRecord]]:
        return self._live(
            ("get_longest_duration_runs", limit, day),
            lambda: self._query_ordered(col(RunRecord.duration_millis), limit, day=day),
        )

    def total_count(self) -> LiveQuery[int]:
        return self._live(("total_count",), lambda: self._query_scalar(func.count(RunRecord.id), 0))

    def total_distance(self) -> LiveQuery[float]:
        return self._live(("total_distance",), lambda: self._query_scalar(func.sum(RunRecord.distance_meters), 0.0))

    def average_distance(self) -> LiveQuery[float]:
        return self._live(
            ("average_distance",), lambda: self._query_scalar(func.avg(RunRecord.distance_meters), 0.0)
        )

    def today_count(self) -> LiveQuery[int]:
        return self._live(
            ("today_count",), lambda: self._query_scalar(func.count(RunRecord.id), 0, day=date.today())
        )

    def today_distance(self) -> LiveQuery[float]:
        return self._live(
            ("today_distance",),
            lambda: self._query_scalar(func.sum(RunRecord.distance_meters), 0.0, day=date.today()),
        )

    def aggregates(self) -> LiveQuery[RunAggregates]:
        """Count, total and average distance computed from a single read, so the three always agree."""
        return self._live(("aggregates",), self._query_aggregates)

    # Query implementations

    def _query_all(self) -> list[RunRecord]:
        with self._session(action="get_all") as session:
            return list(
                session.exec(select(RunRecord).order_by(desc(RunRecord.start_time), desc(RunRecord.id))).all()
            )

    def _query_by_date(self, day: date) -> list[RunRecord]:
        day_start, day_end = _day_bounds(day)
        with self._session(action="get_by_date") as session:
            return list(
                session.exec(
                    select(RunRecord)
                    .where(RunRecord.start_time >= day_start, RunRecord.start_time < day_end)
                    .order_by(desc(RunRecord.start_time), desc(RunRecord.id))
                ).all()
            )

    def _query_ordered(self, order_col: Any, limit: int, day: date | None = None) -> list[RunRecord]:
        statement = select(RunRecord)
        if day is not None:
            day_start, day_end = _day_bounds(day)
            statement = statement.where(RunRecord.start_time >= day_start, RunRecord.start_time < day_end)
        statement = statement.order_by(desc(order_col), desc(RunRecord.id)).limit(limit)
        with self._session(action="ordered_query") as session:
            return list(session.exec(statement).all())

    def _query_scalar(self, expr: Any, empty_value: T, day: date | None = None) -> T:
        statement = select(expr)
        if day is not None:
            day_start, day_end = _day_bounds(day)
            statement = statement.where(RunRecord.start_time >= day_start, RunRecord.start_time < day_end)
        with self._session(action="aggregate") as session:
            value = session.exec(statement).one()
        if value is None:
            return empty_value
        return type(empty_value)(value)  # type: ignore[call-arg]

    def _query_aggregates(self) -> RunAggregates:
        with self._session(action="aggregates") as session:
            count, total, average = session.exec(
                select(
                    func.count(RunRecord.id),
                    func.coalesce(func.sum(RunRecord.distance_meters), 0.0),
                    func.coalesce(func.avg(RunRecord.distance_meters), 0.0),
                )
            ).one()
        return RunAggregates(
            total_count=int(count), total_distance_meters=float(total), average_distance_meters=float(average)
        )
