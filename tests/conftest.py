import asyncio
import os
from collections import deque
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.engine.base import Engine
from sqlmodel import Session, StaticPool, create_engine

from syntaxfitness.config.app_settings import AppSettings, get_app_settings
from syntaxfitness.db.db_models import RunRecord
from syntaxfitness.db.db_utils import db_startup
from syntaxfitness.location.fix import Fix
from syntaxfitness.location.location_source import LocationSource
from syntaxfitness.store.run_store import RunStore

TEST_DIR_ABS_PATH = os.path.dirname(os.path.abspath(__file__))
PROJECT_ABS_PATH = os.path.dirname(TEST_DIR_ABS_PATH)
ROOT_MODULE_ABS_PATH = os.path.join(PROJECT_ABS_PATH, "syntaxfitness")

MOCK_RESOURCES_DIR_PATH = os.path.join(TEST_DIR_ABS_PATH, "resources")
INVALID_CONFIGS_DIR_PATH = os.path.join(MOCK_RESOURCES_DIR_PATH, "invalid_configs")
EXAMPLES_DIR_PATH = os.path.join(PROJECT_ABS_PATH, "examples")

BERLIN_START = Fix(latitude=52.5200, longitude=13.4050)
BERLIN_END = Fix(latitude=52.5190, longitude=13.4060)
EQUATOR_ORIGIN = Fix(latitude=0.0, longitude=0.0)
EQUATOR_ONE_DEGREE_EAST = Fix(latitude=0.0, longitude=1.0)
MOCK_START_TIME = datetime(2025, 6, 1, 7, 30, 0)


class ScriptedLocationSource(LocationSource):
    """
    Test double which resolves each request with the next scripted result: a `Fix` is returned, an exception is
    raised. When `gate` is set, requests wait on it before resolving, so tests can observe in-flight phases.
    """

    def __init__(self, results: list[Fix | Exception] | None = None):
        self._results: deque[Fix | Exception] = deque(results or [])
        self.num_requests = 0
        self.gate: asyncio.Event | None = None
        self.closed = False

    def push(self, *results: Fix | Exception) -> None:
        self._results.extend(results)

    async def request_current_fix(self) -> Fix:
        self.num_requests += 1
        if self.gate is not None:
            await self.gate.wait()
        result = self._results.popleft()
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self) -> None:
        self.closed = True


class TickingClock:
    """Deterministic replacement for `datetime.now`, advancing by `step` on every call."""

    def __init__(self, start: datetime = MOCK_START_TIME, step: timedelta = timedelta(minutes=5)):
        self._now = start
        self._step = step
        self.calls = 0

    def __call__(self) -> datetime:
        value = self._now
        self._now += self._step
        self.calls += 1
        return value


@pytest.fixture(scope="function")
def mock_engine() -> Engine:
    """
    In-memory SQLite engine shared across sessions, with the run tables created.
    https://sqlmodel.tiangolo.com/tutorial/fastapi/tests/?h=#pytest-fixtures
    """
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    db_startup(engine)
    return engine


@pytest.fixture(scope="function")
def mock_session(mock_engine: Engine) -> Generator[Session, None, None]:
    with Session(mock_engine) as session:
        yield session


@pytest.fixture(scope="function")
def run_store(mock_engine: Engine) -> RunStore:
    return RunStore(engine=mock_engine)


@pytest.fixture(scope="function")
def make_record() -> Callable[..., RunRecord]:
    """Factory fixture for valid, unsaved RunRecords."""

    def _make_record(
        start_fix: Fix = BERLIN_START,
        end_fix: Fix = BERLIN_END,
        start_time: datetime = MOCK_START_TIME,
        duration: timedelta = timedelta(minutes=10),
    ) -> RunRecord:
        return RunRecord.from_fixes(
            start_fix=start_fix, end_fix=end_fix, start_time=start_time, end_time=start_time + duration
        )

    return _make_record


@pytest.fixture(scope="function")
def scripted_location_source() -> ScriptedLocationSource:
    return ScriptedLocationSource()


@pytest.fixture(scope="function")
def ticking_clock() -> TickingClock:
    return TickingClock()


@pytest.fixture(scope="session")
def valid_config_filepath() -> str:
    return os.path.join(EXAMPLES_DIR_PATH, "config.yaml")


@pytest.fixture(scope="session")
def minimal_valid_config_filepath() -> str:
    return os.path.join(MOCK_RESOURCES_DIR_PATH, "minimal_config.yaml")


@pytest.fixture(scope="session")
def valid_app_settings(valid_config_filepath: str) -> AppSettings:
    return get_app_settings(src_yaml_filepath=Path(valid_config_filepath))


@pytest.fixture(scope="function")
def tmp_config_filepath(tmp_path: Path) -> Path:
    """A copy of the minimal config in a temp dir, so any relative db path lands inside the temp dir."""
    config_filepath = tmp_path / "config.yaml"
    with open(os.path.join(MOCK_RESOURCES_DIR_PATH, "minimal_config.yaml")) as src:
        config_filepath.write_text(src.read())
    return config_filepath
