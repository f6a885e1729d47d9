from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from syntaxfitness.api.lifespan_resources import LifespanSingleton
from syntaxfitness.api.main import fastapi_app
from syntaxfitness.config.app_settings import AppSettings
from syntaxfitness.store.run_store import RunStore
from syntaxfitness.tracker.run_tracker import RunTracker
from syntaxfitness.version import get_project_version
from tests.conftest import ScriptedLocationSource, TickingClock


@pytest.fixture(scope="function")
def api_run_tracker(
    scripted_location_source: ScriptedLocationSource, run_store: RunStore, ticking_clock: TickingClock
) -> RunTracker:
    return RunTracker(location_source=scripted_location_source, run_store=run_store, clock=ticking_clock)


@pytest.fixture(scope="function")
def mock_lifespan_singleton(
    valid_app_settings: AppSettings,
    run_store: RunStore,
    scripted_location_source: ScriptedLocationSource,
    api_run_tracker: RunTracker,
) -> MagicMock:
    singleton_inst = MagicMock(spec=LifespanSingleton)
    singleton_inst.app_settings = valid_app_settings
    singleton_inst.config_filepath = valid_app_settings.src_yaml_filepath
    singleton_inst.run_store = run_store
    singleton_inst.location_source = scripted_location_source
    singleton_inst.run_tracker = api_run_tracker
    singleton_inst.project_version = get_project_version()
    singleton_inst.shutdown = AsyncMock(return_value=None)
    return singleton_inst


@pytest.fixture(scope="function")
def client(mock_lifespan_singleton: MagicMock) -> Generator[TestClient, None, None]:
    with patch("syntaxfitness.api.main.get_lifespan_singleton", return_value=mock_lifespan_singleton):
        with TestClient(app=fastapi_app) as test_client:
            yield test_client
