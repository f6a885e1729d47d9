from typing import Annotated

from fastapi import Depends, Request

from syntaxfitness.config.app_settings import AppSettings
from syntaxfitness.store.run_store import RunStore
from syntaxfitness.tracker.run_tracker import RunTracker


def _get_app_settings(request: Request) -> AppSettings:
    return request.state.lifespan_singleton.app_settings


def _get_run_store(request: Request) -> RunStore:
    return request.state.lifespan_singleton.run_store


def _get_run_tracker(request: Request) -> RunTracker:
    return request.state.lifespan_singleton.run_tracker


AppSettingsDep = Annotated[AppSettings, Depends(_get_app_settings)]
RunStoreDep = Annotated[RunStore, Depends(_get_run_store)]
RunTrackerDep = Annotated[RunTracker, Depends(_get_run_tracker)]
