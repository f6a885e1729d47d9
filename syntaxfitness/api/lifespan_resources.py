"""
Collection of singleton resources spanning the full FastAPI lifespan.

These are NOT FastAPI dependencies, as those are scoped-per request. For more, see link below:
https://fastapi.tiangolo.com/advanced/events/
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from syntaxfitness.actions.common_actions import open_run_store
from syntaxfitness.config.app_settings import get_app_settings
from syntaxfitness.location.location_source import get_location_source
from syntaxfitness.tracker.run_tracker import RunTracker
from syntaxfitness.version import get_project_version

if TYPE_CHECKING:
    from pathlib import Path

    from syntaxfitness.config.app_settings import AppSettings
    from syntaxfitness.location.location_source import LocationSource
    from syntaxfitness.store.run_store import RunStore

_LOGGER = logging.getLogger(__name__)


def get_lifespan_singleton() -> LifespanSingleton:
    """The only function that FastAPI logic should call to get the lifespan singleton"""
    return LifespanSingleton()


@dataclass(frozen=True)
class LifespanSingleton:
    """Wrapper singleton class for managing any singleton lifespan objects as attributes."""

    app_settings: AppSettings = field(init=False)
    config_filepath: Path = field(init=False)
    run_store: RunStore = field(init=False)
    location_source: LocationSource = field(init=False)
    run_tracker: RunTracker = field(init=False)
    project_version: str = field(init=False)

    _instance: ClassVar[LifespanSingleton | None] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __post_init__(self):
        if "run_tracker" in self.__dict__:
            return
        object.__setattr__(self, "app_settings", get_app_settings())
        object.__setattr__(self, "config_filepath", self.app_settings.src_yaml_filepath)
        object.__setattr__(self, "run_store", open_run_store(app_settings=self.app_settings))
        object.__setattr__(self, "location_source", get_location_source(app_settings=self.app_settings))
        object.__setattr__(
            self, "run_tracker", RunTracker(location_source=self.location_source, run_store=self.run_store)
        )
        object.__setattr__(self, "project_version", get_project_version())
        _LOGGER.info(f"Lifespan resources ready. Runs stored at {self.app_settings.get_db_filepath()}")

    async def shutdown(self) -> None:
        """Called at the end of the FastAPI app during the cleanup phase of the lifespan function."""
        await self.run_tracker.aclose()
        await self.location_source.aclose()
        type(self)._instance = None
