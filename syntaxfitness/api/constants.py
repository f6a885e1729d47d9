from __future__ import annotations

import os
from enum import Enum
from typing import Final, NamedTuple

API_ROUTES_PREFIX: Final[str] = "/api"
SSE_MEDIA_TYPE: Final[str] = "text/event-stream"


class RoutePath(NamedTuple):
    """
    Class for describing a particular FastAPI endpoint in a way that it may be referenced by
    both the internal FastAPI decorators and by absolute endpoint paths consistently.

    :param: rel_path (str):  The relative endpoint path, without the fastapi_prefix.
        This is what is passed to the fastapi decorators.
    :param: api_prefix (str): The FastAPI app prefix which the endpoint lives under.
    """

    rel_path: str
    api_prefix: str

    @property
    def full_path(self) -> str:
        """The full endpoint path, including the fastapi_prefix."""
        return os.path.join(self.api_prefix, self.rel_path.removeprefix("/"))


class Endpoint(Enum):
    # /api/healthcheck
    HEALTHCHECK = RoutePath(rel_path="/healthcheck", api_prefix=API_ROUTES_PREFIX)
    # /api/config
    CONFIG = RoutePath(rel_path="/config", api_prefix=API_ROUTES_PREFIX)
    # /api/runs
    RUNS = RoutePath(rel_path="/runs", api_prefix=API_ROUTES_PREFIX)
    # /api/runs/{run_id}
    RUN = RoutePath(rel_path="/runs/{run_id}", api_prefix=API_ROUTES_PREFIX)
    # /api/stats
    STATS = RoutePath(rel_path="/stats", api_prefix=API_ROUTES_PREFIX)
    # /api/tracker
    TRACKER = RoutePath(rel_path="/tracker", api_prefix=API_ROUTES_PREFIX)
    # /api/tracker/start
    TRACKER_START = RoutePath(rel_path="/tracker/start", api_prefix=API_ROUTES_PREFIX)
    # /api/tracker/stop
    TRACKER_STOP = RoutePath(rel_path="/tracker/stop", api_prefix=API_ROUTES_PREFIX)
    # /api/tracker/commit
    TRACKER_COMMIT = RoutePath(rel_path="/tracker/commit", api_prefix=API_ROUTES_PREFIX)
    # /api/tracker/discard
    TRACKER_DISCARD = RoutePath(rel_path="/tracker/discard", api_prefix=API_ROUTES_PREFIX)
    # /api/tracker/stream
    TRACKER_STREAM = RoutePath(rel_path="/tracker/stream", api_prefix=API_ROUTES_PREFIX)
