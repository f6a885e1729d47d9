import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Generator
from contextlib import contextmanager
from datetime import date
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, StreamingResponse

from syntaxfitness.actions.common_actions import (
    RunStatsSummary,
    delete_runs_action,
    run_history_action,
    run_stats_action,
    show_config_action,
    show_run_action,
)
from syntaxfitness.api.api_models import DeleteResponse, RunListResponse, RunResponse, TrackerResponse
from syntaxfitness.api.constants import API_ROUTES_PREFIX, SSE_MEDIA_TYPE, Endpoint
from syntaxfitness.api.fastapi_dependencies import AppSettingsDep, RunStoreDep, RunTrackerDep
from syntaxfitness.tracker.session import session_to_dict
from syntaxfitness.utils.exceptions import (
    InvalidTransitionError,
    LocationAcquisitionError,
    MissingDatabaseRecordException,
    RunStoreException,
)

_LOGGER = logging.getLogger(__name__)
syntaxfitness_api_router = APIRouter(prefix=API_ROUTES_PREFIX)


@contextmanager
def _http_errors() -> Generator[None, None, None]:
    """Maps the tracker / store exceptions onto their HTTP status codes."""
    try:
        yield
    except InvalidTransitionError as ex:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(ex)) from ex
    except LocationAcquisitionError as ex:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(ex)) from ex
    except MissingDatabaseRecordException as ex:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(ex)) from ex
    except RunStoreException as ex:
        _LOGGER.error("RunStore failure while handling request.", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(ex)) from ex


# /api/healthcheck
@syntaxfitness_api_router.get(Endpoint.HEALTHCHECK.value.rel_path)
async def healthcheck_endpoint(request: Request) -> JSONResponse:
    return JSONResponse(content={"version": request.state.lifespan_singleton.project_version}, status_code=200)


# /api/config
@syntaxfitness_api_router.get(Endpoint.CONFIG.value.rel_path)
async def show_config_endpoint(app_settings: AppSettingsDep) -> JSONResponse:
    return JSONResponse(content=show_config_action(app_settings=app_settings))


# /api/runs?date=<YYYY-MM-DD>&longest=<int>&by_duration=<bool>
@syntaxfitness_api_router.get(Endpoint.RUNS.value.rel_path)
def list_runs_endpoint(
    run_store: RunStoreDep,
    date: date | None = None,  # noqa: A002
    longest: Annotated[int | None, Query(gt=0)] = None,
    by_duration: bool = False,
) -> RunListResponse:
    with _http_errors():
        records = run_history_action(run_store=run_store, day=date, longest=longest, by_duration=by_duration)
    return RunListResponse.from_records(records)


# /api/runs/{run_id}
@syntaxfitness_api_router.get(Endpoint.RUN.value.rel_path)
def get_run_endpoint(run_store: RunStoreDep, run_id: int) -> RunResponse:
    with _http_errors():
        record = show_run_action(run_store=run_store, run_id=run_id)
    return RunResponse.from_record(record)


# /api/runs/{run_id}
@syntaxfitness_api_router.delete(Endpoint.RUN.value.rel_path)
def delete_run_endpoint(run_store: RunStoreDep, run_id: int) -> DeleteResponse:
    with _http_errors():
        num_deleted = delete_runs_action(run_store=run_store, run_id=run_id)
    return DeleteResponse(deleted=num_deleted)


# /api/runs
@syntaxfitness_api_router.delete(Endpoint.RUNS.value.rel_path)
def delete_all_runs_endpoint(run_store: RunStoreDep) -> DeleteResponse:
    with _http_errors():
        num_deleted = delete_runs_action(run_store=run_store, delete_all=True)
    return DeleteResponse(deleted=num_deleted)


# /api/stats
@syntaxfitness_api_router.get(Endpoint.STATS.value.rel_path)
def stats_endpoint(run_store: RunStoreDep) -> RunStatsSummary:
    with _http_errors():
        return run_stats_action(run_store=run_store)


# /api/tracker
@syntaxfitness_api_router.get(Endpoint.TRACKER.value.rel_path)
async def tracker_endpoint(tracker: RunTrackerDep) -> TrackerResponse:
    return TrackerResponse.from_tracker(tracker)


# /api/tracker/start?wait=<bool>
@syntaxfitness_api_router.post(Endpoint.TRACKER_START.value.rel_path)
async def tracker_start_endpoint(tracker: RunTrackerDep, response: Response, wait: bool = False) -> TrackerResponse:
    with _http_errors():
        task = tracker.start()
        if wait:
            # Shielded so a dropped client connection does not cancel the acquisition itself.
            await asyncio.shield(task)
        else:
            response.status_code = status.HTTP_202_ACCEPTED
    return TrackerResponse.from_tracker(tracker)


# /api/tracker/stop?wait=<bool>
@syntaxfitness_api_router.post(Endpoint.TRACKER_STOP.value.rel_path)
async def tracker_stop_endpoint(tracker: RunTrackerDep, response: Response, wait: bool = False) -> TrackerResponse:
    with _http_errors():
        task = tracker.stop()
        if wait:
            await asyncio.shield(task)
        else:
            response.status_code = status.HTTP_202_ACCEPTED
    return TrackerResponse.from_tracker(tracker)


# /api/tracker/commit
@syntaxfitness_api_router.post(Endpoint.TRACKER_COMMIT.value.rel_path)
async def tracker_commit_endpoint(tracker: RunTrackerDep) -> RunResponse:
    with _http_errors():
        record = tracker.retry_commit()
    return RunResponse.from_record(record)


# /api/tracker/discard
@syntaxfitness_api_router.post(Endpoint.TRACKER_DISCARD.value.rel_path)
async def tracker_discard_endpoint(tracker: RunTrackerDep) -> TrackerResponse:
    with _http_errors():
        tracker.discard_pending()
    return TrackerResponse.from_tracker(tracker)


# /api/tracker/stream?max_events=<int>
@syntaxfitness_api_router.get(Endpoint.TRACKER_STREAM.value.rel_path)
async def tracker_stream_endpoint(
    tracker: RunTrackerDep, max_events: Annotated[int | None, Query(gt=0)] = None
) -> StreamingResponse:
    """Server-sent events stream of tracker session changes, starting with the current session."""

    async def _events() -> AsyncGenerator[str, None]:
        num_sent = 0
        with tracker.sessions.subscribe() as sub:
            async for session in sub:
                payload = session_to_dict(session) | {"status_message": tracker.status_message}
                yield f"event: session\ndata: {json.dumps(payload)}\n\n"
                num_sent += 1
                if max_events is not None and num_sent >= max_events:
                    return

    return StreamingResponse(_events(), media_type=SSE_MEDIA_TYPE)
