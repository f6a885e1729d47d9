"""Entrypoint for the syntaxfitness server and FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import cast

import uvicorn
from fastapi import FastAPI

from syntaxfitness.api.lifespan_resources import LifespanSingleton, get_lifespan_singleton
from syntaxfitness.api.routes.api_routes import syntaxfitness_api_router
from syntaxfitness.config.app_settings import get_app_settings
from syntaxfitness.utils.log_utils import DATE_FORMAT, FORMAT, create_rich_log_handler
from syntaxfitness.version import get_project_version

_LOGGER = logging.getLogger(__name__)


# Set up some application state stuff
@asynccontextmanager
async def _app_lifespan(app: FastAPI):
    # Startup events: Initialize stuff
    _LOGGER.info("Running fastapi app lifespan startup ...")
    singleton = get_lifespan_singleton()
    logging.getLogger().setLevel(singleton.app_settings.server.log_level.upper())
    app.state.lifespan_singleton = singleton
    cast("LifespanSingleton", app.state.lifespan_singleton)
    # https://github.com/fastapi/fastapi/discussions/9664#discussioncomment-11170662
    yield {"lifespan_singleton": singleton}
    # Shutdown events: Clean up stuff
    _LOGGER.info("Server shutting down ...")
    await app.state.lifespan_singleton.shutdown()


fastapi_app = FastAPI(title="syntaxfitness", version=get_project_version(), lifespan=_app_lifespan)
fastapi_app.include_router(syntaxfitness_api_router)


def run_server() -> None:  # pragma: no cover
    app_settings = get_app_settings()
    log_level = app_settings.server.log_level
    logging.basicConfig(level=log_level.upper(), format=FORMAT, datefmt=DATE_FORMAT, handlers=[create_rich_log_handler()])
    # A single worker: the RunTracker state lives in this process.
    uvicorn.run(
        "syntaxfitness.api.main:fastapi_app",
        host=app_settings.server.host,
        port=app_settings.server.port,
        log_level=log_level,
        workers=1,
    )


if __name__ == "__main__":  # pragma: no cover
    run_server()
