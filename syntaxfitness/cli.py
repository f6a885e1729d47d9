"""
Expected Python version: 3.12+

USAGE: syntaxfitness --help
"""

import asyncio
import logging
from datetime import date
from pathlib import Path
from pprint import pprint
from typing import Final

import click
from rich.console import Console

from syntaxfitness.actions.common_actions import (
    delete_runs_action,
    open_run_store,
    run_history_action,
    run_stats_action,
    show_config_action,
    show_run_action,
    track_action,
)
from syntaxfitness.config.app_settings import AppSettings, get_app_settings, load_init_config_template
from syntaxfitness.config.field_validators import CLIOverrideSetting
from syntaxfitness.db.db_models import RunRecord
from syntaxfitness.location.location_source import LocationProvider, get_location_source
from syntaxfitness.stats.stats import RunAggregatesTable, RunDetailTable, RunHistoryTable
from syntaxfitness.tracker.run_tracker import RunTracker
from syntaxfitness.utils.cli_utils import DEFAULT_VERBOSITY, config_path_option, parse_run_date, subcommand_flag
from syntaxfitness.utils.exceptions import AppConfigException, RunStoreException
from syntaxfitness.utils.log_utils import CONSOLE, DATE_FORMAT, FORMAT, create_rich_log_handler
from syntaxfitness.version import get_project_version

logging.basicConfig(level="NOTSET", format=FORMAT, datefmt=DATE_FORMAT, handlers=[create_rich_log_handler()])
_LOGGER = logging.getLogger()

_APP_VERSION = get_project_version()
_OPTION_ENVVAR_PREFIX: Final[str] = "SYNTAXFITNESS"
_GROUP_PARAMS_KEY: Final[str] = "group_params"


def _load_settings(ctx: click.Context, config: str) -> AppSettings:
    try:
        return get_app_settings(src_yaml_filepath=Path(config), cli_overrides=ctx.obj.get(_GROUP_PARAMS_KEY))
    except AppConfigException as ex:
        _LOGGER.error(str(ex))
        ctx.exit(2)


def _print_run_detail(app_settings: AppSettings, record: RunRecord) -> None:
    RunDetailTable(
        record,
        decimal_places=app_settings.display.coordinate_decimal_places,
        coordinate_style=app_settings.display.coordinate_style,
    ).print_table(CONSOLE)


# pylint: disable=unused-argument,no-value-for-parameter
@click.group(
    context_settings={"auto_envvar_prefix": _OPTION_ENVVAR_PREFIX},
    help="syntaxfitness: Tracks runs from a start and end GPS fix, and keeps a history of them.",
)
@click.version_option(version=_APP_VERSION, package_name="syntaxfitness", prog_name="syntaxfitness")
@click.option(
    "-v",
    "--verbosity",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=DEFAULT_VERBOSITY,
    show_default=True,
    help="Sets the logging level.",
)
@click.option("--db-filepath", type=click.Path(dir_okay=False), required=False, show_envvar=True)
@click.option(
    "--location-provider",
    type=click.Choice([p.value for p in LocationProvider], case_sensitive=False),
    required=False,
    show_envvar=True,
)
@click.pass_context
def cli(
    ctx,
    verbosity: str | None = DEFAULT_VERBOSITY,
    db_filepath: str | None = None,
    location_provider: str | None = None,
) -> None:
    verbosity = verbosity or DEFAULT_VERBOSITY
    _LOGGER.setLevel(verbosity.upper())
    ctx.obj = {}
    possible_overrides = {
        CLIOverrideSetting.DB_FILEPATH.name: db_filepath,
        CLIOverrideSetting.LOCATION_PROVIDER.name: location_provider.lower() if location_provider else None,
    }
    ctx.obj[_GROUP_PARAMS_KEY] = {k: v for k, v in possible_overrides.items() if v is not None}


@cli.command(
    help="Interactively start and stop a run. The start and end positions come from the configured location provider.",
    short_help="Track a new run.",
)
@config_path_option
@click.pass_context
def track(ctx, config: str) -> None:
    app_settings = _load_settings(ctx, config)
    run_store = open_run_store(app_settings=app_settings)

    async def _track() -> None:
        location_source = get_location_source(app_settings=app_settings)
        tracker = RunTracker(location_source=location_source, run_store=run_store)
        try:
            record = await track_action(tracker=tracker, console=CONSOLE)
        finally:
            await tracker.aclose()
            await location_source.aclose()
        if record is not None:
            _print_run_detail(app_settings, record)

    asyncio.run(_track())


@cli.command(
    help="List stored runs, newest first. Optionally restrict to a single date, or show the longest runs instead.",
    short_help="List stored runs.",
)
@config_path_option
@click.option(
    "-d",
    "--date",
    "run_date",
    type=click.STRING,
    callback=parse_run_date,
    required=False,
    default=None,
    envvar=None,
    help="Only show runs started on this date (YYYY-MM-DD).",
)
@click.option(
    "--longest",
    type=click.IntRange(min=1),
    required=False,
    default=None,
    envvar=None,
    help="Show the N longest runs (by distance unless --by-duration is set).",
)
@subcommand_flag("--by-duration", help_msg="With --longest, rank runs by duration instead of distance.")
@click.option(
    "--tsv",
    "tsv_output_path",
    type=click.Path(dir_okay=False, writable=True),
    required=False,
    default=None,
    envvar=None,
    help="Additionally write the listed runs to this TSV file.",
)
@click.pass_context
def history(
    ctx,
    config: str,
    run_date: date | None = None,
    longest: int | None = None,
    by_duration: bool = False,
    tsv_output_path: str | None = None,
) -> None:
    app_settings = _load_settings(ctx, config)
    try:
        records = run_history_action(
            run_store=open_run_store(app_settings=app_settings), day=run_date, longest=longest, by_duration=by_duration
        )
    except RunStoreException as ex:
        _LOGGER.error(str(ex))
        ctx.exit(2)
    title = "Run History" if run_date is None else f"Runs on {run_date.isoformat()}"
    RunHistoryTable(records=records, title=title, tsv_output_path=tsv_output_path).print_and_save(CONSOLE)


@cli.command(
    help="Show the total run count, total distance and average distance across all stored runs, plus today's totals.",
    short_help="Show run totals and averages.",
)
@config_path_option
@click.pass_context
def stats(ctx, config: str) -> None:
    app_settings = _load_settings(ctx, config)
    try:
        summary = run_stats_action(run_store=open_run_store(app_settings=app_settings))
    except RunStoreException as ex:
        _LOGGER.error(str(ex))
        ctx.exit(2)
    RunAggregatesTable(
        aggregates=summary.aggregates,
        today_count=summary.today_count,
        today_distance=summary.today_distance_meters,
    ).print_table(CONSOLE)


@cli.command(
    name="show-run",
    help="Show every stored field of a single run, along with its derived pace and average speed.",
    short_help="Show the details of one run.",
)
@config_path_option
@click.argument("run_id", type=click.INT, envvar=None)
@click.pass_context
def show_run(ctx, config: str, run_id: int) -> None:
    app_settings = _load_settings(ctx, config)
    try:
        record = show_run_action(run_store=open_run_store(app_settings=app_settings), run_id=run_id)
    except RunStoreException as ex:
        _LOGGER.error(str(ex))
        ctx.exit(2)
    _print_run_detail(app_settings, record)


@cli.command(help="Delete a single stored run, or every stored run.", short_help="Delete stored runs.")
@config_path_option
@click.option("--run-id", type=click.INT, required=False, default=None, envvar=None, help="Id of the run to delete.")
@subcommand_flag("--all", help_msg="Delete every stored run.")
@click.option("-y", "--yes", is_flag=True, default=False, envvar=None, help="Skip the confirmation prompt for --all.")
@click.pass_context
def delete(ctx, config: str, run_id: int | None = None, all: bool = False, yes: bool = False) -> None:  # noqa: A002
    if (run_id is None) == (not all):
        raise click.UsageError("Provide exactly one of --run-id or --all.")
    app_settings = _load_settings(ctx, config)
    if all and not yes:
        click.confirm("Delete every stored run?", abort=True)
    try:
        num_deleted = delete_runs_action(
            run_store=open_run_store(app_settings=app_settings), run_id=run_id, delete_all=all
        )
    except RunStoreException as ex:
        _LOGGER.error(str(ex))
        ctx.exit(2)
    click.echo(f"Deleted {num_deleted} run(s).")


@cli.command(
    help="Output the contents of your existing config.yaml, along with any default values and/or CLI option overrides.",
    short_help="Output the current state of your app config for inspection.",
)
@config_path_option
@click.pass_context
def conf(ctx, config: str) -> None:
    app_settings = _load_settings(ctx, config)
    pprint(show_config_action(app_settings=app_settings))


@cli.command(
    help="Output the contents of a template starter config to aid in initial app setup. Output may be redirected to the desired config filepath on your host machine.",
    short_help="Output the contents of a starter config template for initial setup.",
)
def init_conf() -> None:
    raw_init_conf_data_str = load_init_config_template()
    print(raw_init_conf_data_str)


if __name__ == "__main__":  # pragma: no cover
    cli(prog_name="syntaxfitness")
