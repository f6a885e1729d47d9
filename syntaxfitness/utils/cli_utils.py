"""
Contains a few helper decorators / functions to reduce the repeated code in cli.py.
"""

from datetime import date, datetime
from functools import wraps

import click

from syntaxfitness.utils.constants import CONFIG_ENVVAR, RUN_DATE_STR_FORMAT

DEFAULT_VERBOSITY = "WARNING"


# Adopted from here to reduce repeat code: https://github.com/pallets/click/issues/108#issuecomment-280489786
def config_path_option(func):
    @click.option(
        "-c",
        "--config",
        required=True,
        envvar=CONFIG_ENVVAR,
        show_envvar=True,
        type=click.Path(exists=True, dir_okay=False),
        help="Absolute path to the application config.yaml file.",
    )
    @wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)

    return wrapper


def subcommand_flag(name, help_msg):
    def decorator(func):
        @click.option(name, envvar=None, is_flag=True, default=False, help=help_msg)
        @wraps(func)
        def wrapper(*args, **kwargs):
            return func(*args, **kwargs)

        return wrapper

    return decorator


def parse_run_date(ctx: click.Context, param: click.Parameter, value: str | None) -> date | None:
    """click callback converting a `YYYY-MM-DD` option value into a `date`."""
    if value is None:
        return None
    try:
        return datetime.strptime(value, RUN_DATE_STR_FORMAT).date()
    except ValueError as ex:
        raise click.BadParameter(f"Expected a date formatted as YYYY-MM-DD. Got: '{value}'") from ex
