# pragma: no cover
import os

from rich.console import Console
from rich.logging import RichHandler

FORMAT = "%(message)s"
TERMINAL_COLS = int(os.getenv("COLUMNS", 120))
CONSOLE = Console(width=TERMINAL_COLS)
DATE_FORMAT = "[%m/%d/%Y %H:%M:%S]"
LOG_TIME_FORMAT = "%m/%d/%Y %H:%M:%S"


def create_rich_log_handler() -> RichHandler:
    """Returns a rich.logging.RichHandler instance, intended to be passed into the root logger only."""
    # https://stackoverflow.com/a/68878216
    return RichHandler(
        level="NOTSET",
        console=CONSOLE,
        log_time_format=LOG_TIME_FORMAT,
        omit_repeated_times=False,
        tracebacks_word_wrap=False,
    )
