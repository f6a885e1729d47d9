import csv
import logging
import re
from collections.abc import Callable

from rich.console import Console
from rich.table import Column, Table
from rich.text import Text

from syntaxfitness.db.db_models import RunRecord
from syntaxfitness.geo.geo_math import (
    CoordinateStyle,
    format_distance,
    format_distance_km,
    format_duration,
    format_pace,
    format_position,
    format_speed,
)
from syntaxfitness.store.run_store import RunAggregates
from syntaxfitness.utils.constants import (
    DEFAULT_COORDINATE_DECIMAL_PLACES,
    METERS_IN_KM,
    RUN_DATETIME_STR_FORMAT,
    STATS_NONE,
)
from syntaxfitness.utils.exceptions import StatsTableException

_LOGGER = logging.getLogger(__name__)


def _stylize_distance_entry(distance_str: str) -> str:
    """Highlights runs of at least a kilometer."""
    if distance_str.endswith(" km"):
        return "green"
    return "white"


def _display_distance(distance: float) -> str:
    return format_distance_km(distance) if distance >= METERS_IN_KM else format_distance(distance)


class StatsTable:
    """
    Helper class to create a Rich table for summary outputs on the CLI.
    Additionally supports functions on a per-cell basis to conditionally
    stylize a columns' cell data base on its value.
    """

    def __init__(
        self,
        title: str,
        columns: list[Column],
        tsv_output_path: str | None = None,
        cell_idxs_to_style_fns: dict[int, Callable[[str], str]] | None = None,
        caption: str | None = None,
    ):
        self._title = title
        self._columns = columns
        self._tsv_output_path = tsv_output_path
        self._num_cols = len(self._columns)
        cell_idxs_to_style_fns = cell_idxs_to_style_fns or {}
        if len(cell_idxs_to_style_fns) > self._num_cols or any(
            idx < 0 or self._num_cols <= idx for idx in cell_idxs_to_style_fns
        ):
            raise StatsTableException(
                "Invalid cell_idxs_to_style_fns value. Must not contain more entries than table has columns."
            )
        self._per_row_cell_style_fns = {i: cell_idxs_to_style_fns.get(i) for i in range(self._num_cols)}
        self._caption = caption
        self._table = Table(
            *columns,
            title=self._title,
            caption=self._caption,
            title_style="bold white",
            show_lines=True,
            expand=True,
        )
        self._raw_rows: list[list[str]] = []

    @property
    def num_rows(self) -> int:
        return len(self._raw_rows)

    def add_row(self, row: list[str]) -> None:
        if len(row) != self._num_cols:
            raise StatsTableException(
                f"Invalid row provided: length {len(row)}, but StatsTable instance has {self._num_cols} columns {row}"
            )
        stylized_row = [
            (
                cell_data
                if not self._per_row_cell_style_fns[i]
                else Text(cell_data, style=self._per_row_cell_style_fns[i](cell_data))
            )
            for i, cell_data in enumerate(row)
        ]
        self._table.add_row(*stylized_row)
        self._raw_rows.append(row)

    def add_rows(self, rows: list[list[str]]) -> None:
        for row in rows:
            self.add_row(row)

    def print_table(self, console: Console | None = None) -> None:
        (console or Console()).print(self._table)

    def to_tsv_file(self) -> None:
        if not self._tsv_output_path:
            raise StatsTableException(f"{self.__class__.__name__} has no TSV output path set.")
        tsv_header = [re.sub(r"\s+", "_", str(col.header)) for col in self._table.columns]
        with open(self._tsv_output_path, "w") as f:
            tsv_writer = csv.writer(f, delimiter="\t", lineterminator="\n")
            tsv_writer.writerow(tsv_header)
            tsv_writer.writerows(self._raw_rows)
        _LOGGER.info(f"Wrote {len(self._raw_rows)} rows to {self._tsv_output_path}")

    def print_and_save(self, console: Console | None = None) -> None:
        self.print_table(console=console)
        if self._tsv_output_path:
            self.to_tsv_file()


def run_history_row(record: RunRecord) -> list[str]:
    return [
        str(record.id),
        record.start_time.strftime(RUN_DATETIME_STR_FORMAT),
        _display_distance(record.distance_meters),
        format_duration(record.duration_millis),
        format_pace(record.pace_seconds_per_km),
        format_speed(record.average_speed_mps),
    ]


class RunHistoryTable(StatsTable):
    """Utility subclass of StatsTable for printing a list of stored runs."""

    def __init__(self, records: list[RunRecord], title: str = "Run History", tsv_output_path: str | None = None):
        super().__init__(
            title=title,
            columns=[
                Column(header="Run id", justify="right", no_wrap=True),
                Column(header="Started", no_wrap=True, ratio=2),
                Column(header="Distance", justify="right", no_wrap=True, ratio=1),
                Column(header="Duration", justify="right", no_wrap=True, ratio=1),
                Column(header="Pace", justify="right", style="cyan", no_wrap=True, ratio=1),
                Column(header="Avg speed", justify="right", style="magenta", no_wrap=True, ratio=1),
            ],
            tsv_output_path=tsv_output_path,
            cell_idxs_to_style_fns={2: _stylize_distance_entry},
            caption=None if records else "No runs recorded yet.",
        )
        self.add_rows([run_history_row(record) for record in records])


class RunAggregatesTable(StatsTable):
    """Utility subclass of StatsTable for printing the total / average stats across all stored runs."""

    def __init__(self, aggregates: RunAggregates, today_count: int, today_distance: float):
        super().__init__(
            title="Run Stats",
            columns=[
                Column(header="Total runs", justify="left", no_wrap=True, ratio=1),
                Column(header="Total distance", no_wrap=True, ratio=1),
                Column(header="Average distance", no_wrap=True, ratio=1),
                Column(header="Runs today", no_wrap=True, ratio=1),
                Column(header="Distance today", no_wrap=True, ratio=1),
            ],
            cell_idxs_to_style_fns={1: _stylize_distance_entry, 4: _stylize_distance_entry},
        )
        self.add_row(
            [
                str(aggregates.total_count),
                _display_distance(aggregates.total_distance_meters),
                _display_distance(aggregates.average_distance_meters) if aggregates.total_count else STATS_NONE,
                str(today_count),
                _display_distance(today_distance),
            ]
        )


class RunDetailTable(StatsTable):
    """Utility subclass of StatsTable for printing every field of a single run."""

    def __init__(
        self,
        record: RunRecord,
        decimal_places: int = DEFAULT_COORDINATE_DECIMAL_PLACES,
        coordinate_style: CoordinateStyle = CoordinateStyle.PLAIN,
    ):
        super().__init__(
            title=f"Run {record.id}",
            columns=[
                Column(header="Field", justify="left", style="cyan", no_wrap=True, ratio=1),
                Column(header="Value", no_wrap=False, ratio=2),
            ],
        )
        self.add_rows(
            [
                ["Started", record.start_time.strftime(RUN_DATETIME_STR_FORMAT)],
                ["Finished", record.end_time.strftime(RUN_DATETIME_STR_FORMAT)],
                [
                    "Start position",
                    format_position(
                        record.start_latitude, record.start_longitude, coordinate_style, decimal_places=decimal_places
                    ),
                ],
                [
                    "End position",
                    format_position(
                        record.end_latitude, record.end_longitude, coordinate_style, decimal_places=decimal_places
                    ),
                ],
                ["Distance", format_distance(record.distance_meters)],
                ["Duration", format_duration(record.duration_millis)],
                ["Pace", format_pace(record.pace_seconds_per_km)],
                ["Average speed", format_speed(record.average_speed_mps)],
            ]
        )
