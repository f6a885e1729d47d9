from typing import Any


class AppConfigException(Exception):
    """Exception for invalid configuration errors."""

    pass


class LocationAcquisitionError(Exception):
    """Exception for a location fix which could not be obtained (timeout, permission, provider unavailable)."""

    pass


class RunTrackerException(Exception):
    """Exception for invalid RunTracker usage or execution errors."""

    pass


class InvalidTransitionError(RunTrackerException):
    """Exception raised when a RunTracker action is requested from a phase which does not permit it."""

    def __init__(self, action: str, phase: Any):
        self.action = action
        self.phase = phase
        super().__init__(f"Cannot {action} a run while the tracker is in phase '{str(phase)}'.")


class RunStoreException(Exception):
    """Exception for failed reads or writes against the RunStore."""

    pass


class InvalidRunRecordException(RunStoreException):
    """Exception for RunRecord instances which violate the record invariants (coordinates, times, distance)."""

    pass


class MissingDatabaseRecordException(RunStoreException):
    """Exception raised when an action requires an existing `RunRecord` row, but none exists."""

    def __init__(self, run_id: Any):  # pragma: no cover
        super().__init__(f"No RunRecord found with id: {str(run_id)}")


class StatsTableException(Exception):
    """
    Exception for errors from StatsTable / subclasses.
    """

    pass
