from typing import Final

EARTH_RADIUS_KM: Final[float] = 6371.0
METERS_IN_KM: Final[float] = 1000.0
MILLIS_IN_SECOND: Final[int] = 1000

MIN_LATITUDE: Final[float] = -90.0
MAX_LATITUDE: Final[float] = 90.0
MIN_LONGITUDE: Final[float] = -180.0
MAX_LONGITUDE: Final[float] = 180.0

DEFAULT_COORDINATE_DECIMAL_PLACES: Final[int] = 4
# Display text for a coordinate which has not been resolved yet
UNSET_COORDINATE_TEXT: Final[str] = "--"
STATS_NONE: Final[str] = "N/A"

DEFAULT_DB_FILENAME: Final[str] = "syntaxfitness.db"
DEFAULT_RUN_LIST_LIMIT: Final[int] = 10

RUN_DATE_STR_FORMAT: Final[str] = "%Y-%m-%d"
RUN_DATETIME_STR_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

STATUS_READY: Final[str] = "Ready to start"
STATUS_ACQUIRING: Final[str] = "Acquiring GPS position..."
STATUS_RUNNING: Final[str] = "Run in progress..."
STATUS_SAVING: Final[str] = "Saving run..."
STATUS_FINISHED: Final[str] = "Run finished - ready for a new run"
STATUS_START_FAILED: Final[str] = "Could not acquire GPS position - start again to retry"
STATUS_STOP_FAILED: Final[str] = "Could not acquire GPS position - stop again to retry"
STATUS_COMMIT_FAILED: Final[str] = "Run finished but could not be saved - retry saving"
STATUS_DISCARDED: Final[str] = "Unsaved run discarded - ready for a new run"

CONFIG_ENVVAR: Final[str] = "SYNTAXFITNESS_CONFIG"
INIT_CONF_FILENAME: Final[str] = "init_conf.yaml"
