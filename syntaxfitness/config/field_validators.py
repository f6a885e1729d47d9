"""
Various field validator definitions for the Pydantic models representing
the `syntaxfitness` application config. For more on Pydantic field validators, see the link below:
https://docs.pydantic.dev/latest/concepts/validators/#field-validators
"""

from enum import IntEnum, StrEnum, unique
from typing import Annotated, Any

from pydantic import AfterValidator

from syntaxfitness.location.location_source import LocationProvider


@unique
class HttpTimeoutSeconds(IntEnum):
    """Enum of settings bounds for the HTTP location source's request timeout."""

    DEFAULT = 10
    MIN = 1
    MAX = 60


@unique
class CoordinateDecimalPlaces(IntEnum):
    """Enum of settings bounds for the number of decimal places used when displaying coordinates."""

    DEFAULT = 4
    MIN = 0
    MAX = 8


@unique
class CLIOverrideSetting(StrEnum):
    """
    Enum of CLI param names which can override their equivalent AppSettings fields.
    Values should reference the settings class' full nested attr name.
    """

    DB_FILEPATH = "storage.db_filepath"
    LOCATION_PROVIDER = "location.provider"


def validate_raw_cli_overrides(value: dict[str, Any]) -> dict[str, Any]:
    """Validates the CLI-provided settings overrides, if any."""
    valid_keys = {member.name for member in CLIOverrideSetting}
    for k, v in value.items():
        if k.upper() not in valid_keys:
            raise ValueError(
                f"Invalid CLI override settings key: '{k}' is not a valid key. Available valid keys are: {valid_keys}"
            )
        if not v:
            raise ValueError(f"Invalid CLI override settings value: {v}. Must be non-empty, non-NoneType.")
    return value


def _validate_location_provider(value: str) -> str:
    allowed_values = {member.value for member in LocationProvider}
    if value not in allowed_values:
        raise ValueError(f"location.provider must be one of: {sorted(allowed_values)}. Got: '{value}'")
    return value


def _validate_http_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError(f"location.http.url must be an http(s) URL. Got: '{value}'")
    return value


ValidLocationProvider = Annotated[str, AfterValidator(_validate_location_provider)]
ValidHttpUrl = Annotated[str, AfterValidator(_validate_http_url)]
