import logging
import os
import sys
from functools import reduce
from pathlib import Path
from typing import Any, Literal, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource

from syntaxfitness.config.field_validators import (
    CLIOverrideSetting,
    CoordinateDecimalPlaces,
    HttpTimeoutSeconds,
    ValidHttpUrl,
    ValidLocationProvider,
    validate_raw_cli_overrides,
)
from syntaxfitness.geo.geo_math import CoordinateStyle
from syntaxfitness.location.fix import Fix
from syntaxfitness.location.location_source import LocationProvider
from syntaxfitness.utils.constants import CONFIG_ENVVAR, DEFAULT_DB_FILENAME, INIT_CONF_FILENAME
from syntaxfitness.utils.exceptions import AppConfigException

_LOGGER = logging.getLogger(__name__)


class StorageConfig(BaseModel):
    """Run storage settings defined in the syntaxfitness config at `storage`."""

    model_config = ConfigDict(frozen=True, validate_default=True, extra="ignore")
    db_filepath: Path = Field(default=Path(DEFAULT_DB_FILENAME))


class StaticLocationConfig(BaseModel):
    """Settings for the `static` location provider, defined at `location.static`."""

    model_config = ConfigDict(frozen=True, validate_default=True, extra="ignore")
    fixes: list[Fix] = Field(
        default_factory=lambda: [Fix(latitude=52.5200, longitude=13.4050), Fix(latitude=52.5190, longitude=13.4060)]
    )
    delay_seconds: float = Field(default=0.0, ge=0.0, le=30.0)

    @model_validator(mode="after")
    def post_model_validator(self) -> Self:
        if len(self.fixes) == 0:
            raise ValueError("location.static.fixes must have at least one entry.")
        return self


class HttpLocationConfig(BaseModel):
    """Settings for the `http` location provider, defined at `location.http`."""

    model_config = ConfigDict(frozen=True, validate_default=True, extra="ignore")
    url: ValidHttpUrl
    timeout_seconds: int = Field(
        ge=HttpTimeoutSeconds.MIN.value, le=HttpTimeoutSeconds.MAX.value, default=HttpTimeoutSeconds.DEFAULT.value
    )


class LocationConfig(BaseModel):
    """App settings defined under the syntaxfitness yaml config's top-level `location` key."""

    model_config = ConfigDict(frozen=True, validate_default=True, extra="ignore")
    provider: ValidLocationProvider = Field(default=LocationProvider.STATIC.value)
    static: StaticLocationConfig = Field(default_factory=StaticLocationConfig)
    http: HttpLocationConfig | None = None

    @model_validator(mode="after")
    def post_model_validator(self) -> Self:
        if self.provider == LocationProvider.HTTP.value and self.http is None:
            raise ValueError("location.http must be set when location.provider is 'http'.")
        return self


class DisplayConfig(BaseModel):
    model_config = ConfigDict(frozen=True, validate_default=True, extra="ignore")
    coordinate_decimal_places: int = Field(
        ge=CoordinateDecimalPlaces.MIN.value,
        le=CoordinateDecimalPlaces.MAX.value,
        default=CoordinateDecimalPlaces.DEFAULT.value,
    )
    coordinate_style: CoordinateStyle = Field(default=CoordinateStyle.PLAIN)


class ServerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, validate_default=True, extra="ignore")
    host: str = Field(default="127.0.0.1", min_length=1)
    port: int = Field(default=8000, ge=1, le=65535)
    log_level: Literal["critical", "error", "warning", "info", "debug"] = Field(default="info")


class AppSettings(BaseSettings):
    """Pydantic settings class encapsulating the `syntaxfitness` application yaml config."""

    model_config = SettingsConfigDict(frozen=True, extra="ignore")
    src_yaml_filepath: Path
    storage: StorageConfig = Field(default_factory=StorageConfig)
    location: LocationConfig = Field(default_factory=LocationConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    # Private, post-init attributes below
    _config_directory_path: Path
    _db_filepath: Path

    def model_post_init(self, context: Any) -> None:
        """
        Assign derived, private instance attributes.
        https://docs.pydantic.dev/latest/concepts/models/#private-model-attributes
        """
        self._config_directory_path = Path(os.path.dirname(os.path.abspath(self.src_yaml_filepath)))
        db_filepath = self.storage.db_filepath.expanduser()
        self._db_filepath = db_filepath if db_filepath.is_absolute() else self._config_directory_path / db_filepath

    def get(self, section: str, setting: str) -> Any:
        """Return the value for the specified config option, if it exists. Return `None` otherwise."""
        full_attr_path = f"{section}.{setting}"
        try:
            val = reduce(getattr, full_attr_path.split("."), self)
        except AttributeError:
            _LOGGER.warning(f"No such setting field named '{full_attr_path}'")
            return None
        return val

    def get_config_directory_path(self) -> Path:
        return self._config_directory_path

    def get_db_filepath(self) -> Path:
        """The run database path. Relative `storage.db_filepath` values are resolved against the config's directory."""
        return self._db_filepath

    def pretty_print_config(self) -> None:
        yaml.dump(self.model_dump(mode="json"), sys.stdout, sort_keys=False)


def get_app_settings(src_yaml_filepath: Path | None = None, cli_overrides: dict[str, Any] | None = None) -> AppSettings:
    """
    Returns the read-only `syntaxfitness` application settings configured by the yaml config plus any settings
    provided as options to the CLI. CLI options take precedence over the associated YAML settings.
    When no path is given, the path is read from the `SYNTAXFITNESS_CONFIG` env var.
    """
    if src_yaml_filepath is None:
        env_path = os.getenv(CONFIG_ENVVAR)
        if not env_path:
            raise AppConfigException(f"No config path provided, and the {CONFIG_ENVVAR} env var is not set.")
        src_yaml_filepath = Path(env_path)
    if not os.path.isfile(src_yaml_filepath):
        raise AppConfigException(f"Config file does not exist: {src_yaml_filepath}")
    try:
        settings_data = _get_settings_data(src_yaml_filepath=Path(src_yaml_filepath), cli_overrides=cli_overrides)
        app_settings = AppSettings(**settings_data)
    except (ValidationError, ValueError) as ve:
        if isinstance(ve, ValidationError):
            _LOGGER.error(f"Invalid app config. Validation errors: {ve.errors()}")
            raise AppConfigException(f"Invalid app config settings in {src_yaml_filepath}: {ve}") from ve
        _LOGGER.error("Invalid CLI overrides provided to app config.", exc_info=True)
        raise AppConfigException(f"Invalid CLI overrides provided to app config: {ve}") from ve
    return app_settings


def _get_settings_data(src_yaml_filepath: Path, cli_overrides: dict[str, Any] | None) -> dict[str, Any]:
    yaml_source = YamlConfigSettingsSource(AppSettings, yaml_file=src_yaml_filepath)
    yaml_data = yaml_source()
    yaml_data["src_yaml_filepath"] = src_yaml_filepath
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    validate_raw_cli_overrides(overrides)
    for raw_k, raw_v in overrides.items():
        attr_path = CLIOverrideSetting[raw_k.upper()].value.split(".")
        reduce(lambda sd, k: sd.setdefault(k, {}), attr_path[:-1], yaml_data)[attr_path[-1]] = raw_v
    return yaml_data


def load_init_config_template() -> str:
    """
    Utility function to aid new users in initializing a minimal config.yaml skeleton via the CLI's init-conf command.
    """
    init_conf_filepath = os.path.join(os.path.dirname(os.path.abspath(__file__)), INIT_CONF_FILENAME)
    with open(init_conf_filepath) as f:
        return f.read()
