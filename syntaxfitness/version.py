import os
from pathlib import Path
from tomllib import load as toml_load
from typing import Final

_PROJECT_ABS_PATH: Final[Path] = Path(
    os.path.abspath(os.getenv("APP_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), os.pardir)))
)
_PYPROJECT_TOML_FILEPATH: Final[Path] = _PROJECT_ABS_PATH / "pyproject.toml"


def get_project_version() -> str:
    """
    Helper function to return the semver version of
    syntaxfitness, as defined in the pyproject.toml file.
    """
    with open(_PYPROJECT_TOML_FILEPATH, "rb") as f:
        toml_data = toml_load(f)
    return toml_data["project"]["version"]
