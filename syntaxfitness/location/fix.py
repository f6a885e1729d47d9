from pydantic import BaseModel, ConfigDict, Field

from syntaxfitness.geo.geo_math import format_coordinate
from syntaxfitness.utils.constants import MAX_LATITUDE, MAX_LONGITUDE, MIN_LATITUDE, MIN_LONGITUDE


class Fix(BaseModel):
    """A single resolved (latitude, longitude) location reading, in decimal degrees."""

    model_config = ConfigDict(frozen=True, extra="ignore", allow_inf_nan=False)
    latitude: float = Field(ge=MIN_LATITUDE, le=MAX_LATITUDE)
    longitude: float = Field(ge=MIN_LONGITUDE, le=MAX_LONGITUDE)

    def __str__(self) -> str:
        return f"({format_coordinate(self.latitude)}, {format_coordinate(self.longitude)})"
