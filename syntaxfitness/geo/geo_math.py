"""
Pure helper functions for coordinate display, parsing and validation, and for the
haversine great-circle distance between two GPS fixes. Also contains the duration / pace / speed
helpers derived from a run's distance and duration.
"""

import math
from enum import StrEnum, unique

from syntaxfitness.utils.constants import (
    DEFAULT_COORDINATE_DECIMAL_PLACES,
    EARTH_RADIUS_KM,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    METERS_IN_KM,
    MILLIS_IN_SECOND,
    MIN_LATITUDE,
    MIN_LONGITUDE,
    UNSET_COORDINATE_TEXT,
)


@unique
class CoordinateStyle(StrEnum):
    """Display styles supported by `format_coordinate_advanced`."""

    PLAIN = "plain"  # 52.1234
    DECIMAL = "decimal"  # 52.1234° N
    DEGREES_MINUTES = "degrees-minutes"  # 52° 7.404' N
    DEGREES_MINUTES_SECONDS = "degrees-minutes-seconds"  # 52° 7' 24.24" N


def format_coordinate(value: float, decimal_places: int = DEFAULT_COORDINATE_DECIMAL_PLACES) -> str:
    """Fixed-point decimal representation of a coordinate value, e.g. `52.5200`."""
    return f"{value:.{max(decimal_places, 0)}f}"


def parse_coordinate(text: str | None) -> float | None:
    """
    Parses a displayed coordinate back into a float. Returns `None` for the unset placeholder text,
    and for any empty, non-numeric or non-finite text.
    """
    if text is None:
        return None
    stripped = text.strip()
    if not stripped or stripped == UNSET_COORDINATE_TEXT:
        return None
    try:
        value = float(stripped)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def validate_coordinates(latitude: float, longitude: float) -> bool:
    """True when both values are finite and within the valid latitude / longitude ranges."""
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    return MIN_LATITUDE <= latitude <= MAX_LATITUDE and MIN_LONGITUDE <= longitude <= MAX_LONGITUDE


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance in meters between two points given in decimal degrees, using the haversine formula
    on a sphere of radius 6371 km.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    # rounding can push `a` marginally outside of [0, 1] for near-antipodal points
    c = 2.0 * math.asin(math.sqrt(min(max(a, 0.0), 1.0)))
    return EARTH_RADIUS_KM * METERS_IN_KM * c


def _hemisphere(value: float, is_latitude: bool) -> str:
    if is_latitude:
        return "N" if value >= 0 else "S"
    return "E" if value >= 0 else "W"


def format_coordinate_advanced(
    value: float,
    style: CoordinateStyle = CoordinateStyle.DECIMAL,
    is_latitude: bool = True,
    decimal_places: int = DEFAULT_COORDINATE_DECIMAL_PLACES,
) -> str:
    """
    Formats a coordinate in one of the supported `CoordinateStyle`s. Every style other than `PLAIN` drops the sign
    in favour of a hemisphere suffix. `decimal_places` applies to the `PLAIN` and `DECIMAL` styles only.
    """
    if style == CoordinateStyle.PLAIN:
        return format_coordinate(value, decimal_places)
    direction = _hemisphere(value, is_latitude=is_latitude)
    abs_value = abs(value)
    degrees = int(abs_value)
    match style:
        case CoordinateStyle.DECIMAL:
            return f"{format_coordinate(abs_value, decimal_places)}° {direction}"
        case CoordinateStyle.DEGREES_MINUTES:
            minutes = (abs_value - degrees) * 60
            return f"{degrees}° {format_coordinate(minutes, 3)}' {direction}"
        case CoordinateStyle.DEGREES_MINUTES_SECONDS:
            raw_minutes = (abs_value - degrees) * 60
            minutes = int(raw_minutes)
            seconds = (raw_minutes - minutes) * 60
            return f"{degrees}° {minutes}' {format_coordinate(seconds, 2)}\" {direction}"
        case _:
            raise ValueError(f"Unsupported coordinate style: {style}")


def format_position(
    latitude: float,
    longitude: float,
    style: CoordinateStyle = CoordinateStyle.PLAIN,
    decimal_places: int = DEFAULT_COORDINATE_DECIMAL_PLACES,
) -> str:
    lat_text = format_coordinate_advanced(latitude, style=style, is_latitude=True, decimal_places=decimal_places)
    lon_text = format_coordinate_advanced(longitude, style=style, is_latitude=False, decimal_places=decimal_places)
    return f"{lat_text}, {lon_text}"


def format_duration(duration_millis: int) -> str:
    """`M:SS` for durations under an hour, `H:MM:SS` otherwise."""
    total_seconds = max(duration_millis, 0) // MILLIS_IN_SECOND
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def average_speed_mps(distance: float, duration_millis: int) -> float:
    if duration_millis <= 0:
        return 0.0
    return distance / (duration_millis / MILLIS_IN_SECOND)


def pace_seconds_per_km(distance: float, duration_millis: int) -> float | None:
    """Seconds needed per kilometer, or `None` when no distance was covered."""
    if distance <= 0:
        return None
    return (max(duration_millis, 0) / MILLIS_IN_SECOND) / (distance / METERS_IN_KM)


def format_pace(pace_seconds: float | None) -> str:
    if pace_seconds is None or not math.isfinite(pace_seconds):
        return UNSET_COORDINATE_TEXT
    minutes, seconds = divmod(int(round(pace_seconds)), 60)
    return f"{minutes}:{seconds:02d} /km"


def format_distance(distance: float) -> str:
    return f"{distance:.1f} m"


def format_distance_km(distance: float) -> str:
    return f"{distance / METERS_IN_KM:.1f} km"


def format_speed(speed_mps: float) -> str:
    return f"{speed_mps:.1f} m/s"
