"""Query parameter validation shared by the coordinate-based handlers."""

import math
from dataclasses import dataclass

MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0


@dataclass(frozen=True)
class CoordinateCheck:
    valid: bool
    error: str | None = None
    lat: float | None = None
    lon: float | None = None


def _parse_float(raw: str) -> float | None:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(value) else value


def validate_coordinates(lat: str | float | None, lon: str | float | None) -> CoordinateCheck:
    """Parse and range-check latitude/longitude query values."""
    if lat is None or lon is None or lat == "" or lon == "":
        return CoordinateCheck(False, "Missing lat or lon parameter")

    lat_num = _parse_float(lat)
    lon_num = _parse_float(lon)
    if lat_num is None or lon_num is None:
        return CoordinateCheck(False, "Invalid latitude or longitude values")

    if not MIN_LATITUDE <= lat_num <= MAX_LATITUDE:
        return CoordinateCheck(False, f"Latitude must be between {MIN_LATITUDE:g} and {MAX_LATITUDE:g}")
    if not MIN_LONGITUDE <= lon_num <= MAX_LONGITUDE:
        return CoordinateCheck(False, f"Longitude must be between {MIN_LONGITUDE:g} and {MAX_LONGITUDE:g}")

    return CoordinateCheck(True, lat=lat_num, lon=lon_num)
