"""
Where the sun is overhead, to within a degree or so.

This is a visual day/night model, not an ephemeris: declination is a single
cosine term and the subsolar longitude follows UTC clock time with no
equation-of-time correction. The terminator drawn from it can be off by a few
minutes of time, which is invisible at map scale.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import numpy as np

from azmap.projection.sphere import angular_separation

DECLINATION_AMPLITUDE_DEG = 23.44
# Days between the December solstice and the start of the year.
SOLSTICE_OFFSET_DAYS = 10.0
DAYS_PER_YEAR = 365.25
DEG_PER_HOUR = 15.0


@dataclass(frozen=True)
class SubsolarPoint:
    lat: float
    lon: float


def as_utc(when: datetime | float | int | None = None) -> datetime:
    # Naive datetimes are taken as UTC; numbers are POSIX timestamps.
    if when is None:
        return datetime.now(timezone.utc)
    if isinstance(when, datetime):
        if when.tzinfo is None:
            return when.replace(tzinfo=timezone.utc)
        return when.astimezone(timezone.utc)
    return datetime.fromtimestamp(float(when), tz=timezone.utc)


def subsolar_point(when: datetime | float | int | None = None) -> SubsolarPoint:
    t = as_utc(when)
    hours = t.hour + t.minute / 60.0 + (t.second + t.microsecond / 1e6) / 3600.0
    # Day of year, 0-based, plus the fraction of the current day.
    day = (t.timetuple().tm_yday - 1) + hours / 24.0

    decl = -DECLINATION_AMPLITUDE_DEG * math.cos(2.0 * math.pi * (day + SOLSTICE_OFFSET_DAYS) / DAYS_PER_YEAR)

    # The sun is over longitude 0 at 12:00 UTC and moves west 15 degrees per hour.
    lon = -(hours - 12.0) * DEG_PER_HOUR
    while lon > 180.0:
        lon -= 360.0
    while lon < -180.0:
        lon += 360.0
    return SubsolarPoint(lat=decl, lon=lon)


def zenith_angle(lat_deg: Any, lon_deg: Any, sun: SubsolarPoint) -> Any:
    """Solar zenith angle in degrees; above 90 the sun is below the horizon."""
    z = np.degrees(angular_separation(lat_deg, lon_deg, sun.lat, sun.lon))
    return float(z) if np.ndim(z) == 0 else z


def parse_utc(text: str | None) -> datetime:
    """ISO 8601 text (a trailing 'Z' is accepted) to an aware UTC datetime; None means now."""
    if text is None or not str(text).strip():
        return as_utc(None)
    raw = str(text).strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {text!r}") from exc
    return as_utc(parsed)
