"""
geo.py — Coordinate parsing, great-circle distance and local-day arithmetic.

Timezones are fixed offsets in the "GMT±H[:MM]" form stored on profiles
(no DST rules). Day windows are half-open: [00:00, 24:00).
"""

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from autonomy.core.config import settings
from autonomy.core.errors import InvalidInputError
from autonomy.models.location import Location

EARTH_RADIUS_M = 6_378_100.0   # matches MongoDB's spherical distance radius

_TZ_PATTERN = re.compile(r"^GMT(?:([+-])(\d{1,2})(?::(\d{2}))?)?$", re.IGNORECASE)


# ── Locations ─────────────────────────────────────────────────────────────────

def parse_location_header(value: str) -> Location:
    """Parse "lat;lng" (decimal degrees) as sent in the Geo-Position header."""
    parts = value.split(";")
    if len(parts) != 2:
        raise InvalidInputError(f"invalid location {value!r}")
    try:
        lat, lng = float(parts[0]), float(parts[1])
    except ValueError:
        raise InvalidInputError(f"invalid location {value!r}")
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise InvalidInputError(f"location out of range {value!r}")
    return Location(lat=lat, lng=lng)


def distance_m(a: Location, b: Location) -> float:
    """Haversine great-circle distance in metres."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


# ── Timezones ─────────────────────────────────────────────────────────────────

def parse_timezone(name: str) -> Optional[timezone]:
    """Return the fixed-offset zone for "GMT±H[:MM]", or None if unparseable."""
    m = _TZ_PATTERN.match((name or "").strip())
    if not m:
        return None
    sign, hours, minutes = m.groups()
    if sign is None:
        return timezone.utc
    offset = timedelta(hours=int(hours), minutes=int(minutes or 0))
    if sign == "-":
        offset = -offset
    if not timedelta(hours=-12) <= offset <= timedelta(hours=14) or int(minutes or 0) >= 60:
        return None
    return timezone(offset, name.upper())


def account_timezone(name: str) -> timezone:
    """Profile timezone with the configured fallback for blank / bad values."""
    return parse_timezone(name) or parse_timezone(settings.default_timezone) or timezone.utc


# ── Day windows ───────────────────────────────────────────────────────────────

def start_of_day(moment: datetime, tz: timezone = timezone.utc) -> datetime:
    local = moment.astimezone(tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def day_bounds(moment: datetime, tz: timezone = timezone.utc) -> tuple[int, int]:
    """[today 00:00, tomorrow 00:00) in `tz` as unix seconds."""
    start = start_of_day(moment, tz)
    return int(start.timestamp()), int((start + timedelta(days=1)).timestamp())


def consecutive_days(moment: datetime, tz: timezone = timezone.utc) -> tuple[int, int, int]:
    """Start of yesterday, today and tomorrow in `tz` as unix seconds."""
    today = start_of_day(moment, tz)
    return (
        int((today - timedelta(days=1)).timestamp()),
        int(today.timestamp()),
        int((today + timedelta(days=1)).timestamp()),
    )


def same_local_day(ts_a: int, ts_b: int, tz: timezone) -> bool:
    a = datetime.fromtimestamp(ts_a, tz).date()
    b = datetime.fromtimestamp(ts_b, tz).date()
    return a == b


def utc_now() -> datetime:
    """Default clock; services and activities accept a replacement."""
    return datetime.now(tz=timezone.utc)
