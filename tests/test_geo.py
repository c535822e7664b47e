"""
test_geo.py — Location parsing, distances and local-day windows.
"""

from datetime import datetime, timedelta, timezone

import pytest

from autonomy.core.errors import InvalidInputError
from autonomy.core.geo import (
    account_timezone,
    consecutive_days,
    day_bounds,
    distance_m,
    parse_location_header,
    parse_timezone,
    same_local_day,
)
from autonomy.models.location import Location


class TestLocationHeader:
    def test_parses_lat_lng(self):
        loc = parse_location_header("25.03;121.56")
        assert loc == Location(lat=25.03, lng=121.56)

    @pytest.mark.parametrize("value", ["25.03", "a;b", "25.03;121.56;1", "", "91;0", "0;181"])
    def test_rejects_malformed(self, value):
        with pytest.raises(InvalidInputError):
            parse_location_header(value)


class TestDistance:
    def test_zero_distance(self):
        p = Location(lat=25.0, lng=121.5)
        assert distance_m(p, p) == 0

    def test_one_degree_of_latitude(self):
        d = distance_m(Location(lat=0, lng=0), Location(lat=1, lng=0))
        assert d == pytest.approx(111_319, rel=1e-3)


class TestTimezones:
    @pytest.mark.parametrize("name, offset", [
        ("GMT+8", timedelta(hours=8)),
        ("GMT-5", timedelta(hours=-5)),
        ("GMT+5:30", timedelta(hours=5, minutes=30)),
        ("gmt+8", timedelta(hours=8)),
        ("GMT", timedelta(0)),
    ])
    def test_parse_valid(self, name, offset):
        assert parse_timezone(name).utcoffset(None) == offset

    @pytest.mark.parametrize("name", ["", "UTC+8", "GMT+15", "GMT+8:75", "Asia/Taipei"])
    def test_parse_invalid(self, name):
        assert parse_timezone(name) is None

    def test_account_timezone_falls_back_to_default(self):
        assert account_timezone("nonsense").utcoffset(None) == timedelta(hours=8)


class TestDayWindows:
    def test_day_bounds_in_local_zone(self):
        tz = parse_timezone("GMT+8")
        # 2020-05-20 20:00 local
        moment = datetime(2020, 5, 20, 12, 0, tzinfo=timezone.utc)
        start, end = day_bounds(moment, tz)
        assert datetime.fromtimestamp(start, timezone.utc) == datetime(2020, 5, 19, 16, 0, tzinfo=timezone.utc)
        assert end - start == 86400

    def test_local_day_can_differ_from_utc_day(self):
        tz = parse_timezone("GMT+8")
        # 17:00 UTC is already the next day in GMT+8
        moment = datetime(2020, 5, 20, 17, 0, tzinfo=timezone.utc)
        assert day_bounds(moment, tz)[0] > day_bounds(moment, timezone.utc)[0]

    def test_consecutive_days(self):
        moment = datetime(2020, 5, 20, 12, 0, tzinfo=timezone.utc)
        yesterday, today, tomorrow = consecutive_days(moment)
        assert today - yesterday == 86400
        assert tomorrow - today == 86400
        assert datetime.fromtimestamp(today, timezone.utc) == datetime(2020, 5, 20, tzinfo=timezone.utc)

    def test_same_local_day(self):
        tz = parse_timezone("GMT+8")
        late_utc = int(datetime(2020, 5, 20, 15, 0, tzinfo=timezone.utc).timestamp())   # 23:00 local
        after_midnight = late_utc + 2 * 3600                                               # 01:00 local
        assert not same_local_day(late_utc, after_midnight, tz)
        assert same_local_day(late_utc, after_midnight, timezone.utc)
