"""Tests for decimal degree <-> EXIF DMS conversion."""
import pytest

from coordinates import (
    SECONDS_DENOMINATOR, altitude_to_rational, decimal_to_dms, dms_to_decimal, in_range,
)

TOLERANCE = 0.00004


def _round_trip(value: float, is_latitude: bool) -> float:
    dms = decimal_to_dms(value, is_latitude)
    d, m, s = dms.rationals
    return dms_to_decimal(d, m, s, dms.ref)


def test_latitude_round_trip_fine_grid():
    for step in range(-9000, 9001, 7):
        lat = step / 100 + 0.00123 if step < 9000 else 90.0
        assert _round_trip(lat, True) == pytest.approx(lat, abs=TOLERANCE)


def test_longitude_round_trip_fine_grid():
    for step in range(-18000, 18001, 11):
        lon = step / 100 - 0.00071 if step > -18000 else -180.0
        assert _round_trip(lon, False) == pytest.approx(lon, abs=TOLERANCE)


def test_known_values():
    lat = decimal_to_dms(40.7128, is_latitude=True)
    assert (lat.degrees, lat.minutes, lat.seconds_numerator, lat.ref) == (40, 42, 460800, "N")
    assert lat.seconds_denominator == SECONDS_DENOMINATOR

    lon = decimal_to_dms(-74.0060, is_latitude=False)
    assert (lon.degrees, lon.minutes, lon.seconds_numerator, lon.ref) == (74, 0, 216000, "W")
    assert lon.rationals == ((74, 1), (0, 1), (216000, 10000))


def test_zero_is_north_and_east():
    assert decimal_to_dms(0.0, True).ref == "N"
    assert decimal_to_dms(0.0, False).ref == "E"
    assert decimal_to_dms(-0.5, True).ref == "S"


def test_dms_to_decimal_accepts_bytes_ref_and_floats():
    assert dms_to_decimal(33, 51, 54.0, b"S") == pytest.approx(-33.865)
    assert dms_to_decimal((151, 1), (12, 1), (3600, 100), "E") == pytest.approx(151.21)


def test_altitude_sign_goes_to_ref():
    assert altitude_to_rational(59) == ((5900, 100), 0)
    assert altitude_to_rational(-12.5) == ((1250, 100), 1)


@pytest.mark.parametrize("lat,lon,expected", [
    (0, 0, True),
    (90, 180, True),
    (-90, -180, True),
    (90.0001, 0, False),
    (0, -180.5, False),
    (float("nan"), 0, False),
])
def test_in_range(lat, lon, expected):
    assert in_range(lat, lon) is expected
