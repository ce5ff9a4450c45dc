"""
Decimal degrees <-> EXIF GPS rationals.

EXIF stores a coordinate as three rationals (degrees, minutes, seconds) plus a
one-letter hemisphere reference. Seconds use a fixed denominator of 10 000,
which keeps four decimal digits of arc-second precision (a denominator of 100
was not enough to round-trip a coordinate to ~1 m).
"""
import math
from typing import NamedTuple

SECONDS_DENOMINATOR = 10_000
ALTITUDE_DENOMINATOR = 100


class DMS(NamedTuple):
    degrees:             int
    minutes:             int
    seconds_numerator:   int
    seconds_denominator: int
    ref:                 str

    @property
    def rationals(self) -> tuple[tuple[int, int], tuple[int, int], tuple[int, int]]:
        """The ((d, 1), (m, 1), (s, den)) triple piexif expects."""
        return (
            (self.degrees, 1),
            (self.minutes, 1),
            (self.seconds_numerator, self.seconds_denominator),
        )


def decimal_to_dms(value: float, is_latitude: bool) -> DMS:
    if is_latitude:
        ref = "N" if value >= 0 else "S"
    else:
        ref = "E" if value >= 0 else "W"

    absolute  = abs(value)
    degrees   = math.floor(absolute)
    min_float = (absolute - degrees) * 60
    minutes   = math.floor(min_float)
    seconds   = (min_float - minutes) * 60

    return DMS(
        degrees=int(degrees),
        minutes=int(minutes),
        seconds_numerator=round(seconds * SECONDS_DENOMINATOR),
        seconds_denominator=SECONDS_DENOMINATOR,
        ref=ref,
    )


def rational_to_float(value) -> float:
    """Convert a Pillow IFDRational, a (numerator, denominator) tuple or a number to float."""
    if hasattr(value, "numerator") and hasattr(value, "denominator"):
        return value.numerator / value.denominator if value.denominator else 0.0
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return value[0] / value[1] if value[1] else 0.0
    return float(value)


def dms_to_decimal(degrees, minutes, seconds, ref) -> float:
    if isinstance(ref, bytes):
        ref = ref.decode("ascii", "ignore")
    decimal = (
        rational_to_float(degrees)
        + rational_to_float(minutes) / 60.0
        + rational_to_float(seconds) / 3600.0
    )
    if ref.strip("\x00 ").upper() in ("S", "W"):
        decimal = -decimal
    return decimal


def altitude_to_rational(meters: float) -> tuple[tuple[int, int], int]:
    """Return ((num, 100), ref) with ref 0 above and 1 below sea level."""
    ref = 0 if meters >= 0 else 1
    return (round(abs(meters) * ALTITUDE_DENOMINATOR), ALTITUDE_DENOMINATOR), ref


def in_range(latitude: float, longitude: float) -> bool:
    return (
        math.isfinite(latitude) and math.isfinite(longitude)
        and -90 <= latitude <= 90
        and -180 <= longitude <= 180
    )
