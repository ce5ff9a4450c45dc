"""
Image metadata read-back using Pillow (independent of the piexif writer).

Reads the fields the editor writes (text tags, capture date, GPS) so clients
can pre-fill their form and so written images can be verified.
"""
import io

from PIL import Image

from coordinates import dms_to_decimal, rational_to_float

# EXIF tag IDs
_TAG_DESCRIPTION       = 270     # ImageDescription
_TAG_MAKE              = 271
_TAG_MODEL             = 272
_TAG_ORIENTATION       = 274
_TAG_DATETIME          = 306     # DateTime (fallback)
_TAG_COPYRIGHT         = 33432
_TAG_DATETIME_ORIGINAL = 36867   # DateTimeOriginal, lives in the Exif IFD
_TAG_EXIF_IFD          = 34665   # ExifIFD pointer
_TAG_GPS_INFO          = 34853   # GPSInfo IFD pointer
_TAG_XP_TITLE          = 40091
_TAG_XP_KEYWORDS       = 40094

# GPS sub-tags inside the GPSInfo IFD
_GPS_LAT_REF = 1
_GPS_LAT     = 2
_GPS_LON_REF = 3
_GPS_LON     = 4
_GPS_ALT_REF = 5
_GPS_ALT     = 6


def _text(value) -> str | None:
    """Pillow decodes ASCII tags as latin-1; undo that for UTF-8 written text."""
    if value is None:
        return None
    if isinstance(value, bytes):
        raw = value
    else:
        try:
            raw = str(value).encode("latin-1")
        except UnicodeEncodeError:
            return str(value).rstrip("\x00")
    try:
        return raw.decode("utf-8").rstrip("\x00")
    except UnicodeDecodeError:
        return raw.decode("latin-1").rstrip("\x00")


def _xp_text(value) -> str | None:
    """Decode a Windows XP* tag (UTF-16LE bytes or a tuple of byte values)."""
    if value is None:
        return None
    if isinstance(value, str):
        return value.rstrip("\x00")
    return bytes(value).decode("utf-16le", "replace").rstrip("\x00")


def _first_int(value) -> int:
    if isinstance(value, (bytes, tuple, list)):
        return value[0] if value else 0
    return int(value)


def extract_metadata(image_bytes: bytes) -> dict:
    """
    Extract the editable metadata fields from an image's EXIF data.

    Returns a dict with zero or more of the following keys:
        description, title, keywords, make, model, copyright : text
        datetime    : capture date/time string (EXIF format)
        orientation : EXIF orientation value
        gps_lat, gps_lon, gps_alt: decimal degrees / metres
    Images without EXIF (or with unreadable EXIF) give an empty dict.
    """
    result: dict = {}
    try:
        image = Image.open(io.BytesIO(image_bytes))
        exif = image.getexif()
    except Exception:
        return result
    if not exif:
        return result

    for key, tag in (
        ("description", _TAG_DESCRIPTION),
        ("make",        _TAG_MAKE),
        ("model",       _TAG_MODEL),
        ("copyright",   _TAG_COPYRIGHT),
    ):
        value = _text(exif.get(tag))
        if value:
            result[key] = value

    for key, tag in (("title", _TAG_XP_TITLE), ("keywords", _TAG_XP_KEYWORDS)):
        value = _xp_text(exif.get(tag))
        if value:
            result[key] = value

    if exif.get(_TAG_ORIENTATION) is not None:
        result["orientation"] = int(exif[_TAG_ORIENTATION])

    # ── Capture date/time ────────────────────────────────────────────────────
    dt = exif.get_ifd(_TAG_EXIF_IFD).get(_TAG_DATETIME_ORIGINAL) or exif.get(_TAG_DATETIME)
    if dt:
        result["datetime"] = _text(dt)

    # ── GPS coordinates ───────────────────────────────────────────────────────
    gps_ifd = exif.get_ifd(_TAG_GPS_INFO)
    if gps_ifd:
        lat_ref = gps_ifd.get(_GPS_LAT_REF)
        lat_dms = gps_ifd.get(_GPS_LAT)
        lon_ref = gps_ifd.get(_GPS_LON_REF)
        lon_dms = gps_ifd.get(_GPS_LON)

        if lat_dms and lon_dms and lat_ref and lon_ref:
            try:
                result["gps_lat"] = dms_to_decimal(*lat_dms, lat_ref)
                result["gps_lon"] = dms_to_decimal(*lon_dms, lon_ref)
            except (TypeError, ValueError, ZeroDivisionError):
                pass  # malformed GPS block: report what else was found

        if gps_ifd.get(_GPS_ALT) is not None:
            altitude = rational_to_float(gps_ifd[_GPS_ALT])
            if _first_int(gps_ifd.get(_GPS_ALT_REF, 0)) == 1:
                altitude = -altitude
            result["gps_alt"] = altitude

    return result
