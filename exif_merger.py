"""
EXIF container load / merge / serialize (piexif).

The container always has every IFD present, even for an image that carried no
EXIF at all, so merge() never special-cases "no metadata yet". Only the tags a
record targets are overwritten; everything else the camera wrote (orientation,
lens, focal length, ...) passes through untouched, including vendor tags
piexif has no table entry for: those are read from the raw block and written
back with their original TIFF type.

Text encoding: piexif packs ASCII tags as latin-1, which cannot hold most
non-Western text. Text tags are therefore written as UTF-8 bytes (what most
viewers decode), and keywords/title also go to the Windows XP* tags, which are
UTF-16LE by definition.
"""
import copy
import io
import logging
import struct
import threading
from dataclasses import dataclass, field

import piexif
from PIL import Image

from coordinates import altitude_to_rational, decimal_to_dms, in_range
from metadata_record import MetadataRecord
from service_errors import MergeError, UnsupportedFormatError

logger = logging.getLogger(__name__)

JPEG_SOI = b"\xff\xd8"

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"
KEYWORD_SEPARATOR    = ", "
GPS_VERSION          = (2, 2, 0, 0)

_IFD_NAMES = ("0th", "Exif", "GPS", "Interop", "1st")

# piexif only reads and writes tags listed in piexif.TAGS. Tags missing from
# its tables are read here and their TIFF type is added to the table, so
# dump() can write them back unchanged.
_BUILTIN_TAGS = {table: frozenset(piexif.TAGS[table]) for table in ("Image", "Exif", "GPS", "Interop")}
_EXTRA_TAG_LOCK = threading.Lock()

_TIFF_TYPE_SIZES   = {1: 1, 2: 1, 3: 2, 4: 4, 5: 8, 6: 1, 7: 1, 8: 2, 9: 4, 10: 8, 11: 4, 12: 8}
_TIFF_TYPE_FORMATS = {1: "B", 3: "H", 4: "L", 5: "LL", 6: "b", 8: "h", 9: "l", 10: "ll", 11: "f", 12: "d"}

_EXIF_POINTER    = piexif.ImageIFD.ExifTag
_GPS_POINTER     = piexif.ImageIFD.GPSTag
_INTEROP_POINTER = piexif.ExifIFD.InteroperabilityTag


def empty_exif() -> dict:
    return {"0th": {}, "Exif": {}, "GPS": {}, "Interop": {}, "1st": {}, "thumbnail": None}


@dataclass
class MetadataContainer:
    """Request-scoped EXIF dict plus the extended (XMP/IPTC-bound) fields."""
    exif:     dict = field(default_factory=empty_exif)
    extended: dict = field(default_factory=dict)

    @property
    def primary(self) -> dict:
        return self.exif["0th"]

    @property
    def camera(self) -> dict:
        return self.exif["Exif"]

    @property
    def gps(self) -> dict:
        return self.exif["GPS"]


def is_jpeg(data: bytes) -> bool:
    return data[:2] == JPEG_SOI


def load(image_bytes: bytes) -> MetadataContainer:
    """Parse existing EXIF; any failure yields an empty, complete container."""
    exif = empty_exif()
    try:
        loaded = piexif.load(image_bytes)
    except Exception as e:
        logger.debug("No usable EXIF in image, starting fresh (%s)", e)
        return MetadataContainer(exif=exif)

    for name in _IFD_NAMES:
        exif[name] = dict(loaded.get(name) or {})
    exif["thumbnail"] = loaded.get("thumbnail")

    for name, tags in _unlisted_tags(image_bytes).items():
        for tag, (tiff_type, value) in tags.items():
            if _register_tag_type(name, tag, tiff_type):
                exif[name][tag] = value
            else:
                logger.warning("Dropping %s tag %s: type %s clashes with an earlier image", name, tag, tiff_type)
                exif[name].pop(tag, None)
    return MetadataContainer(exif=exif)


def _register_tag_type(ifd_name: str, tag: int, tiff_type: int) -> bool:
    """Teach piexif the type of a tag it has no entry for; False on a type clash."""
    table = "Image" if ifd_name in ("0th", "1st") else ifd_name
    with _EXTRA_TAG_LOCK:
        info = piexif.TAGS[table].setdefault(tag, {"name": f"Tag{tag:#06x}", "type": tiff_type})
    return info["type"] == tiff_type


def _read_ifd(tiff: bytes, offset: int, endian: str) -> dict[int, tuple[int, int, bytes]]:
    """Raw entries of one IFD: tag -> (type, count, value bytes)."""
    entries = {}
    (count,) = struct.unpack_from(endian + "H", tiff, offset)
    for index in range(count):
        pos = offset + 2 + 12 * index
        tag, tiff_type, n = struct.unpack_from(endian + "HHL", tiff, pos)
        size = _TIFF_TYPE_SIZES.get(tiff_type)
        if size is None or n == 0:
            continue
        length = size * n
        if length > 4:
            (start,) = struct.unpack_from(endian + "L", tiff, pos + 8)
        else:
            start = pos + 8
        raw = tiff[start:start + length]
        if len(raw) == length:
            entries[tag] = (tiff_type, n, raw)
    return entries


def _piexif_value(tiff_type: int, count: int, raw: bytes, endian: str):
    """Raw TIFF value -> the Python shape piexif.dump() expects for that type."""
    if tiff_type == piexif.TYPES.Ascii:
        return raw[:-1] if raw.endswith(b"\x00") else raw
    if tiff_type == piexif.TYPES.Undefined:
        return raw
    values = struct.unpack(endian + _TIFF_TYPE_FORMATS[tiff_type] * count, raw)
    if tiff_type in (piexif.TYPES.Rational, piexif.TYPES.SRational):
        return tuple(zip(values[::2], values[1::2]))
    return values


def _pointer(entries: dict, tag: int, endian: str) -> int | None:
    entry = entries.get(tag)
    if entry is None or entry[0] != piexif.TYPES.Long:
        return None
    return struct.unpack(endian + "L", entry[2][:4])[0]


def _unlisted_tags(image_bytes: bytes) -> dict[str, dict[int, tuple[int, object]]]:
    """Tags of the 0th/Exif/GPS/Interop IFDs that piexif.load() skips.

    Returns {ifd name: {tag: (tiff type, piexif-shaped value)}}; a missing or
    truncated block gives an empty dict.
    """
    found: dict = {}
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            block = image.info.get("exif")
    except Exception as e:
        logger.debug("No EXIF block for unlisted tags (%s)", e)
        return found
    if not block:
        return found

    tiff = block[6:] if block.startswith(b"Exif\x00\x00") else block
    endian = "<" if tiff[:2] == b"II" else ">"
    try:
        (first,) = struct.unpack_from(endian + "L", tiff, 4)
        ifds = {"0th": _read_ifd(tiff, first, endian)}
        for name, parent, tag in (
            ("Exif",    "0th",  _EXIF_POINTER),
            ("GPS",     "0th",  _GPS_POINTER),
            ("Interop", "Exif", _INTEROP_POINTER),
        ):
            offset = _pointer(ifds.get(parent, {}), tag, endian)
            if offset is not None:
                ifds[name] = _read_ifd(tiff, offset, endian)
    except struct.error as e:
        logger.debug("Truncated EXIF block (%s)", e)
        return found

    for name, entries in ifds.items():
        builtin = _BUILTIN_TAGS["Image" if name == "0th" else name]
        for tag, (tiff_type, count, raw) in entries.items():
            if tag in builtin:
                continue
            try:
                value = _piexif_value(tiff_type, count, raw, endian)
            except struct.error:
                continue
            found.setdefault(name, {})[tag] = (tiff_type, value)
    return found


def _utf8(text: str) -> bytes:
    return text.encode("utf-8")


def _utf16(text: str) -> bytes:
    return text.encode("utf-16le") + b"\x00\x00"


def merge(container: MetadataContainer, record: MetadataRecord) -> MetadataContainer:
    """Write record fields into the container in place and return it."""
    primary = container.primary

    if record.description is not None:
        primary[piexif.ImageIFD.ImageDescription] = _utf8(record.description)
    if record.make is not None:
        primary[piexif.ImageIFD.Make] = _utf8(record.make)
    if record.model is not None:
        primary[piexif.ImageIFD.Model] = _utf8(record.model)
    if record.copyright is not None:
        primary[piexif.ImageIFD.Copyright] = _utf8(record.copyright)
    if record.title is not None:
        primary[piexif.ImageIFD.XPTitle] = _utf16(record.title)
    if record.keywords:
        primary[piexif.ImageIFD.XPKeywords] = _utf16(KEYWORD_SEPARATOR.join(record.keywords))

    if record.datetime is not None:
        stamp = record.datetime.strftime(EXIF_DATETIME_FORMAT).encode("ascii")
        primary[piexif.ImageIFD.DateTime] = stamp
        container.camera[piexif.ExifIFD.DateTimeOriginal] = stamp

    if record.has_gps:
        if in_range(record.latitude, record.longitude):
            _merge_gps(container.gps, record)
        else:
            logger.warning(
                "Coordinates out of range (%s, %s), GPS left unchanged",
                record.latitude, record.longitude,
            )

    extended = container.extended
    if record.title is not None:
        extended["title"] = record.title
    if record.description is not None:
        extended["description"] = record.description
    if record.keywords:
        extended["keywords"] = list(record.keywords)
    if record.city is not None:
        extended["city"] = record.city
    if record.country is not None:
        extended["country"] = record.country

    return container


def _merge_gps(gps: dict, record: MetadataRecord) -> None:
    lat = decimal_to_dms(record.latitude, is_latitude=True)
    lon = decimal_to_dms(record.longitude, is_latitude=False)

    gps.setdefault(piexif.GPSIFD.GPSVersionID, GPS_VERSION)
    gps[piexif.GPSIFD.GPSLatitudeRef]  = lat.ref.encode("ascii")
    gps[piexif.GPSIFD.GPSLatitude]     = lat.rationals
    gps[piexif.GPSIFD.GPSLongitudeRef] = lon.ref.encode("ascii")
    gps[piexif.GPSIFD.GPSLongitude]    = lon.rationals

    if record.altitude is not None:
        altitude, ref = altitude_to_rational(record.altitude)
        gps[piexif.GPSIFD.GPSAltitude]    = altitude
        gps[piexif.GPSIFD.GPSAltitudeRef] = ref


def _dumpable(exif: dict) -> dict:
    """Copy of exif with piexif's load/dump asymmetries smoothed out.

    piexif.load() returns single-byte UNDEFINED tags (e.g. SceneType,
    FileSource) as int, but dump() only accepts bytes for that type.
    """
    fixed = copy.deepcopy(exif)
    for name in _IFD_NAMES:
        tag_types = piexif.TAGS.get("Image" if name in ("0th", "1st") else name, {})
        for tag, value in list(fixed[name].items()):
            info = tag_types.get(tag)
            if info is None:
                # dump() cannot type a tag it does not know
                logger.debug("Dropping unknown %s tag %s", name, tag)
                del fixed[name][tag]
            elif info["type"] == piexif.TYPES.Undefined and isinstance(value, int):
                fixed[name][tag] = bytes([value & 0xFF])
    if not fixed["thumbnail"]:
        fixed["1st"] = {}
        fixed["thumbnail"] = None
    return fixed


def serialize(container: MetadataContainer, original_bytes: bytes) -> bytes:
    """Return a new JPEG byte string with the container's EXIF embedded."""
    if not is_jpeg(original_bytes):
        raise UnsupportedFormatError("Only JPEG images are supported")

    try:
        exif_bytes = piexif.dump(_dumpable(container.exif))
        output = io.BytesIO()
        piexif.insert(exif_bytes, bytes(original_bytes), output)
    except Exception as e:
        logger.exception("EXIF serialization failed")
        raise MergeError("Failed to write EXIF metadata") from e
    return output.getvalue()


def embed(image_bytes: bytes, record: MetadataRecord) -> tuple[bytes, MetadataContainer]:
    """load + merge + serialize in one step."""
    if not is_jpeg(image_bytes):
        raise UnsupportedFormatError("Only JPEG images are supported")
    container = merge(load(image_bytes), record)
    return serialize(container, image_bytes), container
