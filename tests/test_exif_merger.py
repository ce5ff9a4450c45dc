"""Tests for loading, merging and serializing the EXIF container."""
import datetime as dt
import io
import struct

import piexif
import pytest
from PIL import Image

import exif_merger
from image_metadata import extract_metadata
from metadata_record import MetadataRecord
from service_errors import UnsupportedFormatError


def _embed(image_bytes: bytes, **fields) -> bytes:
    output, _ = exif_merger.embed(image_bytes, MetadataRecord(**fields))
    return output


def test_load_without_exif_gives_complete_empty_container(jpeg_bytes):
    container = exif_merger.load(jpeg_bytes)
    assert container.primary == {}
    assert container.camera == {}
    assert container.gps == {}
    assert set(container.exif) == {"0th", "Exif", "GPS", "Interop", "1st", "thumbnail"}


def test_load_garbage_is_recovered():
    container = exif_merger.load(b"\xff\xd8not really a jpeg")
    assert container.gps == {}
    assert container.extended == {}


def test_merge_preserves_unrelated_tags(camera_jpeg_bytes):
    before = piexif.load(camera_jpeg_bytes)
    after = piexif.load(_embed(camera_jpeg_bytes, description="Only this"))

    assert after["0th"][piexif.ImageIFD.Orientation] == before["0th"][piexif.ImageIFD.Orientation]
    assert after["0th"][piexif.ImageIFD.Make] == b"OrigCam"
    assert after["Exif"][piexif.ExifIFD.FocalLength] == (50, 1)
    assert after["Exif"][piexif.ExifIFD.LensModel] == b"50mm f/1.8"
    assert after["GPS"] == before["GPS"]
    assert after["0th"][piexif.ImageIFD.ImageDescription] == b"Only this"


def test_second_merge_overwrites_instead_of_appending(jpeg_bytes):
    first = _embed(jpeg_bytes, description="A")
    second = _embed(first, description="B")
    assert extract_metadata(second)["description"] == "B"


def test_gps_written_as_dms_rationals(jpeg_bytes):
    output = _embed(jpeg_bytes, latitude=40.7128, longitude=-74.0060, altitude=-3.5)
    gps = piexif.load(output)["GPS"]

    assert gps[piexif.GPSIFD.GPSLatitudeRef] == b"N"
    assert gps[piexif.GPSIFD.GPSLatitude] == ((40, 1), (42, 1), (460800, 10000))
    assert gps[piexif.GPSIFD.GPSLongitudeRef] == b"W"
    assert gps[piexif.GPSIFD.GPSAltitude] == (350, 100)
    assert gps[piexif.GPSIFD.GPSAltitudeRef] == 1
    assert gps[piexif.GPSIFD.GPSVersionID] == (2, 2, 0, 0)

    meta = extract_metadata(output)
    assert meta["gps_lat"] == pytest.approx(40.7128, abs=0.00004)
    assert meta["gps_lon"] == pytest.approx(-74.0060, abs=0.00004)
    assert meta["gps_alt"] == pytest.approx(-3.5)


def test_existing_gps_version_is_kept(camera_jpeg_bytes):
    output = _embed(camera_jpeg_bytes, latitude=1.0, longitude=2.0)
    assert piexif.load(output)["GPS"][piexif.GPSIFD.GPSVersionID] == (2, 3, 0, 0)


def test_out_of_range_gps_leaves_existing_block(camera_jpeg_bytes):
    before = piexif.load(camera_jpeg_bytes)["GPS"]
    output = _embed(camera_jpeg_bytes, description="x", latitude=91.0, longitude=10.0)
    assert piexif.load(output)["GPS"] == before


def test_altitude_without_coordinates_is_ignored(jpeg_bytes):
    output = _embed(jpeg_bytes, description="x", altitude=120.0)
    assert piexif.load(output)["GPS"] == {}


def test_keywords_go_to_primary_and_extended(jpeg_bytes):
    record = MetadataRecord(keywords=("nature", "landscape", "photography"), title="T", city="Agadir")
    output, container = exif_merger.embed(jpeg_bytes, record)

    assert extract_metadata(output)["keywords"] == "nature, landscape, photography"
    assert extract_metadata(output)["title"] == "T"
    assert container.extended["keywords"] == ["nature", "landscape", "photography"]
    assert container.extended["city"] == "Agadir"


def test_text_fields_keep_utf8(jpeg_bytes):
    output = _embed(jpeg_bytes, description="Café à Agadir — ☀", make="Fujifilm", copyright="© Moi")
    meta = extract_metadata(output)
    assert meta["description"] == "Café à Agadir — ☀"
    assert meta["copyright"] == "© Moi"
    assert meta["make"] == "Fujifilm"


def test_datetime_written_to_both_tags(jpeg_bytes):
    output = _embed(jpeg_bytes, datetime=dt.datetime(2024, 3, 9, 7, 5, 1))
    exif = piexif.load(output)
    assert exif["0th"][piexif.ImageIFD.DateTime] == b"2024:03:09 07:05:01"
    assert exif["Exif"][piexif.ExifIFD.DateTimeOriginal] == b"2024:03:09 07:05:01"


def test_serialize_is_deterministic(camera_jpeg_bytes):
    record = MetadataRecord(description="same", latitude=12.34567, longitude=-56.789)
    outputs = {exif_merger.embed(camera_jpeg_bytes, record)[0] for _ in range(3)}
    assert len(outputs) == 1


def test_serialize_does_not_touch_input(jpeg_bytes):
    original = bytes(jpeg_bytes)
    _embed(jpeg_bytes, description="x")
    assert jpeg_bytes == original


def test_serialize_rejects_png(png_bytes):
    container = exif_merger.load(png_bytes)
    with pytest.raises(UnsupportedFormatError):
        exif_merger.serialize(container, png_bytes)


def test_undefined_int_tags_are_dumpable(jpeg_bytes):
    container = exif_merger.load(jpeg_bytes)
    container.camera[piexif.ExifIFD.SceneType] = 1
    output = exif_merger.serialize(container, jpeg_bytes)
    assert piexif.load(output)["Exif"][piexif.ExifIFD.SceneType] in (1, b"\x01")


_PADDING = 0xEA1C   # Windows "Padding", absent from piexif's tables
_UNLISTED_SHORT = 48000


def _jpeg_with_raw_exif(block: bytes) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), "blue").save(buffer, format="JPEG", exif=block)
    return buffer.getvalue()


@pytest.fixture
def unlisted_tags_jpeg(monkeypatch) -> bytes:
    """Big-endian EXIF carrying tags piexif.load() does not return."""
    with monkeypatch.context() as m:
        m.setitem(piexif.TAGS["Image"], _PADDING, {"name": "Padding", "type": piexif.TYPES.Undefined})
        m.setitem(piexif.TAGS["Image"], _UNLISTED_SHORT, {"name": "Unlisted", "type": piexif.TYPES.Short})
        m.setitem(piexif.TAGS["Exif"], _PADDING, {"name": "Padding", "type": piexif.TYPES.Undefined})
        block = piexif.dump({
            "0th":  {
                piexif.ImageIFD.Orientation: 6,
                _PADDING:        b"\x1c\xea" + b"\x00" * 10,
                _UNLISTED_SHORT: (7, 8),
            },
            "Exif": {piexif.ExifIFD.FocalLength: (35, 1), _PADDING: b"\x1c\xea\x00\x00\x00\x00"},
        })
    return _jpeg_with_raw_exif(block)


def test_tags_piexif_does_not_list_survive_merge(unlisted_tags_jpeg):
    output = _embed(unlisted_tags_jpeg, description="d")

    exif = Image.open(io.BytesIO(output)).getexif()
    assert exif[_PADDING] == b"\x1c\xea" + b"\x00" * 10
    assert exif[_UNLISTED_SHORT] == (7, 8)
    assert exif[piexif.ImageIFD.Orientation] == 6
    camera = exif.get_ifd(piexif.ImageIFD.ExifTag)
    assert camera[_PADDING] == b"\x1c\xea\x00\x00\x00\x00"
    assert extract_metadata(output)["description"] == "d"


def test_unlisted_tags_from_little_endian_exif():
    tag = 48001
    entries = (
        struct.pack("<HHL", piexif.ImageIFD.Orientation, 3, 1) + struct.pack("<HH", 3, 0)
        + struct.pack("<HHL", tag, 4, 2) + struct.pack("<L", 38)
    )
    tiff = b"II*\x00" + struct.pack("<L", 8) + struct.pack("<H", 2) + entries + b"\x00" * 4
    tiff += struct.pack("<LL", 70000, 3)

    output = _embed(_jpeg_with_raw_exif(b"Exif\x00\x00" + tiff), title="T")

    exif = Image.open(io.BytesIO(output)).getexif()
    assert exif[tag] == (70000, 3)
    assert exif[piexif.ImageIFD.Orientation] == 3


def test_unlisted_tag_with_clashing_type_is_dropped_not_fatal(monkeypatch):
    tag = 48002
    entries = struct.pack(">HHL", tag, 3, 1) + struct.pack(">HH", 9, 0)
    tiff = b"MM\x00*" + struct.pack(">L", 8) + struct.pack(">H", 1) + entries + b"\x00" * 4
    source = _jpeg_with_raw_exif(b"Exif\x00\x00" + tiff)

    monkeypatch.setitem(piexif.TAGS["Image"], tag, {"name": "Earlier", "type": piexif.TYPES.Ascii})
    output = _embed(source, description="d")

    assert tag not in Image.open(io.BytesIO(output)).getexif()
    assert extract_metadata(output)["description"] == "d"
