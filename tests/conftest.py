"""
Shared fixtures: in-memory JPEG/PNG images, a Flask test client, and a stub
image fetcher so no test touches the network or the exiftool binary.
"""
import io
import os
import sys

import piexif
import pytest
from PIL import Image

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from service_config import SERVICE_CONFIG  # noqa: E402
from service_errors import SourceUnavailableError  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: HTTP-level tests")


def make_jpeg(exif: dict | None = None, size=(64, 48), color="red") -> bytes:
    buffer = io.BytesIO()
    image = Image.new("RGB", size, color=color)
    if exif:
        image.save(buffer, format="JPEG", exif=piexif.dump(exif))
    else:
        image.save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture(autouse=True)
def no_secondary_backend(monkeypatch):
    """Keep the XMP/IPTC step off unless a test installs its own backend."""
    monkeypatch.setitem(SERVICE_CONFIG, "metadata_backend", "none")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture
def camera_jpeg_bytes() -> bytes:
    """A JPEG as a camera would leave it: orientation, lens data and a GPS fix."""
    return make_jpeg({
        "0th": {
            piexif.ImageIFD.Make:        b"OrigCam",
            piexif.ImageIFD.Orientation: 6,
        },
        "Exif": {
            piexif.ExifIFD.FocalLength: (50, 1),
            piexif.ExifIFD.LensModel:   b"50mm f/1.8",
        },
        "GPS": {
            piexif.GPSIFD.GPSVersionID:    (2, 3, 0, 0),
            piexif.GPSIFD.GPSLatitudeRef:  b"N",
            piexif.GPSIFD.GPSLatitude:     ((10, 1), (0, 1), (0, 1)),
            piexif.GPSIFD.GPSLongitudeRef: b"E",
            piexif.GPSIFD.GPSLongitude:    ((20, 1), (0, 1), (0, 1)),
        },
        "Interop": {},
        "1st": {},
        "thumbnail": None,
    })


@pytest.fixture
def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", (32, 32), color=(0, 0, 255, 128)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def stub_fetch(monkeypatch):
    """Route image_source.fetch_image to an in-memory url -> bytes table."""
    import image_source

    sources: dict[str, bytes] = {}
    calls: list[str] = []

    def fake_fetch(url, timeout=None):
        calls.append(url)
        if url not in sources:
            raise SourceUnavailableError("Failed to fetch image: Not Found", {"status": 404})
        return sources[url]

    monkeypatch.setattr(image_source, "fetch_image", fake_fetch)
    fake_fetch.sources = sources
    fake_fetch.calls = calls
    return fake_fetch


@pytest.fixture
def client(tmp_path, monkeypatch):
    import app as app_module

    monkeypatch.setattr(app_module, "ERROR_LOG", str(tmp_path / "last_error.log"))
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as test_client:
        yield test_client
