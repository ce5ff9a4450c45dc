"""
Secondary XMP/IPTC writer dispatcher.

Selects the metadata backend from the METADATA_BACKEND setting and delegates
to it. Backends live in metadata_backends/<name>.py and expose:

  available() -> bool
  write(path, tags, timeout) -> None     raises on failure
  read_back(path) -> bytes

METADATA_BACKEND=none disables this step. apply() is strictly best-effort:
whatever goes wrong, the caller gets back exactly the bytes it passed in.
"""
import importlib
import logging
import os
import tempfile
import uuid

import piexif

from exif_merger import is_jpeg
from metadata_record import MetadataRecord
from service_config import SERVICE_CONFIG

logger = logging.getLogger(__name__)

DISABLED = "none"


def _load_backend(name: str):
    if not name or name.lower() == DISABLED:
        return None
    try:
        return importlib.import_module(f"metadata_backends.{name}")
    except ModuleNotFoundError:
        logger.warning("Metadata backend '%s' not found, XMP/IPTC writing disabled", name)
        return None


def build_tag_mapping(record: MetadataRecord) -> dict:
    """XMP and IPTC tag assignments for the record's descriptive fields."""
    tags: dict = {}
    if record.title:
        tags["XMP-dc:Title"]    = record.title
        tags["IPTC:ObjectName"] = record.title
    if record.description:
        tags["XMP-dc:Description"]    = record.description
        tags["IPTC:Caption-Abstract"] = record.description
    if record.keywords:
        tags["XMP-dc:Subject"] = list(record.keywords)
        tags["IPTC:Keywords"]  = list(record.keywords)
    if record.city:
        tags["XMP-photoshop:City"] = record.city
        tags["IPTC:City"]          = record.city
    if record.country:
        tags["XMP-photoshop:Country"]             = record.country
        tags["IPTC:Country-PrimaryLocationName"] = record.country
    return tags


def _gps_block(image_bytes: bytes) -> dict:
    try:
        return piexif.load(image_bytes).get("GPS") or {}
    except Exception:
        return {}


def apply(image_bytes: bytes, record: MetadataRecord, backend=None) -> bytes:
    """Return image_bytes enriched with XMP/IPTC tags, or unchanged on any failure."""
    tags = build_tag_mapping(record)
    if not tags:
        return image_bytes

    try:
        if backend is None:
            backend = _load_backend(SERVICE_CONFIG["metadata_backend"])
        if backend is None or not backend.available():
            logger.info("XMP/IPTC backend unavailable, returning EXIF-only image")
            return image_bytes

        with tempfile.TemporaryDirectory(prefix="metadata-") as tmpdir:
            path = os.path.join(tmpdir, f"{uuid.uuid4().hex}.jpg")
            with open(path, "wb") as f:
                f.write(image_bytes)
            backend.write(path, tags, timeout=SERVICE_CONFIG["exiftool_timeout"])
            enriched = backend.read_back(path)
    except Exception as e:
        logger.warning("XMP/IPTC write failed, returning EXIF-only image: %s", e)
        return image_bytes

    if not enriched or not is_jpeg(enriched):
        logger.warning("XMP/IPTC backend returned a non-JPEG result, ignoring it")
        return image_bytes
    if _gps_block(enriched) != _gps_block(image_bytes):
        logger.warning("XMP/IPTC backend altered GPS tags, ignoring its result")
        return image_bytes

    logger.info("Added XMP/IPTC metadata (%d tags)", len(tags))
    return enriched
