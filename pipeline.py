"""
Metadata embedding pipeline.

  payload -> MetadataRecord -> image bytes -> EXIF merge -> XMP/IPTC enrichment

Validation, source and format errors stop the request before any image bytes
are touched. The EXIF merge is the one mandatory write and its errors always
surface; the XMP/IPTC step can only improve the result, never fail it.
"""
import logging

import exif_merger
import image_source
import secondary_writer
from metadata_record import parse_request, record_from_request
from service_errors import MergeError, ServiceError, UnsupportedFormatError

logger = logging.getLogger(__name__)


def embed_metadata(payload: dict, fetcher=None, writer=None) -> bytes:
    """Return a JPEG with the payload's metadata embedded.

    Args:
        payload: Request JSON (structured fields and/or a legacy "exifData" bag,
                 plus imageUrl or imageData).
        fetcher: Callable url -> bytes; defaults to image_source.fetch_image.
        writer:  Callable (bytes, record) -> bytes for the XMP/IPTC pass;
                 defaults to secondary_writer.apply.

    Raises:
        ValidationError, SourceUnavailableError, UnsupportedFormatError, MergeError
    """
    request = parse_request(payload)
    record  = record_from_request(request)

    image_bytes = image_source.resolve(request.image_url, request.image_data, fetcher=fetcher)
    if not exif_merger.is_jpeg(image_bytes):
        raise UnsupportedFormatError("Only JPEG images are supported")
    logger.info("Loaded image (%d bytes)", len(image_bytes))

    try:
        merged, container = exif_merger.embed(image_bytes, record)
    except ServiceError:
        raise
    except Exception as e:
        logger.exception("EXIF merge failed")
        raise MergeError("Failed to write EXIF metadata") from e
    logger.info(
        "EXIF written: %d primary tags, %d GPS tags",
        len(container.primary), len(container.gps),
    )

    writer = writer or secondary_writer.apply
    try:
        return writer(merged, record)
    except Exception as e:
        # secondary_writer.apply never raises; guard injected writers the same way
        logger.warning("Secondary writer raised, returning EXIF-only image: %s", e)
        return merged
