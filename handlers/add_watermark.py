"""
Handler: Add Watermark
Composites a (transparent) logo onto an image at a corner, scaled to a
percentage of the image width.
"""
import logging

import image_source
from image_processor import (
    DEFAULT_LOGO_PERCENT, DEFAULT_POSITION, MAX_LOGO_PERCENT, MIN_LOGO_PERCENT, POSITIONS,
    add_logo, encode_jpeg, open_image,
)
from service_errors import ValidationError

logger = logging.getLogger(__name__)


def _number(value, default, cast):
    try:
        return cast(value)
    except (TypeError, ValueError):
        return default


def process(payload: dict, config: dict) -> dict:
    if not payload.get("imageUrl") and not payload.get("imageData"):
        raise ValidationError("Either imageData (base64/URL) or imageUrl is required")
    if not payload.get("logoUrl") and not payload.get("logoData"):
        raise ValidationError("Either logoData (base64/URL) or logoUrl is required")

    size_percent = _number(payload.get("size", DEFAULT_LOGO_PERCENT), DEFAULT_LOGO_PERCENT, float)
    size_percent = max(MIN_LOGO_PERCENT, min(MAX_LOGO_PERCENT, size_percent or DEFAULT_LOGO_PERCENT))
    offset_x = _number(payload.get("offsetX", 0), 0, lambda v: int(float(v)))
    offset_y = _number(payload.get("offsetY", 0), 0, lambda v: int(float(v)))

    position = payload.get("position") or DEFAULT_POSITION
    if position not in POSITIONS:
        position = DEFAULT_POSITION

    image = open_image(image_source.resolve(payload.get("imageUrl"), payload.get("imageData")))
    logo  = open_image(
        image_source.resolve(payload.get("logoUrl"), payload.get("logoData"), label="logo"),
        label="logo",
    )

    logger.info("Watermarking %dx%d image at %s, %s%% width", *image.size, position, size_percent)
    result = add_logo(image, logo, position, size_percent, offset_x, offset_y)
    return {"image": encode_jpeg(result, config["jpeg_quality"])}
