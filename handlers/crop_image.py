"""
Handler: Crop Image
Removes the requested number of pixels from the top/bottom/left/right edges
and returns the result as a high-quality JPEG.
"""
import logging

import image_source
from image_processor import crop_edges, encode_jpeg, open_image
from service_errors import ValidationError

logger = logging.getLogger(__name__)

_EDGES = ("top", "bottom", "left", "right")


def _edges(crop_options: dict) -> dict[str, int]:
    edges = {}
    for edge in _EDGES:
        value = crop_options.get(edge) or 0
        try:
            edges[edge] = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Crop value '{edge}' must be an integer")
        if edges[edge] < 0:
            raise ValidationError(f"Crop value '{edge}' must not be negative")
    return edges


def process(payload: dict, config: dict) -> dict:
    if not payload.get("imageUrl") and not payload.get("imageData"):
        raise ValidationError("Either imageUrl or imageData (base64) is required")

    crop_options = payload.get("cropOptions")
    if not isinstance(crop_options, dict):
        raise ValidationError("cropOptions is required with at least one crop value")

    edges = _edges(crop_options)
    if not any(edges.values()):
        raise ValidationError(
            "At least one crop value (top, bottom, left, or right) must be greater than 0"
        )

    image = open_image(image_source.resolve(payload.get("imageUrl"), payload.get("imageData")))
    width, height = image.size
    new_width  = width - edges["left"] - edges["right"]
    new_height = height - edges["top"] - edges["bottom"]

    if new_width <= 0 or new_height <= 0:
        raise ValidationError(
            "Invalid crop dimensions. The crop area would result in zero or negative dimensions.",
            {
                "originalSize":   {"width": width, "height": height},
                "cropOptions":    edges,
                "calculatedSize": {"width": new_width, "height": new_height},
            },
        )

    logger.info("Cropping %dx%d -> %dx%d", width, height, new_width, new_height)
    cropped = crop_edges(image, **edges)
    return {"image": encode_jpeg(cropped, config["jpeg_quality"])}
