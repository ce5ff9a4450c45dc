"""
Handler: Read EXIF
Returns the editable metadata already present in an image, so a client can
pre-fill its form before editing.
"""
import image_source
from image_metadata import extract_metadata


def process(payload: dict, config: dict) -> dict:
    image_bytes = image_source.resolve(payload.get("imageUrl"), payload.get("imageData"))
    return {"data": {"metadata": extract_metadata(image_bytes)}}
