"""
Handler: Edit EXIF
Embeds description, title, keywords, GPS, camera and date metadata into a JPEG.
"""
from pipeline import embed_metadata


def process(payload: dict, config: dict) -> dict:
    return {"image": embed_metadata(payload)}
