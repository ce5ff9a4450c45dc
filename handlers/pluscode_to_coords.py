"""
Handler: Plus Code to Coordinates
Resolves a Plus Code (e.g. "CC2C+8X Agadir") to latitude/longitude.
"""
from geocoding import resolve_plus_code


def process(payload: dict, config: dict) -> dict:
    return {"data": resolve_plus_code(payload.get("pluscode"))}
