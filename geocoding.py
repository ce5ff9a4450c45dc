"""
Plus Code -> latitude/longitude.

Resolution order:
  1. Google Maps Geocoding API (handles any Plus Code), when GOOGLE_MAPS_API_KEY is set
  2. a small table of known codes
Otherwise GeocodingUnavailableError; a missing key is never a crash.
"""
import json
import logging
import os
import re
import urllib.error
import urllib.parse
import urllib.request

from service_config import SERVICE_CONFIG
from service_errors import GeocodingUnavailableError, ValidationError

logger = logging.getLogger(__name__)

_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
_CODE_RE     = re.compile(r"([A-Z0-9]{2,}\+[A-Z0-9]{2,})", re.IGNORECASE)

KNOWN_PLUS_CODES: dict[str, dict] = {
    "CC2C+8X":     {"latitude": 30.40082090, "longitude": -9.57759430, "location": "Amseel Cars, Agadir"},
    "CC7W+3M":     {"latitude": 30.412687,   "longitude": -9.553313,   "location": "Agadir, Morocco"},
    "CC7W+93":     {"latitude": 30.412687,   "longitude": -9.553313,   "location": "Agadir, Morocco"},
    "8C2GCC7W+3M": {"latitude": 30.412687,   "longitude": -9.553313,   "location": "Agadir, Morocco"},
}


def extract_code(raw: str) -> str:
    """Pull the code out of input such as "CC2C+8X Agadir, Maroc" and validate its shape."""
    text  = raw.strip()
    match = _CODE_RE.search(text)
    code  = match.group(1).upper() if match else re.sub(r"[^A-Z0-9+]", "", text.upper())

    details = {"received": raw, "extracted": code}
    if "+" not in code:
        raise ValidationError("Invalid Plus Code format. Must contain a + symbol.", details)
    parts = code.split("+")
    if len(parts) != 2 or len(parts[0]) < 2 or len(parts[1]) < 2:
        raise ValidationError("Invalid Plus Code format. Expected format: CC2C+8X or similar.", details)
    return code


def _google_lookup(code: str, api_key: str) -> dict | None:
    url = f"{_GEOCODE_URL}?{urllib.parse.urlencode({'address': code, 'key': api_key})}"
    req = urllib.request.Request(url, headers={"User-Agent": SERVICE_CONFIG["user_agent"]})
    try:
        with urllib.request.urlopen(req, timeout=SERVICE_CONFIG["fetch_timeout"]) as resp:
            data = json.loads(resp.read().decode("utf-8"))
    except (urllib.error.URLError, TimeoutError, OSError, ValueError) as e:
        # The URL carries the key: log the error type only
        logger.warning("Google geocoding request failed: %s", type(e).__name__)
        return None

    try:
        results = data.get("results") or []
        if not results:
            logger.info("Google geocoding found nothing for %s (status %s)", code, data.get("status"))
            return None
        location  = results[0]["geometry"]["location"]
        latitude  = float(location["lat"])
        longitude = float(location["lng"])
        address   = results[0].get("formatted_address", "")
    except (AttributeError, KeyError, IndexError, TypeError, ValueError):
        logger.warning("Google geocoding returned an unexpected response for %s", code)
        return None
    return {
        "plusCode":  code,
        "latitude":  latitude,
        "longitude": longitude,
        "formatted": f"{latitude}, {longitude}",
        "address":   address,
        "source":    "Google Maps Geocoding API",
    }


def resolve_plus_code(raw: str | None) -> dict:
    if not raw or not str(raw).strip():
        raise ValidationError(
            "Plus Code is required. Provide it as ?pluscode=CC2C+8X or in request body."
        )
    raw  = str(raw)
    code = extract_code(raw)

    api_key = os.environ.get("GOOGLE_MAPS_API_KEY")
    if api_key:
        found = _google_lookup(code, api_key)
        if found:
            return found

    known = KNOWN_PLUS_CODES.get(code)
    if known:
        return {
            "plusCode":  code,
            "latitude":  known["latitude"],
            "longitude": known["longitude"],
            "formatted": f"{known['latitude']}, {known['longitude']}",
            "location":  known["location"],
            "source":    "known coordinates",
        }

    raise GeocodingUnavailableError(
        "Could not decode Plus Code. Set GOOGLE_MAPS_API_KEY to resolve arbitrary codes, "
        "or the Plus Code may be invalid.",
        {"received": raw, "extracted": code},
    )
