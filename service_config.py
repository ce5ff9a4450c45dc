"""
Centralized service configuration.

Values come from the environment (a .env file is honoured, see .env.example).
Credentials such as GOOGLE_MAPS_API_KEY are deliberately NOT cached here;
they are read at call time so a changed .env applies without a restart.
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


SERVICE_CONFIG = {
    # Seconds to wait for a remote image / logo / geocoding response
    "fetch_timeout":      _float_env("FETCH_TIMEOUT", 15),
    # Secondary XMP/IPTC writer: backend module in metadata_backends/, or "none"
    "metadata_backend":   os.environ.get("METADATA_BACKEND", "exiftool_cli"),
    "exiftool_path":      os.environ.get("EXIFTOOL_PATH", "exiftool"),
    "exiftool_timeout":   _float_env("EXIFTOOL_TIMEOUT", 20),
    # Re-encode quality for crop / watermark output
    "jpeg_quality":       int(_float_env("JPEG_QUALITY", 95)),
    "max_content_length": int(_float_env("MAX_CONTENT_LENGTH", 16 * 1024 * 1024)),
    "log_level":          os.environ.get("LOG_LEVEL", "INFO").upper(),
    "user_agent":         "JPEG-Metadata-Editor/1.0",
}
