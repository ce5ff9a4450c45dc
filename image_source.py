"""
Image source resolution: remote URL or inline base64 (optionally a data: URL).

Only http(s) URLs are fetched, redirects included; anything urllib could open
beyond that (file:, ftp:, data:) is refused before a connection is made.
"""
import base64
import binascii
import logging
import urllib.error
import urllib.parse
import urllib.request

from service_config import SERVICE_CONFIG
from service_errors import SourceUnavailableError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")


def is_url(value: str | None) -> bool:
    if not isinstance(value, str):
        return False
    try:
        scheme = urllib.parse.urlsplit(value.strip()).scheme
    except ValueError:
        return False
    return scheme.lower() in ALLOWED_SCHEMES


class _HttpOnlyRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Follow redirects to http(s) targets only (urllib also allows ftp)."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        if not is_url(newurl):
            raise urllib.error.HTTPError(req.full_url, code, "Redirect to a non-HTTP URL refused", headers, fp)
        return super().redirect_request(req, fp, code, msg, headers, newurl)


_opener = urllib.request.build_opener(_HttpOnlyRedirectHandler)


def _open(req: urllib.request.Request, timeout: float):
    return _opener.open(req, timeout=timeout)


def fetch_image(url: str, timeout: float | None = None, max_bytes: int | None = None) -> bytes:
    """GET url and return the body. Any failure, timeouts included, is SourceUnavailableError."""
    if not is_url(url):
        raise SourceUnavailableError("Only http:// and https:// image URLs are supported")
    if timeout is None:
        timeout = SERVICE_CONFIG["fetch_timeout"]
    if max_bytes is None:
        max_bytes = SERVICE_CONFIG["max_content_length"]

    req = urllib.request.Request(url.strip(), headers={"User-Agent": SERVICE_CONFIG["user_agent"]})
    logger.info("Fetching image from %s", url[:100])
    try:
        with _open(req, timeout) as resp:
            body = resp.read(max_bytes + 1)
    except urllib.error.HTTPError as e:
        raise SourceUnavailableError(
            f"Failed to fetch image: {e.reason}", {"status": e.code}
        ) from e
    except (urllib.error.URLError, TimeoutError, OSError, ValueError) as e:
        reason = getattr(e, "reason", None) or type(e).__name__
        raise SourceUnavailableError(f"Failed to fetch image from URL: {reason}") from e

    if len(body) > max_bytes:
        limit_mb = max_bytes / (1024 * 1024)
        raise SourceUnavailableError(f"Remote image is larger than the {limit_mb:g} MB limit")
    return body


def decode_image_data(data: str) -> bytes:
    """Decode base64 image data, stripping a "data:<mime>;base64," prefix if present."""
    payload = data.split(",", 1)[1] if "," in data else data
    try:
        decoded = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise SourceUnavailableError("Invalid base64 image data") from e
    if not decoded:
        raise SourceUnavailableError("Invalid base64 image data")
    return decoded


def _source_value(value, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip() or None


def resolve(url, data, fetcher=None, label: str = "image") -> bytes:
    """Return bytes for whichever source was supplied; a URL wins over inline data.

    Inline data that is itself an http(s) URL is fetched rather than decoded.
    Blank values count as absent; non-string values are a ValidationError.
    """
    url  = _source_value(url, f"{label}Url")
    data = _source_value(data, f"{label}Data")
    fetcher = fetcher or fetch_image
    if url:
        if not is_url(url):
            raise ValidationError(f"{label}Url must be an http:// or https:// URL")
        return fetcher(url)
    if is_url(data):
        return fetcher(data)
    if data:
        return decode_image_data(data)
    raise ValidationError(f"Either {label}Url or {label}Data (base64) is required")
