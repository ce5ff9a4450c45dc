"""
Request normalization for the metadata pipeline.

Clients send one of two shapes:

  structured  title / description / keywords / city / country /
              latitude / longitude / altitude at the top level
  legacy      a flat "exifData" bag: description, comma-joined keywords,
              make, model, copyright, datetime, latitude, longitude, altitude

build_record() folds both into one immutable MetadataRecord. When any
structured field is present the structured shape owns GPS and text; the
legacy bag only fills description/keywords the structured shape left empty,
plus the camera fields it alone carries. GPS is never combined across shapes.
"""
import datetime as dt
import logging

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from service_errors import ValidationError

logger = logging.getLogger(__name__)

MIN_YEAR = 1900
MAX_YEAR = 2100

_EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _text(value):
    value = _blank_to_none(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class LegacyExifData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str | None             = None
    keywords:    str | list[str] | None = None
    make:        str | None             = None
    model:       str | None             = None
    copyright:   str | None             = None
    datetime:    str | None             = None
    latitude:    float | None           = None
    longitude:   float | None           = None
    altitude:    float | None           = None

    @field_validator("description", "make", "model", "copyright", "datetime", mode="before")
    @classmethod
    def coerce_text(cls, value):
        return _text(value)

    @field_validator("latitude", "longitude", "altitude", mode="before")
    @classmethod
    def blank_numbers(cls, value):
        return _blank_to_none(value)


class EmbedRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    image_url:   str | None             = Field(None, alias="imageUrl")
    image_data:  str | None             = Field(None, alias="imageData")
    title:       str | None             = None
    description: str | None             = None
    keywords:    str | list[str] | None = None
    city:        str | None             = None
    country:     str | None             = None
    latitude:    float | None           = None
    longitude:   float | None           = None
    altitude:    float | None           = None
    exif_data:   LegacyExifData | None  = Field(None, alias="exifData")

    @field_validator("title", "description", "city", "country", mode="before")
    @classmethod
    def coerce_text(cls, value):
        return _text(value)

    @field_validator("image_url", "image_data", "latitude", "longitude", "altitude", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return _blank_to_none(value)


class MetadataRecord(BaseModel):
    """Canonical set of fields to embed. Built once per request, never mutated."""
    model_config = ConfigDict(frozen=True)

    title:       str | None         = None
    description: str | None         = None
    keywords:    tuple[str, ...]    = ()
    city:        str | None         = None
    country:     str | None         = None
    make:        str | None         = None
    model:       str | None         = None
    copyright:   str | None         = None
    datetime:    dt.datetime | None = None
    latitude:    float | None       = None
    longitude:   float | None       = None
    altitude:    float | None       = None

    @property
    def has_gps(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def is_empty(self) -> bool:
        return not self.keywords and all(
            getattr(self, name) is None
            for name in type(self).model_fields
            if name != "keywords"
        )


def normalize_keywords(raw) -> tuple[str, ...]:
    """Accept "a, b" or ["a", "b"]; return trimmed non-empty keywords in order."""
    if raw is None:
        return ()
    parts = raw.split(",") if isinstance(raw, str) else raw
    return tuple(p.strip() for p in parts if isinstance(p, str) and p.strip())


def parse_datetime(raw: str | None) -> dt.datetime | None:
    """ISO-8601 or EXIF-style timestamp; None when unparsable or outside 1900-2100."""
    if raw is None:
        return None
    text = raw.strip()
    try:
        value = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            value = dt.datetime.strptime(text, _EXIF_DATETIME_FORMAT)
        except ValueError:
            logger.warning("Ignoring unparsable datetime %r", raw)
            return None
    if not MIN_YEAR <= value.year <= MAX_YEAR:
        logger.warning("Ignoring datetime outside %d-%d: %r", MIN_YEAR, MAX_YEAR, raw)
        return None
    # EXIF timestamps carry no zone: keep the wall-clock time as given
    return value.replace(tzinfo=None)


def _gps_pair(latitude, longitude, altitude) -> dict:
    if (latitude is None) != (longitude is None):
        raise ValidationError("latitude and longitude must be supplied together")
    if latitude is None:
        return {}
    return {"latitude": latitude, "longitude": longitude, "altitude": altitude}


def _describe(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    where = ".".join(str(part) for part in err.get("loc", ()))
    return f"{where}: {err.get('msg', 'invalid value')}" if where else err.get("msg", "invalid value")


def parse_request(payload) -> EmbedRequest:
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    try:
        return EmbedRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError("invalid request", {"message": _describe(e)})


def build_record(payload) -> MetadataRecord:
    """Validate a request payload and return its MetadataRecord."""
    return record_from_request(parse_request(payload))


def record_from_request(request: EmbedRequest) -> MetadataRecord:
    """Normalize a parsed request into its MetadataRecord.

    Raises ValidationError for a missing image source, a half-supplied
    coordinate pair, or a request with no fields.
    """
    if not request.image_url and not request.image_data:
        raise ValidationError("missing image source")

    legacy = request.exif_data or LegacyExifData()
    structured_keywords = normalize_keywords(request.keywords)
    legacy_keywords     = normalize_keywords(legacy.keywords)

    structured_present = bool(structured_keywords) or any(
        value is not None
        for value in (
            request.title, request.description, request.city, request.country,
            request.latitude, request.longitude, request.altitude,
        )
    )

    fields: dict = {
        "make":      legacy.make,
        "model":     legacy.model,
        "copyright": legacy.copyright,
        "datetime":  parse_datetime(legacy.datetime),
    }
    if structured_present:
        fields.update(
            title=request.title,
            description=request.description or legacy.description,
            keywords=structured_keywords or legacy_keywords,
            city=request.city,
            country=request.country,
        )
        fields.update(_gps_pair(request.latitude, request.longitude, request.altitude))
    else:
        fields.update(description=legacy.description, keywords=legacy_keywords)
        fields.update(_gps_pair(legacy.latitude, legacy.longitude, legacy.altitude))

    record = MetadataRecord(**fields)
    if record.is_empty():
        raise ValidationError("no metadata fields supplied")
    return record
