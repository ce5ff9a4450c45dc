"""
Error taxonomy shared by handlers and the metadata pipeline.

Every error a caller may see derives from ServiceError and carries the HTTP
status app.py answers with. Messages are user-facing: never put file-system
paths or credentials in them.
"""


class ServiceError(Exception):
    status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, **self.details}


class ValidationError(ServiceError):
    """Malformed or insufficient request."""


class SourceUnavailableError(ServiceError):
    """Image could not be fetched or decoded."""


class UnsupportedFormatError(ServiceError):
    """Bytes are not a JPEG."""


class GeocodingUnavailableError(ServiceError):
    """No geocoding source could resolve the Plus Code."""


class MergeError(ServiceError):
    """The mandatory EXIF merge/serialize step failed."""
    status = 500
