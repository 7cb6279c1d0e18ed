from __future__ import annotations

from enum import Enum
from typing import Any


class HttpError(Exception):
    """Raised by :class:`~efficy_gateway.client.http.HttpClient` for any non-2xx answer."""

    def __init__(self, message: str, status: int, payload: Any) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload


class ServiceErrorKind(str, Enum):
    PERSON_UNRESOLVED = "person_unresolved"
    PROFILE_UNAVAILABLE = "profile_unavailable"
    MISSING_REQUIRED_FIELDS = "missing_required_fields"
    ATTACH_MISSING_DEMANDE = "attach_missing_demande"
    ATTACH_UPLOAD = "attach_upload"
    ATTACH_LINK = "attach_link"
    UPLOAD_FAILED = "upload_failed"
    DEMANDE_REQUIRED = "demande_required"
    DOWNLOAD_FAILED = "download_failed"


class ServiceError(Exception):
    """Business-rule failure of a client adapter.

    ``kind`` is the stable discriminant the presentation layer maps to localized
    text; ``params`` carries whatever structured context that text needs.
    """

    def __init__(self, kind: ServiceErrorKind, **params: Any) -> None:
        super().__init__(kind.value)
        self.kind = kind
        self.params = params
