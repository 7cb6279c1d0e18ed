from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    INVALID_REQUEST = "invalid_request"
    IDENTITY_NOT_FOUND = "identity_not_found"
    UPSTREAM_UNREACHABLE = "upstream_unreachable"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    NOT_FOUND = "not_found"
    INTERNAL_ERROR = "internal_error"


class GatewayError(Exception):
    """Base error for failures raised before or around an upstream call."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    http_status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class GatewayValidationError(GatewayError):
    """Raised for caller input the gateway refuses to forward."""

    code = ErrorCode.INVALID_REQUEST
    http_status = 400


class UpstreamTransportError(GatewayError):
    """Raised when the CRM could not be reached or did not answer in time."""

    code = ErrorCode.UPSTREAM_UNREACHABLE
    http_status = 502


class ConfigurationError(GatewayError):
    code = ErrorCode.INTERNAL_ERROR
    http_status = 500
