from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

JSON_CONTENT_TYPE = "application/json;charset=UTF-8"
SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})
BODY_METHODS = frozenset({"POST", "PUT"})


class ResourceType(str, Enum):
    ADVANCED = "advanced"
    BASE = "base"
    SERVICE = "service"

    @classmethod
    def from_path_segment(cls, value: str | None) -> ResourceType | None:
        if not value:
            return None
        normalized = value.strip().lower()
        for resource_type in cls:
            if resource_type.value == normalized:
                return resource_type
        return None


@dataclass(frozen=True)
class GatewayRequest:
    resource_type: ResourceType
    path: str
    method: str
    authorization: str
    query: str | None = None
    body: str | None = None
    user_email: str | None = None


@dataclass(frozen=True)
class GatewayResponse:
    status: int
    content_type: str
    body: str

    @property
    def is_error(self) -> bool:
        return self.status >= 400


def supports_body(method: str) -> bool:
    return method.upper() in BODY_METHODS
