from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import quote_plus

from fastapi import Depends
from opentelemetry import trace

from efficy_gateway.beans import read_bean, read_identifier, read_query_rows
from efficy_gateway.context import get_correlation_id
from efficy_gateway.core.config import Settings
from efficy_gateway.errors import ErrorCode, GatewayValidationError
from efficy_gateway.gateway.models import JSON_CONTENT_TYPE, GatewayRequest, GatewayResponse, ResourceType
from efficy_gateway.gateway.service import GatewayService, gateway_service, get_gateway_service
from efficy_gateway.metrics import observe_identity_not_found


logger = logging.getLogger("efficy_gateway.identity")
tracer = trace.get_tracer("efficy_gateway.identity")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PERSON_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

PERSON_RESTRICT_TO = "{PerID}"
DEMANDE_RESTRICT_TO = "{DmdID,DmdToken,DmdStatus,DmdActID,DmdCrDt,DmdDescription,DmdPriority,DmdQualifID,DmdAttID}"
IDENTITY_NOT_FOUND_MESSAGE = "No Efficy customer found for logged user email"


def normalize_user_email(user_email: str | None) -> str:
    if user_email is None:
        raise GatewayValidationError("Unable to resolve logged user email")

    trimmed = user_email.strip()
    if not EMAIL_PATTERN.match(trimmed):
        raise GatewayValidationError("Unable to resolve logged user email")
    return trimmed


def resolve_page_size(raw: str | None, settings: Settings) -> int:
    """Parse ``pageSize``: non-positive or non-numeric input falls back to the default."""
    requested = settings.default_page_size
    if raw:
        try:
            parsed = int(raw)
        except ValueError:
            parsed = 0
        if parsed > 0:
            requested = parsed
    return min(requested, settings.efficy_max_page_size)


def _person_beans(payload: Any) -> list[dict[str, Any]]:
    rows = read_query_rows(payload)
    if rows:
        return [read_bean(row) for row in rows]
    if isinstance(payload, list):
        return [read_bean(row) for row in payload]
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return [read_bean(payload["data"])]
    return []


def extract_person_id(body: str) -> str | None:
    try:
        payload = json.loads(body)
    except ValueError:
        return None

    for bean in _person_beans(payload):
        person_id = read_identifier(bean, "PerID")
        if person_id:
            return person_id
    return None


def identity_not_found_response() -> GatewayResponse:
    envelope = {
        "code": ErrorCode.IDENTITY_NOT_FOUND.value,
        "message": IDENTITY_NOT_FOUND_MESSAGE,
        "details": None,
        "correlation_id": get_correlation_id(),
    }
    return GatewayResponse(status=404, content_type=JSON_CONTENT_TYPE, body=json.dumps(envelope))


class IdentityResolver:
    def __init__(self, gateway: GatewayService | None = None) -> None:
        self._gateway = gateway or gateway_service

    def fetch_current_user_person(self, authorization: str, user_email: str | None) -> GatewayResponse:
        email = normalize_user_email(user_email)
        return self._fetch_person_by_email(email, authorization)

    def fetch_demandes_for_current_user(
        self,
        page_size: int,
        authorization: str,
        user_email: str | None,
    ) -> GatewayResponse:
        email = normalize_user_email(user_email)

        person_response = self._fetch_person_by_email(email, authorization)
        if person_response.is_error:
            return person_response

        person_id = extract_person_id(person_response.body)
        if person_id is None or not PERSON_ID_PATTERN.fullmatch(person_id):
            observe_identity_not_found()
            logger.info("identity.person_not_found", extra={"field": "PerID"})
            return identity_not_found_response()

        capped = min(page_size, self._gateway.settings.efficy_max_page_size)
        return self._fetch_demandes_by_person_id(person_id, capped, authorization, email)

    def _fetch_person_by_email(self, email: str, authorization: str) -> GatewayResponse:
        query = (
            f"filter={quote_plus('{{[PerMail,=,' + email + ']}}')}"
            f"&restrict_to={quote_plus(PERSON_RESTRICT_TO)}"
            "&nb_of_result=1"
        )
        with tracer.start_as_current_span("identity.resolve_person"):
            return self._gateway.forward(
                GatewayRequest(
                    resource_type=ResourceType.ADVANCED,
                    path="Person",
                    method="GET",
                    authorization=authorization,
                    query=query,
                    user_email=email,
                )
            )

    def _fetch_demandes_by_person_id(
        self,
        person_id: str,
        page_size: int,
        authorization: str,
        email: str,
    ) -> GatewayResponse:
        query = (
            f"filter={quote_plus('{{[DmdPerID,=,' + person_id + ']}}')}"
            f"&restrict_to={quote_plus(DEMANDE_RESTRICT_TO)}"
            f"&nb_of_result={page_size}"
        )
        with tracer.start_as_current_span("identity.fetch_demandes") as span:
            span.set_attribute("efficy.page_size", page_size)
            return self._gateway.forward(
                GatewayRequest(
                    resource_type=ResourceType.ADVANCED,
                    path="Demande",
                    method="GET",
                    authorization=authorization,
                    query=query,
                    user_email=email,
                )
            )


def get_identity_resolver(gateway: GatewayService = Depends(get_gateway_service)) -> IdentityResolver:
    return IdentityResolver(gateway)
