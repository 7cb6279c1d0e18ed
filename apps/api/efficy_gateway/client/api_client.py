from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any
from urllib.parse import quote

import httpx

from efficy_gateway.beans import (
    normalize_ids,
    read_bean,
    read_display_text,
    read_id_list,
    read_identifier,
    read_query_rows,
    read_raw_text,
    read_single_bean,
)
from efficy_gateway.client.attachments import build_upload_payload, to_attachment
from efficy_gateway.client.errors import HttpError
from efficy_gateway.client.http import HttpClient
from efficy_gateway.client.models import Attachment, AttachmentUpload, Qualification, ReferentialOption
from efficy_gateway.gateway.models import ResourceType


logger = logging.getLogger("efficy_gateway.client.api")

EXTRANET_LANGUAGE_ID = "00000000000008f4"
QUALIFICATION_FILTER = (
    "{[[QulQualificationID:QuaIsExtranetAvailable,=,1],[QulLngID,=," + EXTRANET_LANGUAGE_ID + "]]}"
)
QUALIFICATION_RESTRICT_TO = "{QulExtranetLabel,QulExtranetDescription,QulQualificationID,QulLngID}"
ACTOR_RESTRICT_TO = "{ActID,ActCivID,ActName,ActFstName}"


def encode_component(value: str) -> str:
    """Percent-encode like ``encodeURIComponent``."""
    return quote(value, safe="-_.!~*'()")


def read_path(source: Any, path: Sequence[str]) -> Any:
    current = source
    for segment in path:
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
    return current


def extract_first_string(source: Any, paths: Iterable[Sequence[str]]) -> str:
    for path in paths:
        value = read_path(source, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def extract_referential_rows(payload: Any) -> list[dict[str, Any]]:
    rows: Any = []
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, list):
            rows = data
        elif isinstance(data, dict) and isinstance(data.get("data"), list):
            rows = data["data"]
    return [row for row in rows if isinstance(row, dict)]


class EfficyApiClient:
    """CRM operations expressed against the gateway's HTTP surface."""

    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def list_demandes_for_current_user(self, page_size: int) -> list[dict[str, Any]]:
        response = await self.http.get(f"/me/demandes?pageSize={page_size}")
        return [read_bean(row) for row in read_query_rows(response)]

    async def get_current_user_person_id(self) -> str:
        response = await self.http.get("/me/person")
        rows = read_query_rows(response)
        if not rows:
            return ""
        return read_identifier(read_bean(rows[0]), "PerID")

    async def get_person_by_id(self, person_id: str) -> dict[str, Any] | None:
        response = await self.http.get(f"/base/Person/{encode_component(person_id)}")
        return read_single_bean(response)

    async def update_person_fields(self, person_id: str, fields: dict[str, Any]) -> None:
        await self.http.put(f"/base/Person/{encode_component(person_id)}", {"data": {"bean_data": fields}})

    async def get_enterprise_by_id(self, enterprise_id: str) -> dict[str, Any] | None:
        response = await self.http.get(f"/base/Enterprise/{encode_component(enterprise_id)}")
        return read_single_bean(response)

    async def fetch_qualifications(self) -> list[Qualification]:
        response = await self.http.get(
            f"/base/QualificationLabel?filter={encode_component(QUALIFICATION_FILTER)}"
            f"&restrict_to={encode_component(QUALIFICATION_RESTRICT_TO)}"
        )
        qualifications = []
        for row in read_query_rows(response):
            bean = read_bean(row)
            qualification = Qualification(
                id=read_raw_text(bean, "QulQualificationID"),
                label=read_display_text(bean, "QulExtranetLabel"),
                description=read_display_text(bean, "QulExtranetDescription") or None,
            )
            if qualification.id and qualification.label:
                qualifications.append(qualification)
        return qualifications

    async def fetch_referential_rows(self, field: str) -> list[dict[str, Any]]:
        response = await self.http.get(f"/service/referential_for?field={encode_component(field)}")
        return extract_referential_rows(response)

    async def fetch_referential_options(self, field: str) -> list[ReferentialOption]:
        options = []
        for row in await self.fetch_referential_rows(field):
            option_id = row.get("id")
            label = row.get("te1")
            if isinstance(option_id, str) and option_id and isinstance(label, str) and label:
                options.append(ReferentialOption(id=option_id, label=label))
        return options

    async def create_demande(self, payload: dict[str, Any]) -> Any:
        return await self.http.post("/base/Demande", payload)

    def extract_created_demande_id(self, response: Any) -> str:
        for source in (read_path(response, ["data", "bean_data"]), read_path(response, ["data"])):
            demande_id = read_identifier(source, "DmdID")
            if demande_id:
                return demande_id

        return extract_first_string(
            response,
            [["data", "DmdID"], ["DmdID"], ["data", "bean_display"], ["bean_display"]],
        )

    async def create_attachment(self, upload: AttachmentUpload) -> str:
        response = await self.http.post("/service/attachments", build_upload_payload(upload))
        return extract_first_string(
            response,
            [
                ["data", "bean_data", "AttID"],
                ["data", "bean_display"],
                ["data", "attID"],
                ["data", "AttID"],
                ["AttID"],
                ["attID"],
            ],
        )

    async def get_demande_attachment_ids(self, demande_id: str) -> list[str]:
        response = await self.http.get(f"/base/Demande/{encode_component(demande_id)}")
        return read_id_list(read_single_bean(response) or {}, "DmdAttID")

    async def update_demande_attachment_ids(self, demande_id: str, attachment_ids: list[str]) -> None:
        await self.http.put(
            f"/base/Demande/{encode_component(demande_id)}",
            {"data": {"bean_data": {"DmdAttID": attachment_ids}}},
        )

    async def get_person_attachment_ids(self, person_id: str) -> list[str]:
        response = await self.http.get(f"/base/Person/{encode_component(person_id)}")
        return read_id_list(read_single_bean(response) or {}, "PerAttID")

    async def update_person_attachment_ids(self, person_id: str, attachment_ids: list[str]) -> None:
        await self.http.put(
            f"/base/Person/{encode_component(person_id)}",
            {"data": {"bean_data": {"PerAttID": attachment_ids}}},
        )

    async def list_attachments_by_id(self, attachment_id: str) -> list[Attachment]:
        attachment_filter = encode_component("{{[AttID,=," + attachment_id + "]}}")
        response = await self.http.get(f"/base/Attachment?filter={attachment_filter}")
        attachments = [to_attachment(read_bean(row)) for row in read_query_rows(response)]
        return [attachment for attachment in attachments if attachment.id]

    async def get_attachment_content(self, attachment_id: str) -> Attachment | None:
        response = await self.http.get(f"/base/Attachment/{encode_component(attachment_id)}")
        bean = read_single_bean(response)
        if bean is None:
            return None
        return to_attachment(bean)

    async def collect_attachments(self, attachment_ids: Iterable[str]) -> list[Attachment]:
        """Load attachments one by one; an unreadable attachment is skipped."""
        attachments: list[Attachment] = []
        for attachment_id in normalize_ids(list(attachment_ids)):
            try:
                rows = await self.list_attachments_by_id(attachment_id)
                if rows:
                    attachments.extend(rows)
                    continue

                direct = await self.get_attachment_content(attachment_id)
                if direct is not None:
                    attachments.append(direct)
            except (HttpError, httpx.HTTPError, ValueError) as exc:
                logger.warning("client.attachment_skipped", extra={"item_id": attachment_id, "error": str(exc)})
        return attachments

    async def get_actor_display_name(self, actor_id: str) -> str:
        actor_filter = encode_component("{{[ActID,=," + actor_id + "]}}")
        response = await self.proxy_get(
            ResourceType.ADVANCED,
            f"Actor?filter={actor_filter}&restrict_to={encode_component(ACTOR_RESTRICT_TO)}",
        )
        rows = read_query_rows(response)
        if not rows:
            return ""

        bean = read_bean(rows[0])
        parts = (read_display_text(bean, key) for key in ("ActCivID", "ActFstName", "ActName"))
        return " ".join(part for part in parts if part)

    async def get_qualification_display_name(self, qualification_id: str) -> str:
        response = await self.http.get(f"/base/Qualification/{encode_component(qualification_id)}")
        display = read_path(response, ["data", "bean_display"])
        return display if isinstance(display, str) else ""

    async def proxy_get(self, resource_type: ResourceType, path: str) -> Any:
        return await self.http.get(f"/{resource_type.value}/{path}")
