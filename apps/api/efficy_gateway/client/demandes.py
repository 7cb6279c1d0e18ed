from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from efficy_gateway.beans import normalize_ids, read_display_text, read_id_list, read_raw_text
from efficy_gateway.client.api_client import EfficyApiClient
from efficy_gateway.client.attachments import to_downloaded_file
from efficy_gateway.client.errors import HttpError, ServiceError, ServiceErrorKind
from efficy_gateway.client.http import HttpClient
from efficy_gateway.client.models import (
    Attachment,
    CreateDemandeInput,
    Demande,
    DemandeCreationOptions,
    DownloadedFile,
)
from efficy_gateway.client.referentials import AsyncMemo


logger = logging.getLogger("efficy_gateway.client.demandes")

DEFAULT_ACTOR_ID = "00000000007d9285"
INBOUND_CHANNEL = "EXTRANET"
INITIAL_STATUS = "TOQUALIFY"


class DemandesService:
    def __init__(self, http: HttpClient) -> None:
        self.api = EfficyApiClient(http)
        self._actor_names: AsyncMemo[str] = AsyncMemo("actor", self.api.get_actor_display_name)
        self._qualification_names: AsyncMemo[str] = AsyncMemo(
            "qualification", self.api.get_qualification_display_name
        )

    async def list_demandes(self, page_size: int) -> list[Demande]:
        beans = await self.api.list_demandes_for_current_user(page_size)
        return list(await asyncio.gather(*(self._to_demande(bean) for bean in beans)))

    async def _to_demande(self, bean: dict[str, Any]) -> Demande:
        assigned_to, demande_type = await asyncio.gather(
            self._resolve_name(self._actor_names, read_raw_text(bean, "DmdActID")),
            self._resolve_name(self._qualification_names, read_raw_text(bean, "DmdQualifID")),
        )
        dmd_id = read_raw_text(bean, "DmdID")
        return Demande(
            id=read_display_text(bean, "DmdToken") or dmd_id,
            dmd_id=dmd_id,
            description=read_display_text(bean, "DmdDescription"),
            status=read_display_text(bean, "DmdStatus"),
            date_created=read_display_text(bean, "DmdCrDt"),
            priority=read_display_text(bean, "DmdPriority"),
            type=demande_type or None,
            assigned_to=assigned_to or None,
            att_ids=read_id_list(bean, "DmdAttID") or None,
        )

    @staticmethod
    async def _resolve_name(memo: AsyncMemo[str], entity_id: str) -> str:
        if not entity_id:
            return ""
        return await memo.get(entity_id)

    async def fetch_creation_options(self) -> DemandeCreationOptions:
        qualifications, priorities = await asyncio.gather(
            self.api.fetch_qualifications(),
            self.api.fetch_referential_options("DmdPriority"),
        )
        return DemandeCreationOptions(qualifications=qualifications, priorities=priorities)

    async def create_demande_for_current_user(self, request: CreateDemandeInput) -> None:
        person_id = await self.api.get_current_user_person_id()
        if not person_id:
            raise ServiceError(ServiceErrorKind.PERSON_UNRESOLVED)

        description = request.description.strip()
        if not description or not request.qualification_id:
            raise ServiceError(ServiceErrorKind.MISSING_REQUIRED_FIELDS)

        bean_data: dict[str, Any] = {
            "DmdActID": DEFAULT_ACTOR_ID,
            "DmdPerID": person_id,
            "DmdBenefPerID": person_id,
            "DmdQualifID": request.qualification_id,
            "DmdInChannel": INBOUND_CHANNEL,
            "DmdStatus": INITIAL_STATUS,
            "DmdDescription": description,
        }
        if request.priority_id:
            bean_data["DmdPriority"] = request.priority_id

        created = await self.api.create_demande({"data": {"bean_data": bean_data}})
        if request.attachment is None:
            return

        demande_id = self.api.extract_created_demande_id(created)
        if not demande_id:
            raise ServiceError(ServiceErrorKind.ATTACH_MISSING_DEMANDE)

        try:
            attachment_id = await self.api.create_attachment(request.attachment)
        except (HttpError, httpx.HTTPError) as exc:
            raise ServiceError(ServiceErrorKind.ATTACH_UPLOAD, demande_id=demande_id) from exc
        if not attachment_id:
            raise ServiceError(ServiceErrorKind.ATTACH_UPLOAD, demande_id=demande_id)

        try:
            existing = await self.api.get_demande_attachment_ids(demande_id)
            await self.api.update_demande_attachment_ids(demande_id, normalize_ids([*existing, attachment_id]))
        except (HttpError, httpx.HTTPError) as exc:
            raise ServiceError(
                ServiceErrorKind.ATTACH_LINK,
                demande_id=demande_id,
                attachment_id=attachment_id,
            ) from exc

    async def list_demande_attachments(self, attachment_ids: list[str]) -> list[Attachment]:
        return await self.api.collect_attachments(attachment_ids)

    async def resolve_demande_attachment_ids(self, demande: Demande) -> list[str]:
        known_ids = normalize_ids(demande.att_ids or [])
        if not demande.dmd_id:
            return known_ids

        try:
            current_ids = normalize_ids(await self.api.get_demande_attachment_ids(demande.dmd_id))
        except (HttpError, httpx.HTTPError) as exc:
            logger.info("client.attachment_ids_fallback", extra={"item_id": demande.dmd_id, "error": str(exc)})
            return known_ids
        return current_ids or known_ids

    async def download_attachment(self, attachment: Attachment) -> DownloadedFile:
        content = await self.api.get_attachment_content(attachment.id)
        downloaded = to_downloaded_file(content, attachment)
        if downloaded is None:
            raise ServiceError(ServiceErrorKind.DOWNLOAD_FAILED, attachment_id=attachment.id)
        return downloaded
