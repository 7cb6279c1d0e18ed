from __future__ import annotations

from efficy_gateway.beans import normalize_ids
from efficy_gateway.client.attachments import to_downloaded_file
from efficy_gateway.client.demandes import DemandesService
from efficy_gateway.client.errors import ServiceError, ServiceErrorKind
from efficy_gateway.client.http import HttpClient
from efficy_gateway.client.models import Attachment, AttachmentUpload, Demande, DownloadedFile, UploadTarget, UserDocuments


class DocumentsService:
    def __init__(self, http: HttpClient) -> None:
        self.demandes = DemandesService(http)
        self.api = self.demandes.api

    async def list_current_user_documents(self) -> UserDocuments:
        person_id = await self.api.get_current_user_person_id()
        if not person_id:
            raise ServiceError(ServiceErrorKind.PERSON_UNRESOLVED)

        attachment_ids = await self.api.get_person_attachment_ids(person_id)
        documents = await self.api.collect_attachments(attachment_ids)
        return UserDocuments(person_id=person_id, documents=documents)

    async def list_demandes_for_current_user(self, page_size: int) -> list[Demande]:
        return await self.demandes.list_demandes(page_size)

    async def upload_and_attach_document(
        self,
        upload: AttachmentUpload,
        target: UploadTarget,
        person_id: str,
        demande_id: str | None = None,
    ) -> None:
        attachment_id = await self.api.create_attachment(upload)
        if not attachment_id:
            raise ServiceError(ServiceErrorKind.UPLOAD_FAILED, file_name=upload.name)

        if target is UploadTarget.DEMANDE:
            if not demande_id:
                raise ServiceError(ServiceErrorKind.DEMANDE_REQUIRED)
            existing = await self.api.get_demande_attachment_ids(demande_id)
            await self.api.update_demande_attachment_ids(demande_id, normalize_ids([*existing, attachment_id]))
            return

        existing = await self.api.get_person_attachment_ids(person_id)
        await self.api.update_person_attachment_ids(person_id, normalize_ids([*existing, attachment_id]))

    async def download_document(self, attachment: Attachment) -> DownloadedFile:
        content = await self.api.get_attachment_content(attachment.id)
        downloaded = to_downloaded_file(content, attachment)
        if downloaded is None:
            raise ServiceError(ServiceErrorKind.DOWNLOAD_FAILED, attachment_id=attachment.id)
        return downloaded
