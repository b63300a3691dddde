"""Uploaded document management for the owning user."""

import uuid
from typing import List, Optional, Tuple

from app.core.exceptions import APIClientError, NotFoundError
from app.core.openai_client import RemoteIndexClient
from app.database.models import UploadedDocument
from app.models.compliance import DocumentStatus, IndexStatus
from app.repositories.uploaded_document_repository import UploadedDocumentRepository
from app.services.remote_cleanup import RemoteResourceCleaner
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentService:
    """List, inspect, refresh and delete uploaded documents."""

    def __init__(
        self,
        repository: UploadedDocumentRepository,
        index_client: RemoteIndexClient,
        cleaner: RemoteResourceCleaner,
    ):
        self.repository = repository
        self.index_client = index_client
        self.cleaner = cleaner

    async def list_documents(
        self,
        owner_id: uuid.UUID,
        status: Optional[DocumentStatus] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[UploadedDocument], int]:
        return await self.repository.list_for_owner(
            owner_id, status=status, skip=(page - 1) * per_page, limit=per_page
        )

    async def get_document(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> UploadedDocument:
        document = await self.repository.get_for_owner(document_id, owner_id)
        if document is None:
            raise NotFoundError(f"File {document_id} not found")
        return document

    async def delete_document(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> None:
        """Soft-delete on behalf of the user, then release remote resources."""
        document = await self.get_document(owner_id, document_id)
        await self.repository.mark_deleted(document.id, source="user")

        released = await self.cleaner.release(document)
        if not released.complete:
            LOGGER.error(f"Failed to clean up remote resources for file {document.id}")

    async def refresh_status(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> UploadedDocument:
        """Re-read the remote index status while the index is still building.

        Remote failures are logged and the stored status is returned as is.
        """
        document = await self.get_document(owner_id, document_id)
        if document.index_state not in (IndexStatus.PENDING, IndexStatus.PROCESSING):
            return document
        if not document.remote_index_id:
            return document

        try:
            snapshot = await self.index_client.get_status(document.remote_index_id)
        except APIClientError as e:
            LOGGER.error(f"Failed to refresh status of file {document.id}: {e}")
            return document

        new_status = IndexStatus.from_remote(snapshot.status)
        if new_status is IndexStatus.COMPLETED and document.document_status is DocumentStatus.PROCESSING:
            return await self.repository.mark_ready(document)
        if new_status is not document.index_state:
            return await self.repository.set_index_status(document, new_status)
        return document
