"""Repository for uploaded documents and their lifecycle transitions."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import UploadedDocument
from app.models.compliance import DocumentStatus, IndexStatus, ProgressStage
from app.repositories.base_repository import BaseRepository

NOT_DELETED = UploadedDocument.status != DocumentStatus.DELETED.value


class UploadedDocumentRepository(BaseRepository[UploadedDocument]):
    """Data access for UploadedDocument records.

    Status columns are only written through the transition methods below.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, UploadedDocument)

    async def create_document(
        self,
        user_id: uuid.UUID,
        original_filename: str,
        file_size: int,
        mime_type: str,
        content_hash: str,
        retention_days: int = 30,
    ) -> UploadedDocument:
        """Create the record at the start of ingestion.

        ``expires_at`` is fixed here and never extended afterwards.
        """
        now = datetime.now(timezone.utc)
        document = await self.create(
            user_id=user_id,
            original_filename=original_filename,
            display_name=original_filename,
            file_size=file_size,
            mime_type=mime_type,
            content_hash=content_hash,
            status=DocumentStatus.PROCESSING.value,
            index_status=IndexStatus.PENDING.value,
            progress_stage=ProgressStage.VALIDATING.value,
            expires_at=now + timedelta(days=retention_days),
        )
        self.logger.info(
            f"Created uploaded document {document.id}",
            extra={"user_id": str(user_id), "document_filename": original_filename},
        )
        return document

    async def set_stage(self, document: UploadedDocument, stage: ProgressStage) -> UploadedDocument:
        return await self.update(document, progress_stage=stage.value)

    async def set_remote_file(self, document: UploadedDocument, file_id: str) -> UploadedDocument:
        return await self.update(document, remote_file_id=file_id)

    async def set_remote_index(self, document: UploadedDocument, index_id: str) -> UploadedDocument:
        return await self.update(document, remote_index_id=index_id)

    async def set_index_status(self, document: UploadedDocument, status: IndexStatus) -> UploadedDocument:
        return await self.update(document, index_status=status.value)

    async def mark_ready(self, document: UploadedDocument) -> UploadedDocument:
        return await self.update(
            document,
            status=DocumentStatus.READY.value,
            index_status=IndexStatus.COMPLETED.value,
            progress_stage=ProgressStage.COMPLETED.value,
            uploaded_at=datetime.now(timezone.utc),
            error_message=None,
        )

    async def mark_error(
        self,
        document: UploadedDocument,
        message: str,
        index_failed: bool = False,
    ) -> UploadedDocument:
        fields = {
            "status": DocumentStatus.ERROR.value,
            "progress_stage": ProgressStage.ERROR.value,
            "error_message": message,
        }
        if index_failed:
            fields["index_status"] = IndexStatus.FAILED.value
        return await self.update(document, **fields)

    async def mark_deleted(self, document_id: uuid.UUID, source: str) -> bool:
        """Soft-delete a document unless it is already deleted.

        Returns:
            True if this call performed the transition, False if the record
            was already deleted (or does not exist)
        """
        now = datetime.now(timezone.utc)
        stmt = (
            update(UploadedDocument)
            .where(and_(UploadedDocument.id == document_id, NOT_DELETED))
            .values(
                status=DocumentStatus.DELETED.value,
                deleted_at=now,
                deletion_source=source,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self.transaction(f"soft-deleting document {document_id}") as session:
            result = await session.execute(stmt)
        return result.rowcount == 1

    async def find_latest_by_hash(
        self, user_id: uuid.UUID, content_hash: str
    ) -> Optional[UploadedDocument]:
        """Most recent non-deleted document of the owner with the same content."""
        return await self.first(
            select(UploadedDocument)
            .where(
                and_(
                    UploadedDocument.user_id == user_id,
                    UploadedDocument.content_hash == content_hash,
                    NOT_DELETED,
                )
            )
            .order_by(UploadedDocument.created_at.desc())
            .limit(1)
        )

    async def get_for_owner(
        self, document_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[UploadedDocument]:
        return await self.first(
            select(UploadedDocument).where(
                and_(
                    UploadedDocument.id == document_id,
                    UploadedDocument.user_id == user_id,
                    NOT_DELETED,
                )
            )
        )

    async def list_for_owner(
        self,
        user_id: uuid.UUID,
        status: Optional[DocumentStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[UploadedDocument], int]:
        """Active documents of an owner, newest first, with the total count."""
        conditions = [UploadedDocument.user_id == user_id, NOT_DELETED]
        if status is not None:
            conditions.append(UploadedDocument.status == status.value)

        return await self.page(
            select(UploadedDocument).order_by(UploadedDocument.created_at.desc()),
            conditions,
            skip=skip,
            limit=limit,
        )

    async def list_expired(self, now: Optional[datetime] = None) -> List[UploadedDocument]:
        """Documents past ``expires_at`` that are not yet deleted, oldest first."""
        now = now or datetime.now(timezone.utc)
        return await self.all(
            select(UploadedDocument)
            .where(and_(UploadedDocument.expires_at < now, NOT_DELETED))
            .order_by(UploadedDocument.expires_at.asc())
        )

    async def count_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return await self.count_where(UploadedDocument.expires_at < now, NOT_DELETED)
