"""Document ingestion: upload, index creation, attachment and readiness wait.

Stages run in a fixed order and each one is persisted on the document before
its work starts::

    validating -> uploading_file -> creating_index -> attaching_file
        -> generating_embeddings -> completed | error
"""

import asyncio
import hashlib
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from app.core.backoff import BackoffEngine, RetryPolicy
from app.core.config import IngestionSettings
from app.core.exceptions import DuplicateResourceError, ValidationError
from app.core.openai_client import RemoteFileClient, RemoteIndexClient
from app.core.poller import LoggingPollObserver, PollObserver, PollOutcome, ProgressivePoller
from app.database.models import UploadedDocument
from app.models.compliance import IndexStatus, ProgressStage
from app.repositories.uploaded_document_repository import UploadedDocumentRepository
from app.services.base_service import BaseService
from app.services.remote_cleanup import RemoteResourceCleaner
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class UploadPayload:
    """A file received from the caller."""

    filename: str
    content: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def content_hash(self) -> str:
        return hashlib.sha256(self.content).hexdigest()


class IngestionPipeline(BaseService):
    """Drives one upload through the ingestion stages."""

    def __init__(
        self,
        repository: UploadedDocumentRepository,
        file_client: RemoteFileClient,
        index_client: RemoteIndexClient,
        config: IngestionSettings,
        cleaner: Optional[RemoteResourceCleaner] = None,
        observer: Optional[PollObserver] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(repository)
        self.file_client = file_client
        self.index_client = index_client
        self.config = config
        sleep = sleep or asyncio.sleep
        self.cleaner = cleaner or RemoteResourceCleaner(file_client, index_client, sleep=sleep)
        self.observer = observer or LoggingPollObserver("Vector store")
        self.engine = BackoffEngine(
            RetryPolicy(name="remote operation", max_attempts=config.remote_retry_attempts),
            sleep=sleep,
        )
        self.poller = ProgressivePoller(index_client.get_status, sleep=sleep, clock=clock)
        self._handlers: Dict[ProgressStage, Callable[[UploadedDocument, UploadPayload], Awaitable[ProgressStage]]] = {
            ProgressStage.VALIDATING: self._validated,
            ProgressStage.UPLOADING_FILE: self._upload_file,
            ProgressStage.CREATING_INDEX: self._create_index,
            ProgressStage.ATTACHING_FILE: self._attach_file,
            ProgressStage.GENERATING_EMBEDDINGS: self._await_embeddings,
        }

    def validate(self, owner_id: uuid.UUID, upload: UploadPayload) -> None:
        if not upload.filename:
            raise ValidationError("File name is required.")
        if upload.mime_type not in self.config.allowed_mime_types:
            raise ValidationError("Invalid file type. Only PDF is allowed.")
        if upload.size == 0:
            raise ValidationError("File is empty.")
        if upload.size > self.config.max_file_size_bytes:
            raise ValidationError(
                f"File too large. Maximum size is {self.config.max_file_size_mb}MB."
            )

    async def run(self, owner_id: uuid.UUID, upload: UploadPayload) -> UploadedDocument:
        """Ingest ``upload`` for ``owner_id``.

        Returns:
            The document, ``ready`` or ``error`` when the index did not become ready

        Raises:
            DuplicateResourceError: An active document with the same content exists
        """
        content_hash = upload.content_hash
        existing = await self.repository.find_latest_by_hash(owner_id, content_hash)
        if existing is not None:
            if not existing.is_expired():
                raise DuplicateResourceError(existing)
            LOGGER.info(
                f"Found expired duplicate document (ID: {existing.id}), allowing re-upload"
            )

        document = await self.repository.create_document(
            user_id=owner_id,
            original_filename=upload.filename,
            file_size=upload.size,
            mime_type=upload.mime_type,
            content_hash=content_hash,
            retention_days=self.config.retention_days,
        )

        stage = ProgressStage.VALIDATING
        try:
            while not stage.is_terminal:
                if document.progress_stage != stage.value:
                    await self.repository.set_stage(document, stage)
                LOGGER.info(f"Document {document.id}: {stage.display()}")
                stage = await self._handlers[stage](document, upload)
        except Exception as e:
            LOGGER.error(
                f"Ingestion failed for document {document.id} at stage {stage.value}: {e}",
                exc_info=True,
            )
            await self.repository.mark_error(document, str(e))
            await self.cleaner.release(document)
            raise

        return document

    async def _validated(self, document: UploadedDocument, upload: UploadPayload) -> ProgressStage:
        return ProgressStage.UPLOADING_FILE

    async def _upload_file(self, document: UploadedDocument, upload: UploadPayload) -> ProgressStage:
        file_id = await self.engine.execute(
            lambda attempt: self.file_client.upload(upload.content, upload.filename),
            operation_name="File upload",
        )
        await self.repository.set_remote_file(document, file_id)
        LOGGER.info(f"File uploaded for document {document.id}: {file_id}")
        return ProgressStage.CREATING_INDEX

    async def _create_index(self, document: UploadedDocument, upload: UploadPayload) -> ProgressStage:
        name = f"File: {document.original_filename} ({document.id})"
        index_id = await self.engine.execute(
            lambda attempt: self.index_client.create(name, expires_after_days=self.config.retention_days),
            operation_name="Vector store creation",
        )
        await self.repository.set_remote_index(document, index_id)
        LOGGER.info(f"Vector store created for document {document.id}: {index_id}")
        return ProgressStage.ATTACHING_FILE

    async def _attach_file(self, document: UploadedDocument, upload: UploadPayload) -> ProgressStage:
        await self.engine.execute(
            lambda attempt: self.index_client.attach(document.remote_index_id, document.remote_file_id),
            operation_name="Attach file to vector store",
        )
        await self.repository.set_index_status(document, IndexStatus.PROCESSING)
        return ProgressStage.GENERATING_EMBEDDINGS

    async def _await_embeddings(self, document: UploadedDocument, upload: UploadPayload) -> ProgressStage:
        outcome = await self.poller.poll(
            document.remote_index_id,
            base_interval=self.config.index_poll_interval,
            timeout=self.config.index_poll_timeout,
            observer=self.observer,
        )

        if outcome is PollOutcome.COMPLETED:
            await self.repository.mark_ready(document)
            LOGGER.info(f"Document processing completed successfully: {document.id}")
            return ProgressStage.COMPLETED

        if outcome is PollOutcome.TIMEOUT:
            message = (
                f"Vector store processing timed out after "
                f"{self.config.index_poll_timeout / 60:g} minutes"
            )
        else:
            message = f"Vector store processing failed with status: {outcome.value}"
        await self.repository.mark_error(document, message, index_failed=True)
        LOGGER.error(f"{message} for document {document.id}")
        return ProgressStage.ERROR
