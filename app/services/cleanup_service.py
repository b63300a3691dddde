"""Lifecycle sweep retiring expired documents and their remote resources."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from app.core.config import CleanupSettings
from app.core.exceptions import CleanupError
from app.models.compliance import CleanupSummary, ExpiredFile
from app.repositories.uploaded_document_repository import UploadedDocumentRepository
from app.services.base_service import BaseService
from app.services.remote_cleanup import RemoteResourceCleaner
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

SYSTEM_DELETION_SOURCE = "system"


class CleanupService(BaseService):
    """Finds expired documents and retires them in throttled batches.

    Safe to run repeatedly and concurrently: remote deletes tolerate missing
    resources and the local soft delete only applies to records that are not
    deleted yet.
    """

    def __init__(
        self,
        repository: UploadedDocumentRepository,
        cleaner: RemoteResourceCleaner,
        config: CleanupSettings,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(repository)
        self.cleaner = cleaner
        self.config = config
        self._sleep = sleep or asyncio.sleep
        self._clock = clock

    async def run(self) -> CleanupSummary:
        start = self._clock()
        summary = CleanupSummary()

        LOGGER.info("===== FILE LIFECYCLE CLEANUP STARTED =====")
        # Copied out so a failed soft delete cannot expire the remaining records
        documents = [ExpiredFile.of(d) for d in await self.repository.list_expired()]
        summary.total_found = len(documents)
        LOGGER.info(f"Found {summary.total_found} expired file(s) that need cleanup")

        if not documents:
            summary.duration_seconds = self._clock() - start
            return summary

        batch_size = self.config.batch_size
        for offset in range(0, len(documents), batch_size):
            batch = documents[offset:offset + batch_size]
            summary.batches += 1
            LOGGER.info(f"Processing batch #{summary.batches} ({len(batch)} file(s))")

            for document in batch:
                summary.processed += 1
                try:
                    await self._retire(document)
                    summary.succeeded += 1
                except Exception as e:
                    summary.failed += 1
                    LOGGER.error(
                        f"[{summary.processed}/{summary.total_found}] Failed to clean up file {document.id}: {e}",
                        exc_info=True,
                        extra={"document_id": str(document.id), "error_type": type(e).__name__},
                    )

            if offset + batch_size < len(documents):
                LOGGER.info(f"Waiting {self.config.batch_delay}s before next batch...")
                await self._sleep(self.config.batch_delay)

        summary.duration_seconds = self._clock() - start
        LOGGER.info(
            "===== FILE LIFECYCLE CLEANUP COMPLETED =====",
            extra={"summary": summary.as_dict()},
        )
        LOGGER.info(
            f"Total found: {summary.total_found}, processed: {summary.processed}, "
            f"succeeded: {summary.succeeded}, failed: {summary.failed}"
        )
        return summary

    async def trigger_if_needed(self) -> Optional[CleanupSummary]:
        """Sign-in hook: sweep only when enabled and something has expired."""
        if not self.config.enable_on_signin:
            LOGGER.info("File cleanup on login is disabled (ENABLE_FILE_CLEANUP_ON_LOGIN=false)")
            return None

        expired_count = await self.repository.count_expired()
        if expired_count == 0:
            LOGGER.info("No expired files found. Cleanup not needed.")
            return None

        LOGGER.info(f"Found {expired_count} expired file(s), triggering cleanup")
        return await self.execute()

    async def _retire(self, document: ExpiredFile) -> None:
        now = datetime.now(timezone.utc)
        days_expired = (now - document.expires_at).total_seconds() / 86400 if document.expires_at else 0
        LOGGER.info(
            f"Retiring file {document.id} ({document.original_filename}), "
            f"expired {days_expired:.2f} day(s) ago",
            extra={
                "remote_file_id": document.remote_file_id or "N/A",
                "remote_index_id": document.remote_index_id or "N/A",
            },
        )

        released = await self.cleaner.release(document)
        if not released.complete:
            LOGGER.warning(f"Remote resources of file {document.id} were not fully released")

        try:
            transitioned = await self.repository.mark_deleted(document.id, source=SYSTEM_DELETION_SOURCE)
        except Exception as e:
            raise CleanupError(f"Soft delete of file {document.id} failed: {e}", original_error=e) from e

        if not transitioned:
            LOGGER.info(f"File {document.id} was already deleted by another sweep")
