"""Best-effort release of the remote file and index behind a document."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from app.core.backoff import CLEANUP_POLICY, BackoffEngine, RetryPolicy
from app.core.exceptions import PermanentRemoteError
from app.core.openai_client import RemoteFileClient, RemoteIndexClient
from app.database.models import UploadedDocument
from app.models.compliance import ExpiredFile
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class ReleaseResult:
    index_released: bool = True
    file_released: bool = True

    @property
    def complete(self) -> bool:
        return self.index_released and self.file_released


class RemoteResourceCleaner:
    """Deletes the remote index, then the remote file, of one document.

    Each deletion is retried independently and never raises; a resource the
    backend no longer knows (404) counts as released.
    """

    def __init__(
        self,
        file_client: RemoteFileClient,
        index_client: RemoteIndexClient,
        attempts: int = CLEANUP_POLICY.max_attempts,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.file_client = file_client
        self.index_client = index_client
        self.engine = BackoffEngine(
            RetryPolicy(name="remote cleanup", max_attempts=attempts), sleep=sleep or asyncio.sleep
        )

    async def release(self, document: Union[UploadedDocument, ExpiredFile]) -> ReleaseResult:
        result = ReleaseResult()

        if document.remote_index_id:
            result.index_released = await self._delete(
                self.index_client.delete, document.remote_index_id, "vector store"
            )
        if document.remote_file_id:
            result.file_released = await self._delete(
                self.file_client.delete, document.remote_file_id, "file"
            )

        return result

    async def _delete(self, delete: Callable[[str], Awaitable[bool]], resource_id: str, kind: str) -> bool:
        async def attempt_delete(attempt: int) -> bool:
            try:
                return await delete(resource_id)
            except PermanentRemoteError as e:
                if e.status_code == 404:
                    LOGGER.info(f"Remote {kind} {resource_id} already gone")
                    return True
                raise

        released = await self.engine.execute(
            attempt_delete,
            operation_name=f"Delete {kind} {resource_id}",
            raise_on_failure=False,
        )
        if released:
            LOGGER.info(f"Cleaned up remote {kind}: {resource_id}")
        else:
            LOGGER.error(f"Failed to clean up remote {kind}: {resource_id}")
        return bool(released)
