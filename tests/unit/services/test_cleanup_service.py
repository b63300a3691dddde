"""Unit tests for the lifecycle sweep and remote resource release."""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import CleanupSettings
from app.core.exceptions import PermanentRemoteError, TransientRemoteError
from app.models.compliance import DocumentStatus
from app.services.cleanup_service import SYSTEM_DELETION_SOURCE, CleanupService
from app.services.remote_cleanup import RemoteResourceCleaner


def expired_at(days=1):
    return datetime.now(timezone.utc) - timedelta(days=days)


@pytest.fixture
def file_client():
    client = AsyncMock()
    client.delete.return_value = True
    return client


@pytest.fixture
def index_client():
    client = AsyncMock()
    client.delete.return_value = True
    return client


@pytest.fixture
def cleaner(file_client, index_client, fake_clock):
    return RemoteResourceCleaner(file_client, index_client, attempts=2, sleep=fake_clock.sleep)


class ExpiringRecord:
    """Loaded record whose fields become unreadable once the session rolls back."""

    def __init__(self, session_state, **fields):
        self._session_state = session_state
        self._fields = fields

    def __getattr__(self, name):
        if self._session_state["rolled_back"]:
            raise RuntimeError(f"{name} of an expired record read outside the session")
        return self._fields[name]


def make_service(repository, cleaner, fake_clock, **config):
    values = dict(batch_size=10, batch_delay=2, delete_attempts=2, enable_on_signin=True)
    values.update(config)
    return CleanupService(
        repository, cleaner, CleanupSettings(**values), sleep=fake_clock.sleep, clock=fake_clock
    )


class TestRemoteResourceCleaner:

    @pytest.mark.asyncio
    async def test_deletes_index_then_file(self, cleaner, file_client, index_client, make_document):
        order = []
        index_client.delete.side_effect = lambda rid: order.append(("index", rid)) or True
        file_client.delete.side_effect = lambda rid: order.append(("file", rid)) or True

        result = await cleaner.release(make_document(remote_index_id="vs-1", remote_file_id="file-1"))

        assert result.complete
        assert order == [("index", "vs-1"), ("file", "file-1")]

    @pytest.mark.asyncio
    async def test_missing_remote_resource_counts_as_released(self, cleaner, index_client, make_document):
        index_client.delete.side_effect = PermanentRemoteError("OpenAI API Error: 404 - gone", status_code=404)

        result = await cleaner.release(make_document())

        assert result.index_released is True
        assert result.complete

    @pytest.mark.asyncio
    async def test_persistent_failure_is_reported_not_raised(
        self, cleaner, file_client, make_document, fake_clock
    ):
        file_client.delete.side_effect = TransientRemoteError("503 unavailable")

        result = await cleaner.release(make_document())

        assert result.file_released is False
        assert result.index_released is True
        assert not result.complete
        assert file_client.delete.await_count == 2
        assert fake_clock.sleeps == [2]

    @pytest.mark.asyncio
    async def test_document_without_remote_ids(self, cleaner, file_client, index_client, make_document):
        result = await cleaner.release(make_document(remote_file_id=None, remote_index_id=None))

        assert result.complete
        file_client.delete.assert_not_awaited()
        index_client.delete.assert_not_awaited()


class TestCleanupService:

    @pytest.mark.asyncio
    async def test_all_expired_documents_are_retired(
        self, document_repository, cleaner, make_document, fake_clock
    ):
        expired = [make_document(expires_at=expired_at(), remote_file_id=f"file-{i}", remote_index_id=f"vs-{i}") for i in range(5)]
        active = make_document(remote_file_id="file-active", remote_index_id="vs-active")
        for document in expired + [active]:
            document_repository.documents[document.id] = document
        service = make_service(document_repository, cleaner, fake_clock, batch_size=2)

        summary = await service.execute()

        assert summary.total_found == 5
        assert summary.processed == 5
        assert summary.succeeded + summary.failed == summary.processed
        assert summary.succeeded == 5
        assert summary.batches == 3
        # Pause between batches only
        assert fake_clock.sleeps == [2, 2]
        assert all(d.document_status is DocumentStatus.DELETED for d in expired)
        assert all(d.deletion_source == SYSTEM_DELETION_SOURCE for d in expired)
        assert active.document_status is DocumentStatus.READY

    @pytest.mark.asyncio
    async def test_second_sweep_finds_nothing(self, document_repository, cleaner, make_document, fake_clock):
        document = make_document(expires_at=expired_at())
        document_repository.documents[document.id] = document
        service = make_service(document_repository, cleaner, fake_clock)

        await service.execute()
        summary = await service.execute()

        assert summary.total_found == 0
        assert summary.processed == 0

    @pytest.mark.asyncio
    async def test_failed_soft_delete_is_counted(self, document_repository, cleaner, make_document, fake_clock):
        documents = [make_document(expires_at=expired_at()) for _ in range(3)]
        for document in documents:
            document_repository.documents[document.id] = document

        original = document_repository.mark_deleted

        async def flaky_mark_deleted(document_id, source):
            if document_id == documents[1].id:
                raise RuntimeError("database unavailable")
            return await original(document_id, source)

        document_repository.mark_deleted = flaky_mark_deleted
        service = make_service(document_repository, cleaner, fake_clock)

        summary = await service.execute()

        assert summary.processed == 3
        assert summary.succeeded == 2
        assert summary.failed == 1

    @pytest.mark.asyncio
    async def test_rollback_does_not_stop_the_sweep(self, cleaner, file_client, fake_clock):
        session_state = {"rolled_back": False}
        ids = [uuid.uuid4() for _ in range(3)]
        records = [
            ExpiringRecord(
                session_state,
                id=document_id,
                original_filename=f"dpr-{i}.pdf",
                expires_at=expired_at(),
                remote_file_id=f"file-{i}",
                remote_index_id=f"vs-{i}",
            )
            for i, document_id in enumerate(ids)
        ]
        deleted = []

        async def mark_deleted(document_id, source):
            if not session_state["rolled_back"]:
                session_state["rolled_back"] = True
                raise OperationalError("UPDATE", {}, Exception("deadlock detected"))
            deleted.append(document_id)
            return True

        repository = AsyncMock()
        repository.list_expired.return_value = records
        repository.mark_deleted.side_effect = mark_deleted
        service = make_service(repository, cleaner, fake_clock)

        summary = await service.execute()

        assert summary.failed == 1
        assert summary.succeeded == 2
        assert deleted == ids[1:]
        assert file_client.delete.await_count == 3

    @pytest.mark.asyncio
    async def test_already_deleted_by_concurrent_sweep(self, document_repository, cleaner, make_document, fake_clock):
        document = make_document(expires_at=expired_at())
        document_repository.documents[document.id] = document

        async def lost_race(document_id, source):
            return False

        document_repository.mark_deleted = lost_race
        service = make_service(document_repository, cleaner, fake_clock)

        summary = await service.execute()

        assert summary.succeeded == 1
        assert summary.failed == 0


class TestSignInTrigger:

    @pytest.mark.asyncio
    async def test_disabled(self, document_repository, cleaner, make_document, fake_clock):
        document = make_document(expires_at=expired_at())
        document_repository.documents[document.id] = document
        service = make_service(document_repository, cleaner, fake_clock, enable_on_signin=False)

        assert await service.trigger_if_needed() is None
        assert document.document_status is DocumentStatus.READY

    @pytest.mark.asyncio
    async def test_nothing_expired(self, document_repository, cleaner, make_document, fake_clock):
        document = make_document()
        document_repository.documents[document.id] = document
        service = make_service(document_repository, cleaner, fake_clock)

        assert await service.trigger_if_needed() is None

    @pytest.mark.asyncio
    async def test_runs_sweep_when_something_expired(self, document_repository, cleaner, make_document, fake_clock):
        document = make_document(expires_at=expired_at())
        document_repository.documents[document.id] = document
        service = make_service(document_repository, cleaner, fake_clock)

        summary = await service.trigger_if_needed()

        assert summary.succeeded == 1
        assert document.document_status is DocumentStatus.DELETED
