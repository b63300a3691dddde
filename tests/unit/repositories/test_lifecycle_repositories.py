"""Unit tests for repository transitions against a mocked session."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.database.models import Evaluation
from app.models.compliance import ChecklistResult, EvaluationStatus, ProgressStage
from app.repositories.evaluation_repository import EvaluationRepository, summarize
from app.repositories.uploaded_document_repository import UploadedDocumentRepository


@pytest.fixture
def session():
    session = MagicMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


def make_evaluation():
    return Evaluation(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        uploaded_document_id=uuid.uuid4(),
        scheme_id=uuid.uuid4(),
        document_type_id=uuid.uuid4(),
        status=EvaluationStatus.PROCESSING.value,
    )


class TestUploadedDocumentRepository:

    @pytest.mark.asyncio
    async def test_mark_deleted_reports_transition(self, session):
        session.execute.return_value = MagicMock(rowcount=1)

        assert await UploadedDocumentRepository(session).mark_deleted(uuid.uuid4(), "system") is True
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mark_deleted_on_already_deleted_record(self, session):
        session.execute.return_value = MagicMock(rowcount=0)

        assert await UploadedDocumentRepository(session).mark_deleted(uuid.uuid4(), "system") is False

    @pytest.mark.asyncio
    async def test_failed_commit_rolls_back(self, session, make_document):
        session.commit.side_effect = OperationalError("UPDATE", {}, Exception("connection lost"))
        document = make_document()

        with pytest.raises(OperationalError):
            await UploadedDocumentRepository(session).set_stage(document, ProgressStage.UPLOADING_FILE)

        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_field(self, session, make_document):
        with pytest.raises(AttributeError):
            await UploadedDocumentRepository(session).update(make_document(), colour="blue")

        session.rollback.assert_not_awaited()


class TestEvaluationRepository:

    @pytest.mark.asyncio
    async def test_complete_with_results_writes_rows_and_status_together(self, session, make_document):
        evaluation = make_evaluation()
        document = make_document()
        matched = [
            (uuid.uuid4(), ChecklistResult(item="a", status="Yes", remarks="ok")),
            (uuid.uuid4(), ChecklistResult(item="b", status="Partial", remarks="some")),
        ]

        await EvaluationRepository(session).complete_with_results(
            evaluation, matched, conversation_id="thread_9", processing_time=30, document=document
        )

        rows = session.add_all.call_args.args[0]
        assert [row.checklist_item_id for row in rows] == [item_id for item_id, _ in matched]
        assert evaluation.evaluation_status is EvaluationStatus.COMPLETED
        assert evaluation.summary_stats == {"compliant": 1, "non_compliant": 0, "partial": 1, "total": 2}
        assert document.last_analyzed_at is not None
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_completion_commits_nothing(self, session):
        session.commit.side_effect = OperationalError("INSERT", {}, Exception("unique violation"))
        evaluation = make_evaluation()

        with pytest.raises(OperationalError):
            await EvaluationRepository(session).complete_with_results(
                evaluation, [], conversation_id="thread_9", processing_time=1
            )

        session.rollback.assert_awaited_once()

    def test_summarize_empty(self):
        assert summarize([]) == {"compliant": 0, "non_compliant": 0, "partial": 0, "total": 0}


class TestReload:

    @pytest.mark.asyncio
    async def test_reload_refreshes_each_record(self, session, make_document):
        session.refresh = AsyncMock()
        evaluation = make_evaluation()
        document = make_document()

        await EvaluationRepository(session).reload(evaluation, document)

        assert [c.args[0] for c in session.refresh.await_args_list] == [evaluation, document]

    @pytest.mark.asyncio
    async def test_failed_mark_failed_rolls_back(self, session):
        session.commit.side_effect = OperationalError("UPDATE", {}, Exception("connection lost"))
        evaluation = make_evaluation()

        with pytest.raises(OperationalError):
            await EvaluationRepository(session).mark_failed(evaluation, "Run failed: server_error")

        assert evaluation.error_message == "Run failed: server_error"
        session.rollback.assert_awaited_once()
