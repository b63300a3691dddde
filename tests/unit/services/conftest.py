"""In-memory stand-ins for the repositories used by the services."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.database.models import Evaluation, EvaluationItemResult, UploadedDocument
from app.models.compliance import DocumentStatus, EvaluationStatus, IndexStatus, ProgressStage
from app.repositories.evaluation_repository import summarize


class FakeDocumentRepository:
    """Document repository keeping records in a dict and every stage it was set to."""

    def __init__(self, documents=None):
        self.documents = {d.id: d for d in documents or []}
        self.stages = []
        self.deleted = []
        self.reloaded = []

    async def update(self, document, **kwargs):
        for key, value in kwargs.items():
            setattr(document, key, value)
        return document

    async def create_document(self, user_id, original_filename, file_size, mime_type, content_hash, retention_days=30):
        now = datetime.now(timezone.utc)
        document = UploadedDocument(
            id=uuid.uuid4(),
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
            created_at=now,
            updated_at=now,
        )
        self.documents[document.id] = document
        self.stages.append(ProgressStage.VALIDATING)
        return document

    async def reload(self, *documents):
        self.reloaded.extend(documents)

    async def set_stage(self, document, stage):
        self.stages.append(stage)
        return await self.update(document, progress_stage=stage.value)

    async def set_remote_file(self, document, file_id):
        return await self.update(document, remote_file_id=file_id)

    async def set_remote_index(self, document, index_id):
        return await self.update(document, remote_index_id=index_id)

    async def set_index_status(self, document, status):
        return await self.update(document, index_status=status.value)

    async def mark_ready(self, document):
        self.stages.append(ProgressStage.COMPLETED)
        return await self.update(
            document,
            status=DocumentStatus.READY.value,
            index_status=IndexStatus.COMPLETED.value,
            progress_stage=ProgressStage.COMPLETED.value,
            uploaded_at=datetime.now(timezone.utc),
            error_message=None,
        )

    async def mark_error(self, document, message, index_failed=False):
        self.stages.append(ProgressStage.ERROR)
        fields = {
            "status": DocumentStatus.ERROR.value,
            "progress_stage": ProgressStage.ERROR.value,
            "error_message": message,
        }
        if index_failed:
            fields["index_status"] = IndexStatus.FAILED.value
        return await self.update(document, **fields)

    async def mark_deleted(self, document_id, source):
        document = self.documents.get(document_id)
        if document is None or document.status == DocumentStatus.DELETED.value:
            return False
        document.status = DocumentStatus.DELETED.value
        document.deleted_at = datetime.now(timezone.utc)
        document.deletion_source = source
        self.deleted.append((document_id, source))
        return True

    async def find_latest_by_hash(self, user_id, content_hash):
        matches = [
            d for d in self.documents.values()
            if d.user_id == user_id and d.content_hash == content_hash
            and d.status != DocumentStatus.DELETED.value
        ]
        return matches[-1] if matches else None

    async def get_for_owner(self, document_id, user_id):
        document = self.documents.get(document_id)
        if document is None or document.user_id != user_id or document.status == DocumentStatus.DELETED.value:
            return None
        return document

    async def list_expired(self, now=None):
        now = now or datetime.now(timezone.utc)
        return [
            d for d in self.documents.values()
            if d.expires_at < now and d.status != DocumentStatus.DELETED.value
        ]

    async def count_expired(self, now=None):
        return len(await self.list_expired(now))


class FakeEvaluationRepository:
    """Evaluation repository recording each status transition."""

    def __init__(self):
        self.evaluations = {}
        self.transitions = []
        self.reloaded = []

    async def create_evaluation(self, user_id, uploaded_document_id, scheme_id, document_type_id):
        evaluation = Evaluation(
            id=uuid.uuid4(),
            user_id=user_id,
            uploaded_document_id=uploaded_document_id,
            scheme_id=scheme_id,
            document_type_id=document_type_id,
            status=EvaluationStatus.PENDING.value,
            evaluation_date=datetime.now(timezone.utc),
        )
        self.evaluations[evaluation.id] = evaluation
        self.transitions.append(EvaluationStatus.PENDING)
        return evaluation

    async def reload(self, *evaluations):
        self.reloaded.extend(evaluations)

    async def mark_processing(self, evaluation):
        evaluation.status = EvaluationStatus.PROCESSING.value
        self.transitions.append(EvaluationStatus.PROCESSING)
        return evaluation

    async def mark_failed(self, evaluation, message):
        evaluation.status = EvaluationStatus.FAILED.value
        evaluation.error_message = message
        self.transitions.append(EvaluationStatus.FAILED)
        return evaluation

    async def complete_with_results(self, evaluation, matched, conversation_id, processing_time, document=None):
        evaluation.results = [
            EvaluationItemResult(
                id=uuid.uuid4(),
                evaluation_id=evaluation.id,
                checklist_item_id=item_id,
                status=result.status.value,
                remarks=result.remarks,
            )
            for item_id, result in matched
        ]
        evaluation.summary_stats = summarize([result.status for _, result in matched])
        evaluation.conversation_id = conversation_id
        evaluation.processing_time = processing_time
        evaluation.status = EvaluationStatus.COMPLETED.value
        if document is not None:
            document.last_analyzed_at = datetime.now(timezone.utc)
        self.transitions.append(EvaluationStatus.COMPLETED)
        return evaluation

    async def get_for_owner(self, evaluation_id, user_id):
        evaluation = self.evaluations.get(evaluation_id)
        if evaluation is None or evaluation.user_id != user_id or evaluation.deleted_at is not None:
            return None
        return evaluation

    async def soft_delete(self, evaluation, deleted_by_id):
        evaluation.deleted_at = datetime.now(timezone.utc)
        evaluation.deleted_by_id = deleted_by_id
        return evaluation


@pytest.fixture
def document_repository():
    return FakeDocumentRepository()


@pytest.fixture
def evaluation_repository():
    return FakeEvaluationRepository()
