"""Evaluation creation, the analyze-and-persist retry wrapper, and management."""

import asyncio
import time
import uuid
from typing import Any, Awaitable, Callable, List, NamedTuple, Optional, Sequence, Tuple

from app.core.backoff import BackoffEngine, RetryPolicy
from app.core.config import EvaluationSettings
from app.core.exceptions import (
    ConfigurationError,
    DocumentNotReadyError,
    NotFoundError,
    ValidationError,
)
from app.database.models import ChecklistItem, Evaluation, UploadedDocument
from app.models.compliance import ChecklistResult
from app.repositories.checklist_repository import ChecklistRepository
from app.repositories.evaluation_repository import EvaluationRepository
from app.repositories.uploaded_document_repository import UploadedDocumentRepository
from app.services.analysis.orchestrator import AnalysisOrchestrator
from app.services.ingestion.pipeline import IngestionPipeline, UploadPayload
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ItemRef(NamedTuple):
    id: uuid.UUID
    item_text: str


def _normalize(text: str) -> str:
    return " ".join(text.split()).casefold()


def match_results(
    items: Sequence[ItemRef], results: Sequence[ChecklistResult]
) -> List[Tuple[uuid.UUID, ChecklistResult]]:
    """Pair each result with its checklist item by item text.

    Exact text wins, then whitespace and case insensitive text. Results that
    match nothing, or an item that already has a result, are dropped.
    """
    exact = {}
    normalized = {}
    for item in items:
        exact.setdefault(item.item_text, item.id)
        normalized.setdefault(_normalize(item.item_text), item.id)

    matched: List[Tuple[uuid.UUID, ChecklistResult]] = []
    seen = set()
    for result in results:
        item_id = exact.get(result.item) or normalized.get(_normalize(result.item))
        if item_id is None:
            LOGGER.warning(f"Result does not match any checklist item: {result.item[:100]!r}")
            continue
        if item_id in seen:
            LOGGER.warning(f"Dropping second result for checklist item {item_id}")
            continue
        seen.add(item_id)
        matched.append((item_id, result))
    return matched


class EvaluationService:
    """Runs checklist evaluations of uploaded documents."""

    def __init__(
        self,
        evaluation_repository: EvaluationRepository,
        document_repository: UploadedDocumentRepository,
        checklist_repository: ChecklistRepository,
        orchestrator: AnalysisOrchestrator,
        config: EvaluationSettings,
        ingestion: Optional[IngestionPipeline] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.evaluations = evaluation_repository
        self.documents = document_repository
        self.checklists = checklist_repository
        self.orchestrator = orchestrator
        self.ingestion = ingestion
        self.config = config
        self._clock = clock
        self.engine = BackoffEngine(
            RetryPolicy(name="evaluation", max_attempts=config.max_attempts),
            sleep=sleep or asyncio.sleep,
        )

    async def create_evaluation(
        self,
        owner_id: uuid.UUID,
        scheme_id: uuid.UUID,
        document_type_id: uuid.UUID,
        checklist_item_ids: Sequence[uuid.UUID],
        upload: Optional[UploadPayload] = None,
        document_id: Optional[uuid.UUID] = None,
    ) -> Evaluation:
        """Evaluate a new upload or an already ingested document.

        Exactly one of ``upload`` and ``document_id`` must be given.

        Raises:
            ValidationError: Bad input, or none of the checklist items exist
            DocumentNotReadyError: The document is not ready for analysis
            NotFoundError: Document, scheme or document type does not exist
        """
        if (upload is None) == (document_id is None):
            raise ValidationError("Either 'file' or 'uploaded_file_id' must be provided")
        if not checklist_item_ids:
            raise ValidationError("checklist_item_ids must be a non-empty array")

        if upload is not None:
            if self.ingestion is None:
                raise ConfigurationError("Ingestion pipeline is not configured")
            document = await self.ingestion.execute(owner_id, upload)
        else:
            document = await self.documents.get_for_owner(document_id, owner_id)
            if document is None:
                raise NotFoundError(f"File {document_id} not found")

        self._ensure_ready(document)

        if await self.checklists.get_scheme(scheme_id) is None:
            raise NotFoundError(f"Scheme {scheme_id} not found")
        if await self.checklists.get_document_type(document_type_id) is None:
            raise NotFoundError(f"Document type {document_type_id} not found")

        evaluation = await self.evaluations.create_evaluation(
            user_id=owner_id,
            uploaded_document_id=document.id,
            scheme_id=scheme_id,
            document_type_id=document_type_id,
        )

        items = await self.checklists.get_items_in_order(checklist_item_ids)
        if not items:
            await self.evaluations.mark_failed(evaluation, "No valid checklist items found")
            raise ValidationError("Invalid checklist items")

        return await self.run_evaluation(evaluation, document, items)

    async def run_evaluation(
        self,
        evaluation: Evaluation,
        document: UploadedDocument,
        items: Sequence[ChecklistItem],
    ) -> Evaluation:
        """Analyze and persist, retrying the whole sequence.

        Result rows and the completed status are committed together; on
        exhaustion the evaluation is marked failed and the last error raised.
        A failed commit rolls the session back and expires the loaded records,
        so later attempts reload the evaluation and the document first.
        """
        start = self._clock()
        evaluation_id = evaluation.id
        refs = [ItemRef(item.id, item.item_text) for item in items]
        texts = [ref.item_text for ref in refs]

        async def attempt(number: int) -> Evaluation:
            if number == 1:
                await self.evaluations.mark_processing(evaluation)
            else:
                await self.evaluations.reload(evaluation)
                await self.documents.reload(document)
            self._ensure_ready(document)

            outcome = await self.orchestrator.analyze(document.remote_index_id, texts)
            matched = match_results(refs, outcome.results)
            if len(matched) != len(refs):
                LOGGER.warning(
                    f"Evaluation {evaluation_id}: {len(matched)} of {len(refs)} items matched a result"
                )

            return await self.evaluations.complete_with_results(
                evaluation,
                matched,
                conversation_id=outcome.conversation_id,
                processing_time=int(self._clock() - start),
                document=document,
            )

        try:
            return await self.engine.execute(attempt, operation_name=f"Evaluation {evaluation_id}")
        except Exception as e:
            LOGGER.error(
                f"Evaluation {evaluation_id} failed: {e}",
                exc_info=True,
                extra={"evaluation_id": str(evaluation_id), "error_type": type(e).__name__},
            )
            await self.evaluations.reload(evaluation)
            await self.evaluations.mark_failed(evaluation, str(e))
            raise

    async def list_evaluations(
        self,
        owner_id: uuid.UUID,
        days: int = 30,
        scheme_id: Optional[uuid.UUID] = None,
        document_type_id: Optional[uuid.UUID] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Evaluation], int]:
        return await self.evaluations.list_for_owner(
            owner_id,
            days=days,
            scheme_id=scheme_id,
            document_type_id=document_type_id,
            skip=(page - 1) * per_page,
            limit=per_page,
        )

    async def get_evaluation(self, owner_id: uuid.UUID, evaluation_id: uuid.UUID) -> Evaluation:
        evaluation = await self.evaluations.get_for_owner(evaluation_id, owner_id)
        if evaluation is None:
            raise NotFoundError(f"Evaluation {evaluation_id} not found")
        return evaluation

    async def delete_evaluation(self, owner_id: uuid.UUID, evaluation_id: uuid.UUID) -> None:
        evaluation = await self.get_evaluation(owner_id, evaluation_id)
        await self.evaluations.soft_delete(evaluation, deleted_by_id=owner_id)
        LOGGER.info(f"Evaluation {evaluation_id} deleted by user {owner_id}")

    @staticmethod
    def _ensure_ready(document: UploadedDocument) -> None:
        if not document.ready_for_analysis:
            raise DocumentNotReadyError(
                f"File is not ready for analysis (Status: {document.status}, "
                f"Progress: {document.progress_message})"
            )
