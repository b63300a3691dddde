"""Repository for evaluations and their per-item results."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database.models import Evaluation, EvaluationItemResult, UploadedDocument
from app.models.compliance import ChecklistResult, ComplianceStatus, EvaluationStatus
from app.repositories.base_repository import BaseRepository


def summarize(statuses: Iterable[ComplianceStatus]) -> Dict[str, int]:
    """Counts stored in ``Evaluation.summary_stats``."""
    statuses = list(statuses)
    return {
        "compliant": sum(1 for s in statuses if s is ComplianceStatus.YES),
        "non_compliant": sum(1 for s in statuses if s is ComplianceStatus.NO),
        "partial": sum(1 for s in statuses if s is ComplianceStatus.PARTIAL),
        "total": len(statuses),
    }


class EvaluationRepository(BaseRepository[Evaluation]):
    """Data access for Evaluation records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Evaluation)

    async def create_evaluation(
        self,
        user_id: uuid.UUID,
        uploaded_document_id: uuid.UUID,
        scheme_id: uuid.UUID,
        document_type_id: uuid.UUID,
    ) -> Evaluation:
        return await self.create(
            user_id=user_id,
            uploaded_document_id=uploaded_document_id,
            scheme_id=scheme_id,
            document_type_id=document_type_id,
            status=EvaluationStatus.PENDING.value,
            evaluation_date=datetime.now(timezone.utc),
        )

    async def mark_processing(self, evaluation: Evaluation) -> Evaluation:
        return await self.update(evaluation, status=EvaluationStatus.PROCESSING.value)

    async def mark_failed(self, evaluation: Evaluation, message: str) -> Evaluation:
        return await self.update(
            evaluation, status=EvaluationStatus.FAILED.value, error_message=message
        )

    async def complete_with_results(
        self,
        evaluation: Evaluation,
        matched: Sequence[Tuple[uuid.UUID, ChecklistResult]],
        conversation_id: str,
        processing_time: int,
        document: Optional[UploadedDocument] = None,
    ) -> Evaluation:
        """Insert all result rows and the terminal status in one transaction.

        Args:
            evaluation: Evaluation being completed
            matched: (checklist_item_id, result) pairs, at most one per item
            conversation_id: Conversation used for every batch
            processing_time: Elapsed seconds of the evaluation
            document: Evaluated document whose ``last_analyzed_at`` is touched

        Returns:
            The completed evaluation

        Raises:
            SQLAlchemyError: Nothing is persisted when the commit fails
        """
        now = datetime.now(timezone.utc)
        async with self.transaction(f"completing evaluation {evaluation.id}") as session:
            session.add_all(
                [
                    EvaluationItemResult(
                        evaluation_id=evaluation.id,
                        checklist_item_id=item_id,
                        status=result.status.value,
                        remarks=result.remarks,
                    )
                    for item_id, result in matched
                ]
            )
            evaluation.status = EvaluationStatus.COMPLETED.value
            evaluation.conversation_id = conversation_id
            evaluation.processing_time = processing_time
            evaluation.summary_stats = summarize(result.status for _, result in matched)
            evaluation.error_message = None
            evaluation.updated_at = now
            if document is not None:
                document.last_analyzed_at = now

        self.logger.info(
            f"Evaluation {evaluation.id} completed with {len(matched)} results",
            extra={"summary": evaluation.summary_stats, "processing_time": processing_time},
        )
        return evaluation

    async def soft_delete(self, evaluation: Evaluation, deleted_by_id: uuid.UUID) -> Evaluation:
        return await self.update(
            evaluation, deleted_at=datetime.now(timezone.utc), deleted_by_id=deleted_by_id
        )

    async def get_for_owner(
        self, evaluation_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[Evaluation]:
        """Non-deleted evaluation with its results and references loaded."""
        return await self.first(
            select(Evaluation)
            .options(
                selectinload(Evaluation.results).selectinload(EvaluationItemResult.checklist_item),
                selectinload(Evaluation.scheme),
                selectinload(Evaluation.document_type),
                selectinload(Evaluation.uploaded_document),
            )
            .where(
                and_(
                    Evaluation.id == evaluation_id,
                    Evaluation.user_id == user_id,
                    Evaluation.deleted_at.is_(None),
                )
            )
            .execution_options(populate_existing=True)
        )

    async def list_recent_for_document(
        self, document_id: uuid.UUID, limit: int = 5
    ) -> List[Evaluation]:
        return await self.all(
            select(Evaluation)
            .options(selectinload(Evaluation.scheme))
            .where(
                and_(
                    Evaluation.uploaded_document_id == document_id,
                    Evaluation.deleted_at.is_(None),
                )
            )
            .order_by(Evaluation.created_at.desc())
            .limit(limit)
        )

    async def list_for_owner(
        self,
        user_id: uuid.UUID,
        days: Optional[int] = None,
        scheme_id: Optional[uuid.UUID] = None,
        document_type_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Evaluation], int]:
        conditions = [Evaluation.user_id == user_id, Evaluation.deleted_at.is_(None)]
        if days:
            conditions.append(
                Evaluation.created_at >= datetime.now(timezone.utc) - timedelta(days=days)
            )
        if scheme_id:
            conditions.append(Evaluation.scheme_id == scheme_id)
        if document_type_id:
            conditions.append(Evaluation.document_type_id == document_type_id)

        return await self.page(
            select(Evaluation)
            .options(
                selectinload(Evaluation.scheme),
                selectinload(Evaluation.document_type),
                selectinload(Evaluation.uploaded_document),
            )
            .order_by(Evaluation.created_at.desc()),
            conditions,
            skip=skip,
            limit=limit,
        )
