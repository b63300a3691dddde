"""Evaluation response models."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.database.models import Evaluation
from app.schemas.common import Pagination


class EvaluationItemResultResponse(BaseModel):
    id: UUID
    checklist_item_id: UUID
    item_text: Optional[str] = None
    status: str
    remarks: str


class EvaluationResponse(BaseModel):
    id: UUID
    date: datetime
    scheme: Optional[str] = None
    document_type: Optional[str] = None
    filename: Optional[str] = None
    status: str
    summary: Optional[dict] = None
    processing_time: Optional[int] = None
    error_message: Optional[str] = None

    @classmethod
    def from_model(cls, evaluation: Evaluation) -> "EvaluationResponse":
        return cls(**_base_fields(evaluation))


class EvaluationDetailResponse(EvaluationResponse):
    conversation_id: Optional[str] = None
    results: List[EvaluationItemResultResponse] = Field(default_factory=list)

    @classmethod
    def from_model(cls, evaluation: Evaluation) -> "EvaluationDetailResponse":
        return cls(
            **_base_fields(evaluation),
            conversation_id=evaluation.conversation_id,
            results=[
                EvaluationItemResultResponse(
                    id=row.id,
                    checklist_item_id=row.checklist_item_id,
                    item_text=row.checklist_item.item_text if row.checklist_item else None,
                    status=row.status,
                    remarks=row.remarks,
                )
                for row in evaluation.results
            ],
        )


class EvaluationListResponse(BaseModel):
    evaluations: List[EvaluationResponse] = Field(default_factory=list)
    pagination: Pagination


def _base_fields(evaluation: Evaluation) -> dict:
    return {
        "id": evaluation.id,
        "date": evaluation.created_at or evaluation.evaluation_date,
        "scheme": evaluation.scheme.name if evaluation.scheme else None,
        "document_type": evaluation.document_type.name if evaluation.document_type else None,
        "filename": (
            evaluation.uploaded_document.original_filename
            if evaluation.uploaded_document
            else None
        ),
        "status": evaluation.status,
        "summary": evaluation.summary_stats,
        "processing_time": evaluation.processing_time,
        "error_message": evaluation.error_message,
    }
