"""Uploaded document response models."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.database.models import Evaluation, UploadedDocument
from app.schemas.common import Pagination


class DocumentEvaluationBrief(BaseModel):
    id: UUID
    date: datetime
    scheme: Optional[str] = None
    status: str
    summary: Optional[dict] = None


class DocumentResponse(BaseModel):
    id: UUID
    filename: str
    display_name: str
    size_mb: float
    uploaded_at: Optional[datetime] = None
    status: str
    index_status: str
    progress_stage: Optional[str] = None
    progress_message: str
    expires_at: datetime
    last_analyzed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    evaluations: Optional[List[DocumentEvaluationBrief]] = None

    @classmethod
    def from_model(
        cls,
        document: UploadedDocument,
        evaluations: Optional[List[Evaluation]] = None,
    ) -> "DocumentResponse":
        briefs = None
        if evaluations is not None:
            briefs = [
                DocumentEvaluationBrief(
                    id=e.id,
                    date=e.created_at,
                    scheme=e.scheme.name if e.scheme else None,
                    status=e.status,
                    summary=e.summary_stats,
                )
                for e in evaluations
            ]
        return cls(
            id=document.id,
            filename=document.original_filename,
            display_name=document.display_name,
            size_mb=round(document.file_size / (1024 * 1024), 2),
            uploaded_at=document.created_at,
            status=document.status,
            index_status=document.index_status,
            progress_stage=document.progress_stage,
            progress_message=document.progress_message,
            expires_at=document.expires_at,
            last_analyzed_at=document.last_analyzed_at,
            error_message=document.error_message,
            evaluations=briefs,
        )


class DocumentStatusResponse(BaseModel):
    id: UUID
    status: str
    index_status: str
    progress_stage: Optional[str] = None
    progress_message: str
    error_message: Optional[str] = None

    @classmethod
    def from_model(cls, document: UploadedDocument) -> "DocumentStatusResponse":
        return cls(
            id=document.id,
            status=document.status,
            index_status=document.index_status,
            progress_stage=document.progress_stage,
            progress_message=document.progress_message,
            error_message=document.error_message,
        )


class DocumentListResponse(BaseModel):
    files: List[DocumentResponse] = Field(default_factory=list)
    pagination: Pagination
