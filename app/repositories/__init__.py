"""Repository layer modules."""

from app.repositories.checklist_repository import ChecklistRepository
from app.repositories.evaluation_repository import EvaluationRepository
from app.repositories.uploaded_document_repository import UploadedDocumentRepository

__all__ = [
    "ChecklistRepository",
    "EvaluationRepository",
    "UploadedDocumentRepository",
]
