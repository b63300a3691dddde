"""Database module for SQLAlchemy models."""

from app.database.models import (
    ChecklistItem,
    DocumentType,
    Evaluation,
    EvaluationItemResult,
    Scheme,
    UploadedDocument,
    User,
)

__all__ = [
    "ChecklistItem",
    "DocumentType",
    "Evaluation",
    "EvaluationItemResult",
    "Scheme",
    "UploadedDocument",
    "User",
]
