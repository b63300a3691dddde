"""Domain enums and value objects."""

from app.models.compliance import (
    AnalysisOutcome,
    ChecklistResult,
    CleanupSummary,
    ComplianceStatus,
    DocumentStatus,
    EvaluationStatus,
    IndexStatus,
    IndexStatusSnapshot,
    ProgressStage,
)

__all__ = [
    "AnalysisOutcome",
    "ChecklistResult",
    "CleanupSummary",
    "ComplianceStatus",
    "DocumentStatus",
    "EvaluationStatus",
    "IndexStatus",
    "IndexStatusSnapshot",
    "ProgressStage",
]
