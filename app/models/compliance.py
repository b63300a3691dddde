"""Lifecycle enums and value objects shared by the ingestion and evaluation pipelines.

Every status column is persisted as the enum's string value; the enums are the
only place those strings are spelled out.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class DocumentStatus(str, Enum):
    """Lifecycle of an uploaded document."""

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"
    DELETED = "deleted"


class IndexStatus(str, Enum):
    """Lifecycle of the remote search index built over a document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def from_remote(cls, remote_status: Optional[str]) -> "IndexStatus":
        """Map the backend's vector store status onto the local enum."""
        if remote_status == "completed":
            return cls.COMPLETED
        if remote_status == "in_progress":
            return cls.PROCESSING
        if remote_status in ("expired", "failed"):
            return cls.FAILED
        return cls.PENDING


class ProgressStage(str, Enum):
    """Ingestion sub-step surfaced to callers."""

    VALIDATING = "validating"
    UPLOADING_FILE = "uploading_file"
    CREATING_INDEX = "creating_index"
    ATTACHING_FILE = "attaching_file"
    GENERATING_EMBEDDINGS = "generating_embeddings"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProgressStage.COMPLETED, ProgressStage.ERROR)

    def display(self, error_message: Optional[str] = None) -> str:
        """Human-readable text for the stage."""
        if self is ProgressStage.ERROR:
            return f"Error: {error_message}"
        return _STAGE_DISPLAY[self]


_STAGE_DISPLAY = {
    ProgressStage.VALIDATING: "Validating file...",
    ProgressStage.UPLOADING_FILE: "Uploading file...",
    ProgressStage.CREATING_INDEX: "Creating search index...",
    ProgressStage.ATTACHING_FILE: "Attaching file to search index...",
    ProgressStage.GENERATING_EMBEDDINGS: "Generating embeddings...",
    ProgressStage.COMPLETED: "Ready for analysis",
}


class EvaluationStatus(str, Enum):
    """Lifecycle of an evaluation."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ComplianceStatus(str, Enum):
    """Per-item verdict returned by the model."""

    YES = "Yes"
    NO = "No"
    PARTIAL = "Partial"


class ChecklistResult(BaseModel):
    """One entry of the ``return_checklist_results`` callback payload."""

    item: str = Field(..., description="Checklist item text as given in the prompt")
    status: ComplianceStatus = Field(..., description="Yes, No or Partial")
    remarks: str = Field(..., description="Evidence or explanation for the status")

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        # Models occasionally return "yes" / "PARTIAL"
        if isinstance(value, str):
            for member in ComplianceStatus:
                if member.value.lower() == value.strip().lower():
                    return member
        return value

    @classmethod
    def placeholder(cls, item: str, reason: str) -> "ChecklistResult":
        """Result substituted for an item whose batch could not be analyzed."""
        return cls(
            item=item,
            status=ComplianceStatus.NO,
            remarks=f"Analysis failed for this item after multiple retry attempts: {reason}",
        )


@dataclass
class AnalysisOutcome:
    """Results of one evaluation together with the conversation that produced them."""

    results: List[ChecklistResult]
    conversation_id: str
    batch_count: int = 0
    failed_batches: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class IndexStatusSnapshot:
    """Point-in-time view of a remote index and its file counts."""

    status: Optional[str]
    in_progress: int = 0
    completed: int = 0
    failed: int = 0

    @classmethod
    def from_payload(cls, payload: dict) -> "IndexStatusSnapshot":
        counts = payload.get("file_counts") or {}
        return cls(
            status=payload.get("status"),
            in_progress=int(counts.get("in_progress") or 0),
            completed=int(counts.get("completed") or 0),
            failed=int(counts.get("failed") or 0),
        )


@dataclass
class CleanupSummary:
    """Outcome counters of one lifecycle sweep."""

    total_found: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    batches: int = 0
    duration_seconds: float = 0.0

    def as_dict(self) -> dict:
        return {
            "total_found": self.total_found,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "batches": self.batches,
            "duration_seconds": round(self.duration_seconds, 2),
        }


@dataclass(frozen=True)
class ExpiredFile:
    """Plain copy of the fields the lifecycle sweep needs from a document.

    Read once after listing, so a rollback that expires the loaded records
    does not affect the rest of the sweep.
    """

    id: UUID
    original_filename: str
    expires_at: Optional[datetime]
    remote_file_id: Optional[str]
    remote_index_id: Optional[str]

    @classmethod
    def of(cls, document: Any) -> "ExpiredFile":
        return cls(
            id=document.id,
            original_filename=document.original_filename,
            expires_at=document.expires_at,
            remote_file_id=document.remote_file_id,
            remote_index_id=document.remote_index_id,
        )
