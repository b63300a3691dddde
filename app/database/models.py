"""SQLAlchemy models for all database tables."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.compliance import (
    ComplianceStatus,
    DocumentStatus,
    EvaluationStatus,
    IndexStatus,
    ProgressStage,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Account owning uploaded documents and evaluations."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String, nullable=True)
    last_name: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", default=_utcnow
    )

    documents: Mapped[list["UploadedDocument"]] = relationship(
        "UploadedDocument", back_populates="user", cascade="all, delete-orphan"
    )
    evaluations: Mapped[list["Evaluation"]] = relationship(
        "Evaluation",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="Evaluation.user_id",
    )


class Scheme(Base):
    """Funding scheme a document is evaluated against (read-only catalog)."""

    __tablename__ = "schemes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)


class DocumentType(Base):
    """Kind of document being evaluated (read-only catalog)."""

    __tablename__ = "document_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)


class ChecklistItem(Base):
    """Checklist item text (read-only catalog)."""

    __tablename__ = "checklist_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    item_text: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class UploadedDocument(Base):
    """Uploaded document and the remote resources built over it."""

    __tablename__ = "uploaded_documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    original_filename: Mapped[str] = mapped_column(String, nullable=False)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String, nullable=False, default="application/pdf")
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    status: Mapped[str] = mapped_column(
        String, nullable=False, default=DocumentStatus.UPLOADED.value, index=True
    )
    index_status: Mapped[str] = mapped_column(
        String, nullable=False, default=IndexStatus.PENDING.value
    )
    progress_stage: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    remote_file_id: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    remote_index_id: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)

    uploaded_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_analyzed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    deletion_source: Mapped[str | None] = mapped_column(String, nullable=True)  # user | system
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", default=_utcnow, onupdate=_utcnow
    )

    user: Mapped["User"] = relationship("User", back_populates="documents")
    evaluations: Mapped[list["Evaluation"]] = relationship(
        "Evaluation", back_populates="uploaded_document"
    )

    @property
    def document_status(self) -> DocumentStatus:
        return DocumentStatus(self.status)

    @property
    def index_state(self) -> IndexStatus:
        return IndexStatus(self.index_status)

    @property
    def stage(self) -> ProgressStage | None:
        return ProgressStage(self.progress_stage) if self.progress_stage else None

    @property
    def progress_message(self) -> str:
        stage = self.stage
        if stage is None:
            return "Processing..."
        return stage.display(self.error_message)

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.expires_at is not None and self.expires_at < now

    @property
    def ready_for_analysis(self) -> bool:
        return (
            self.document_status is DocumentStatus.READY
            and self.index_state is IndexStatus.COMPLETED
        )


class Evaluation(Base):
    """One checklist evaluation of a document."""

    __tablename__ = "evaluations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    uploaded_document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("uploaded_documents.id"), nullable=False
    )
    scheme_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("schemes.id"), nullable=False
    )
    document_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("document_types.id"), nullable=False
    )

    evaluation_date: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, index=True
    )
    conversation_id: Mapped[str | None] = mapped_column(String, nullable=True)
    summary_stats: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=EvaluationStatus.PENDING.value, index=True
    )
    processing_time: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True, index=True)
    deleted_by_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", default=_utcnow, onupdate=_utcnow
    )

    user: Mapped["User"] = relationship("User", back_populates="evaluations", foreign_keys=[user_id])
    uploaded_document: Mapped["UploadedDocument"] = relationship(
        "UploadedDocument", back_populates="evaluations"
    )
    scheme: Mapped["Scheme"] = relationship("Scheme")
    document_type: Mapped["DocumentType"] = relationship("DocumentType")
    results: Mapped[list["EvaluationItemResult"]] = relationship(
        "EvaluationItemResult",
        back_populates="evaluation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def evaluation_status(self) -> EvaluationStatus:
        return EvaluationStatus(self.status)


class EvaluationItemResult(Base):
    """Verdict for one checklist item within an evaluation."""

    __tablename__ = "evaluation_item_results"
    __table_args__ = (
        UniqueConstraint("evaluation_id", "checklist_item_id", name="uq_evaluation_item_results_item"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    evaluation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("evaluations.id", ondelete="CASCADE"), nullable=False
    )
    checklist_item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("checklist_items.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String, nullable=False, index=True)  # Yes | No | Partial
    remarks: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", default=_utcnow
    )

    evaluation: Mapped["Evaluation"] = relationship("Evaluation", back_populates="results")
    checklist_item: Mapped["ChecklistItem"] = relationship("ChecklistItem")

    @property
    def compliance_status(self) -> ComplianceStatus:
        return ComplianceStatus(self.status)
