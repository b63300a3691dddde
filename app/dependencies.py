"""Centralized dependency injection for FastAPI application.

This module provides factory functions for creating service and repository
instances. Each component receives its settings group here; nothing below the
API layer reads the global settings object.
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_async_session
from app.core.openai_client import ConversationClient, RemoteFileClient, RemoteIndexClient
from app.repositories.checklist_repository import ChecklistRepository
from app.repositories.evaluation_repository import EvaluationRepository
from app.repositories.uploaded_document_repository import UploadedDocumentRepository
from app.services.analysis.orchestrator import AnalysisOrchestrator
from app.services.cleanup_service import CleanupService
from app.services.document_service import DocumentService
from app.services.evaluation_service import EvaluationService
from app.services.ingestion.pipeline import IngestionPipeline
from app.services.remote_cleanup import RemoteResourceCleaner


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-ID")] = None,
) -> UUID:
    """Caller identity as established by the upstream authentication layer."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header missing",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is not a valid id",
        )


def get_file_client() -> RemoteFileClient:
    return RemoteFileClient.from_settings(settings.openai)


def get_index_client() -> RemoteIndexClient:
    return RemoteIndexClient.from_settings(settings.openai)


def get_conversation_client() -> ConversationClient:
    return ConversationClient.from_settings(settings.openai)


def get_resource_cleaner(
    file_client: Annotated[RemoteFileClient, Depends(get_file_client)],
    index_client: Annotated[RemoteIndexClient, Depends(get_index_client)],
) -> RemoteResourceCleaner:
    return RemoteResourceCleaner(
        file_client, index_client, attempts=settings.cleanup.delete_attempts
    )


async def get_document_repository(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> UploadedDocumentRepository:
    """Get uploaded document repository instance.

    Args:
        db_session: Database session from dependency injection

    Returns:
        UploadedDocumentRepository: Repository for document lifecycle operations
    """
    return UploadedDocumentRepository(db_session)


async def get_evaluation_repository(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> EvaluationRepository:
    return EvaluationRepository(db_session)


async def get_checklist_repository(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> ChecklistRepository:
    return ChecklistRepository(db_session)


async def get_ingestion_pipeline(
    repository: Annotated[UploadedDocumentRepository, Depends(get_document_repository)],
    file_client: Annotated[RemoteFileClient, Depends(get_file_client)],
    index_client: Annotated[RemoteIndexClient, Depends(get_index_client)],
    cleaner: Annotated[RemoteResourceCleaner, Depends(get_resource_cleaner)],
) -> IngestionPipeline:
    """Get ingestion pipeline instance.

    Returns:
        IngestionPipeline: Upload -> index -> attach -> readiness pipeline
    """
    return IngestionPipeline(
        repository, file_client, index_client, settings.ingestion, cleaner=cleaner
    )


async def get_document_service(
    repository: Annotated[UploadedDocumentRepository, Depends(get_document_repository)],
    index_client: Annotated[RemoteIndexClient, Depends(get_index_client)],
    cleaner: Annotated[RemoteResourceCleaner, Depends(get_resource_cleaner)],
) -> DocumentService:
    return DocumentService(repository, index_client, cleaner)


async def get_evaluation_service(
    evaluation_repository: Annotated[EvaluationRepository, Depends(get_evaluation_repository)],
    document_repository: Annotated[UploadedDocumentRepository, Depends(get_document_repository)],
    checklist_repository: Annotated[ChecklistRepository, Depends(get_checklist_repository)],
    conversation_client: Annotated[ConversationClient, Depends(get_conversation_client)],
    ingestion: Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)],
) -> EvaluationService:
    """Get evaluation service instance.

    Returns:
        EvaluationService: Evaluation entry point wired with its orchestrator
    """
    return EvaluationService(
        evaluation_repository,
        document_repository,
        checklist_repository,
        AnalysisOrchestrator(conversation_client, settings.analysis),
        settings.evaluation,
        ingestion=ingestion,
    )


async def get_cleanup_service(
    repository: Annotated[UploadedDocumentRepository, Depends(get_document_repository)],
    cleaner: Annotated[RemoteResourceCleaner, Depends(get_resource_cleaner)],
) -> CleanupService:
    return CleanupService(repository, cleaner, settings.cleanup)


def build_cleanup_service(session: AsyncSession) -> CleanupService:
    """Cleanup service over its own session, for work outside a request."""
    cleaner = RemoteResourceCleaner(
        get_file_client(), get_index_client(), attempts=settings.cleanup.delete_attempts
    )
    return CleanupService(UploadedDocumentRepository(session), cleaner, settings.cleanup)
