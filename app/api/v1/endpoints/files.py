from fastapi import APIRouter, Depends, status, UploadFile, File, Query, Request
from uuid import UUID
from typing import Annotated, Optional

from app.core.exceptions import ValidationError
from app.dependencies import (
    get_current_user_id,
    get_document_service,
    get_evaluation_repository,
    get_ingestion_pipeline,
)
from app.models.compliance import DocumentStatus
from app.repositories.evaluation_repository import EvaluationRepository
from app.schemas.common import ApiResponse, Pagination
from app.schemas.documents import DocumentListResponse, DocumentResponse, DocumentStatusResponse
from app.services.document_service import DocumentService
from app.services.ingestion.pipeline import IngestionPipeline, UploadPayload
from app.utils.logging import get_logger
from app.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


async def read_upload(file: UploadFile) -> UploadPayload:
    return UploadPayload(
        filename=file.filename or "",
        content=await file.read(),
        mime_type=file.content_type or "application/octet-stream",
    )


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document and build its search index",
    operation_id="upload_file",
)
async def upload_file(
    request: Request,
    file: Optional[UploadFile] = File(None, description="PDF document to upload"),
    user_id: Annotated[UUID, Depends(get_current_user_id)] = None,
    pipeline: Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)] = None,
) -> ApiResponse:
    """Upload a document and wait until it is ready for analysis."""
    if file is None:
        raise ValidationError("No file provided")

    document = await pipeline.execute(user_id, await read_upload(file))

    return create_api_response(
        data=DocumentResponse.from_model(document),
        message="File uploaded successfully",
        request=request,
    )


@router.get(
    "",
    response_model=ApiResponse,
    summary="List files",
    operation_id="list_files",
)
async def list_files(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    file_status: Optional[DocumentStatus] = Query(None, alias="status"),
    user_id: Annotated[UUID, Depends(get_current_user_id)] = None,
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> ApiResponse:
    """List the caller's active files, newest first."""
    documents, total = await document_service.list_documents(
        user_id, status=file_status, page=page, per_page=per_page
    )

    return create_api_response(
        data=DocumentListResponse(
            files=[DocumentResponse.from_model(d) for d in documents],
            pagination=Pagination.build(page, per_page, total),
        ),
        message="Files retrieved successfully",
        request=request,
    )


@router.get(
    "/{file_id}",
    response_model=ApiResponse,
    summary="Get file details",
    operation_id="get_file",
)
async def get_file(
    request: Request,
    file_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)] = None,
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
    evaluation_repository: Annotated[EvaluationRepository, Depends(get_evaluation_repository)] = None,
) -> ApiResponse:
    """Retrieve file metadata with its most recent evaluations."""
    document = await document_service.get_document(user_id, file_id)
    evaluations = await evaluation_repository.list_recent_for_document(document.id)

    return create_api_response(
        data=DocumentResponse.from_model(document, evaluations=evaluations),
        message="File details retrieved successfully",
        request=request,
    )


@router.get(
    "/{file_id}/status",
    response_model=ApiResponse,
    summary="Get file processing status",
    operation_id="get_file_status",
)
async def get_file_status(
    request: Request,
    file_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)] = None,
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> ApiResponse:
    """Return the file status, refreshed from the backend while the index builds."""
    document = await document_service.refresh_status(user_id, file_id)

    return create_api_response(
        data=DocumentStatusResponse.from_model(document),
        message="File status retrieved",
        request=request,
    )


@router.delete(
    "/{file_id}",
    response_model=ApiResponse,
    summary="Delete file",
    operation_id="delete_file",
)
async def delete_file(
    request: Request,
    file_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)] = None,
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> ApiResponse:
    """Soft-delete a file and release its remote resources."""
    await document_service.delete_document(user_id, file_id)

    return create_api_response(
        data=None,
        message="File deleted successfully",
        request=request,
    )
